from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from datetime import datetime
from typing import TYPE_CHECKING

from core.model import zfs_property_names as names
from core.model.enum.snapshot_period_enum import SCHEDULED_PERIODS, SnapshotPeriodKind
from core.model.enum.zfs_object_kind_enum import ZfsObjectKind
from core.model.zfs_property import PropertyValue, ZfsProperty
from core.util.time_util import EPOCH
from core.util.zfs_name_util import validate_name
from exception import UnknownZfsPropertyError, ZfsSchemaIntegrityError, ZfsStructureError

if TYPE_CHECKING:
    from core.model.snapshot import Snapshot
    from core.schema.formatting_schema import FormattingConfig

logger = logging.getLogger(__name__)


class ZfsRecord:
    """
    A filesystem or volume in the storage object tree.

    Properties are immutable ZfsProperty values held in `properties`; a non-local
    property always carries the value of the nearest local definition among its
    ancestors. Pool roots have no parent (`is_pool_root`). Child and snapshot
    collections are guarded by a per-node lock so ingestion streams can insert
    concurrently.
    """

    def __init__(
        self,
        name: str,
        kind: ZfsObjectKind = ZfsObjectKind.FILESYSTEM,
        parent: ZfsRecord | None = None,
        *,
        inherit_properties: bool = True,
        bytes_available: int = 0,
        bytes_used: int = 0,
        properties: dict[str, ZfsProperty] | None = None,
    ):
        """
        Args:
            name: Fully-qualified object name, validated against the grammar for `kind`
            kind: Object kind
            parent: Parent dataset, or None for a pool root
            inherit_properties: Copy the parent's inheritable values as inherited
                instead of starting from local defaults (ignored for roots)
            bytes_available: Capacity figure reported by the storage system
            bytes_used: Capacity figure reported by the storage system
            properties: Fully parsed properties; when given they replace defaults and inheritance
        """
        self.kind = ZfsObjectKind(kind)
        self.name = validate_name(name, self.kind)
        if parent is not None and not parent.kind.is_dataset:
            raise ZfsStructureError(f"{name}: parent {parent.name} is a snapshot and cannot have descendants", name)

        self.parent = parent
        self._bytes_available = bytes_available
        self._bytes_used = bytes_used

        self._lock = threading.Lock()
        self._children: dict[str, ZfsRecord] = {}
        self._snapshots: dict[SnapshotPeriodKind, dict[str, Snapshot]] = {
            period: {} for period in SnapshotPeriodKind if period is not SnapshotPeriodKind.NOT_SET
        }
        self._last_observed: dict[SnapshotPeriodKind, datetime] = {period: EPOCH for period in SCHEDULED_PERIODS}

        if properties is not None:
            self.properties = self._adopt_properties(properties)
        elif parent is not None and inherit_properties:
            self.properties = self._inherited_properties(parent)
        else:
            self.properties = self._default_properties()

    @classmethod
    def from_properties(
        cls,
        name: str,
        kind: ZfsObjectKind,
        parent: ZfsRecord | None,
        properties: dict[str, ZfsProperty],
        bytes_available: int = 0,
        bytes_used: int = 0,
    ) -> ZfsRecord:
        """Build a dataset or volume from parsed properties, keeping their reported locality."""
        return cls(
            name,
            kind,
            parent,
            bytes_available=bytes_available,
            bytes_used=bytes_used,
            properties=properties,
        )

    # ---------- Property construction ----------

    def _property_names(self) -> tuple[str, ...]:
        return names.DATASET_PROPERTIES

    def _default_properties(self) -> dict[str, ZfsProperty]:
        return {
            name: ZfsProperty.create(name, names.DEFAULT_PROPERTY_VALUES[name], True, self)
            for name in self._property_names()
        }

    def _inherited_properties(self, parent: ZfsRecord) -> dict[str, ZfsProperty]:
        props: dict[str, ZfsProperty] = {}
        for name in names.INHERITABLE_PROPERTIES:
            props[name] = ZfsProperty.create(name, parent[name].value, False, self)
        for name in names.TIMESTAMP_PROPERTIES:
            props[name] = ZfsProperty.create(name, EPOCH, True, self)
        return props

    def _adopt_properties(self, properties: dict[str, ZfsProperty]) -> dict[str, ZfsProperty]:
        missing = [name for name in self._property_names() if name not in properties]
        if missing:
            raise ZfsStructureError(f"{self.name}: missing properties {missing}", self.name)

        adopted: dict[str, ZfsProperty] = {}
        for name in self._property_names():
            prop = properties[name]
            # Last-snapshot timestamps describe this object's own history
            if name in names.TIMESTAMP_PROPERTIES and not prop.is_local:
                prop = ZfsProperty(name, EPOCH, True)
            adopted[name] = prop.with_owner(self)
        return adopted

    # ---------- Property access ----------

    def __getitem__(self, name: str) -> ZfsProperty:
        return self.get_property(name)

    def get_property(self, name: str) -> ZfsProperty:
        try:
            return self.properties[name]
        except KeyError:
            raise UnknownZfsPropertyError(f"{self.name}: unknown property '{name}'", name) from None

    @property
    def is_pool_root(self) -> bool:
        return self.parent is None

    @property
    def pool_root(self) -> ZfsRecord:
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def enabled(self) -> bool:
        return bool(self[names.ENABLED].value)

    @property
    def take_snapshots(self) -> bool:
        return bool(self[names.TAKE_SNAPSHOTS].value)

    @property
    def prune_snapshots(self) -> bool:
        return bool(self[names.PRUNE_SNAPSHOTS].value)

    @property
    def recursion(self) -> str:
        return str(self[names.RECURSION].value)

    @property
    def template(self) -> str:
        return str(self[names.TEMPLATE].value)

    @property
    def prune_deferral(self) -> int:
        return int(self[names.RETENTION_PRUNE_DEFERRAL].value)

    def retention(self, period: SnapshotPeriodKind) -> int:
        return int(self[names.RETENTION_BY_PERIOD[period]].value)

    def last_snapshot_timestamp(self, period: SnapshotPeriodKind) -> datetime:
        return self[names.LAST_TIMESTAMP_BY_PERIOD[period]].value  # type: ignore[return-value]

    @property
    def bytes_available(self) -> int:
        return self._bytes_available

    @property
    def bytes_used(self) -> int:
        return self._bytes_used

    @property
    def percent_bytes_used(self) -> int:
        """Integer percentage; callers must not ask on an object reporting zero available bytes."""
        return self.bytes_used * 100 // self.bytes_available

    # ---------- Property updates ----------

    def update_property(self, name: str, value: PropertyValue, is_local: bool = True) -> ZfsProperty:
        """
        Replace the property slot with a new value and refresh every descendant
        holding the property as inherited. Returns the new property.
        """
        old = self.get_property(name)
        new = old.with_value(value, is_local)
        self.properties[name] = new
        logger.debug(f"[Record] {self.name}: {name} {old.value_string} -> {new.value_string} (local={new.is_local})")

        if name in names.INHERITABLE_PROPERTIES:
            self._refresh_inherited_descendants(name)
        return new

    def inherit_property_from_parent(self, name: str) -> ZfsProperty:
        """Drop the local definition of `name` and take the parent's value as inherited."""
        if self.parent is None:
            raise ZfsStructureError(f"{self.name}: a pool root cannot inherit '{name}'", self.name)
        if name not in names.INHERITABLE_PROPERTIES:
            raise ZfsStructureError(f"{self.name}: '{name}' is never inherited", self.name)

        self.get_property(name)
        return self.update_property(name, self.parent[name].value, is_local=False)

    def resolve(self, name: str) -> ZfsProperty:
        """
        Nearest local definition of `name`, starting at this node.
        Raises ZfsSchemaIntegrityError when the walk reaches a root that does not define it locally.
        """
        node: ZfsRecord = self
        while True:
            prop = node.get_property(name)
            if prop.is_local:
                return prop
            if node.parent is None:
                raise ZfsSchemaIntegrityError(
                    f"{node.name}: pool root does not define '{name}' locally", node.name, [name]
                )
            node = node.parent

    def _refresh_inherited_descendants(self, name: str) -> None:
        value = self.properties[name].value
        for child in self.sorted_children():
            prop = child.properties.get(name)
            if prop is not None and not prop.is_local and prop.value != value:
                child.properties[name] = prop.with_value(value)
                child._refresh_inherited_descendants(name)
        for snap in self.all_snapshots():
            prop = snap.properties.get(name)
            if prop is not None and not prop.is_local and prop.value != value:
                snap.properties[name] = prop.with_value(value)

    # ---------- Children ----------

    def add_child(self, child: ZfsRecord) -> ZfsRecord:
        """Insert (or replace) a child whose parent reference is already this node."""
        if child.parent is not self:
            raise ZfsStructureError(
                f"Cannot add {child.name} to {self.name}: it references parent "
                f"{child.parent.name if child.parent else None}",
                child.name,
            )
        if not child.kind.is_dataset:
            raise ZfsStructureError(f"{child.name} is a snapshot; use add_snapshot", child.name)
        with self._lock:
            self._children[child.name] = child
        return child

    def add_child_if_absent(self, child: ZfsRecord) -> ZfsRecord:
        """Insert-if-absent variant used by concurrent ingestion; returns the stored child."""
        if child.parent is not self:
            raise ZfsStructureError(f"Cannot add {child.name} to {self.name}: parent mismatch", child.name)
        with self._lock:
            return self._children.setdefault(child.name, child)

    def create_child(
        self,
        name: str,
        kind: ZfsObjectKind = ZfsObjectKind.FILESYSTEM,
        inherit_properties: bool = True,
        bytes_available: int = 0,
        bytes_used: int = 0,
    ) -> ZfsRecord:
        child = ZfsRecord(
            name,
            kind,
            self,
            inherit_properties=inherit_properties,
            bytes_available=bytes_available,
            bytes_used=bytes_used,
        )
        return self.add_child(child)

    def get_child(self, name: str) -> ZfsRecord | None:
        with self._lock:
            return self._children.get(name)

    def remove_child(self, name: str) -> bool:
        with self._lock:
            return self._children.pop(name, None) is not None

    def sorted_children(self) -> list[ZfsRecord]:
        with self._lock:
            return [self._children[key] for key in sorted(self._children)]

    @property
    def child_count(self) -> int:
        with self._lock:
            return len(self._children)

    def walk(self) -> Iterator[ZfsRecord]:
        """Depth-first iteration over this node and all dataset descendants, children sorted by name."""
        yield self
        for child in self.sorted_children():
            yield from child.walk()

    # ---------- Snapshots ----------

    def add_snapshot(self, snap: Snapshot) -> Snapshot:
        """
        Insert a snapshot under its period and advance the last-observed cache for that
        period when the snapshot is newer. Returns the same snapshot.
        """
        if snap.parent is not self:
            raise ZfsStructureError(f"Cannot add {snap.name} to {self.name}: parent mismatch", snap.name)
        period = snap.period
        if period is SnapshotPeriodKind.NOT_SET:
            raise ZfsStructureError(f"{snap.name}: snapshot period is not set", snap.name)

        with self._lock:
            self._snapshots[period][snap.name] = snap
            if period in self._last_observed and self._last_observed[period] < snap.timestamp:
                self._last_observed[period] = snap.timestamp
        return snap

    def add_snapshot_if_absent(self, snap: Snapshot) -> Snapshot:
        with self._lock:
            existing = self._snapshots.get(snap.period, {}).get(snap.name)
        if existing is not None:
            return existing
        return self.add_snapshot(snap)

    def remove_snapshot(self, snap: Snapshot) -> bool:
        with self._lock:
            return self._snapshots.get(snap.period, {}).pop(snap.name, None) is not None

    def get_snapshot(self, name: str) -> Snapshot | None:
        with self._lock:
            for bucket in self._snapshots.values():
                if name in bucket:
                    return bucket[name]
        return None

    def snapshots_of(self, period: SnapshotPeriodKind) -> list[Snapshot]:
        with self._lock:
            return list(self._snapshots.get(period, {}).values())

    def all_snapshots(self) -> list[Snapshot]:
        with self._lock:
            return [snap for bucket in self._snapshots.values() for snap in bucket.values()]

    @property
    def snapshot_count(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._snapshots.values())

    def create_snapshot(
        self, period: SnapshotPeriodKind, timestamp: datetime, formatting: FormattingConfig
    ) -> Snapshot:
        """Build (but do not insert) a snapshot of this object named by `formatting`."""
        from core.model.snapshot import Snapshot

        snap_name = formatting.generate_full_snapshot_name(self.name, period, timestamp)
        logger.debug(f"[Record] Creating {period} snapshot {snap_name}")
        return Snapshot(snap_name, period, timestamp, self)

    def last_observed_timestamp(self, period: SnapshotPeriodKind) -> datetime:
        with self._lock:
            return self._last_observed[period]

    def out_of_sync_timestamp_periods(self) -> list[SnapshotPeriodKind]:
        """Scheduled periods whose stored last-snapshot property differs from the observed cache."""
        return [
            period
            for period in SCHEDULED_PERIODS
            if self.last_snapshot_timestamp(period) != self.last_observed_timestamp(period)
        ]

    # ---------- Cloning ----------

    def deep_copy_clone(self, new_parent: ZfsRecord | None = None) -> ZfsRecord:
        """
        Rebuild this subtree with fresh ownership at every level.

        The clone is attached to `new_parent` when given (but not inserted into its
        children); inherited values are taken from the new parent. Without a new
        parent the clone is a pool root, so values it inherited become local.
        """
        clone = ZfsRecord(
            self.name,
            self.kind,
            new_parent,
            bytes_available=self._bytes_available,
            bytes_used=self._bytes_used,
            properties=dict(self.properties),
        )
        if new_parent is not None:
            for name in names.INHERITABLE_PROPERTIES:
                prop = clone.properties[name]
                if not prop.is_local:
                    clone.properties[name] = prop.with_value(new_parent[name].value)
        elif self.parent is not None:
            for name in names.INHERITABLE_PROPERTIES:
                prop = clone.properties[name]
                if not prop.is_local:
                    clone.properties[name] = prop.with_value(prop.value, is_local=True)
        with self._lock:
            clone._last_observed = dict(self._last_observed)

        for child in self.sorted_children():
            clone.add_child(child.deep_copy_clone(clone))
        for snap in self.all_snapshots():
            clone.add_snapshot(snap.deep_copy_clone(clone))
        return clone

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, kind={self.kind.value!r})"

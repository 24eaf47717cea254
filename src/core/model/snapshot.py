from __future__ import annotations

from datetime import datetime

from core.model import zfs_property_names as names
from core.model.enum.snapshot_period_enum import SnapshotPeriodKind
from core.model.enum.zfs_object_kind_enum import ZfsObjectKind
from core.model.zfs_property import PropertyValue, ZfsProperty
from core.model.zfs_record import ZfsRecord
from core.util.time_util import EPOCH
from core.util.zfs_name_util import get_parent_path
from exception import ZfsStructureError


# Ownership of snapshot properties relative to the parent dataset
FORCED_INHERITED_PROPERTIES = (
    names.ENABLED,
    names.TAKE_SNAPSHOTS,
    *names.INT_PROPERTIES,
)
FORCED_LOCAL_PROPERTIES = (names.RECURSION, names.TEMPLATE)
IMMUTABLE_PROPERTIES = (names.SNAPSHOT_PERIOD, names.SNAPSHOT_TIMESTAMP)


class Snapshot(ZfsRecord):
    """
    A read-only point-in-time child of exactly one dataset or volume.

    Enablement and retention values always follow the parent dataset; recursion
    and template are pinned locally; prune-snapshots keeps whatever locality it was
    given so individual snapshots can be protected from pruning. Capacity figures
    mirror the parent.
    """

    def __init__(
        self,
        name: str,
        period: SnapshotPeriodKind,
        timestamp: datetime,
        parent: ZfsRecord,
        *,
        prune_snapshots: ZfsProperty | None = None,
        properties: dict[str, ZfsProperty] | None = None,
    ):
        if parent is None:
            raise ZfsStructureError(f"{name}: a snapshot requires a parent dataset", name)
        if get_parent_path(name) != parent.name:
            raise ZfsStructureError(f"{name} does not belong to {parent.name}", name)

        if timestamp.tzinfo is None:
            raise ZfsStructureError(f"{name}: snapshot timestamp must be timezone-aware", name)

        self._period = SnapshotPeriodKind(period)
        self._timestamp = timestamp
        self._prune_snapshots = prune_snapshots
        super().__init__(name, ZfsObjectKind.SNAPSHOT, parent, properties=properties)

    @classmethod
    def from_properties(  # type: ignore[override]
        cls,
        name: str,
        parent: ZfsRecord,
        properties: dict[str, ZfsProperty],
    ) -> Snapshot:
        """Build a snapshot from parsed properties, applying the snapshot ownership rules."""
        period = SnapshotPeriodKind.parse(str(properties[names.SNAPSHOT_PERIOD].value))
        timestamp = properties[names.SNAPSHOT_TIMESTAMP].value
        return cls(name, period, timestamp, parent, properties=properties)  # type: ignore[arg-type]

    # ---------- Property construction ----------

    def _property_names(self) -> tuple[str, ...]:
        return names.SNAPSHOT_PROPERTIES

    def _default_properties(self) -> dict[str, ZfsProperty]:
        return self._build_owned_properties({})

    def _inherited_properties(self, parent: ZfsRecord) -> dict[str, ZfsProperty]:
        return self._build_owned_properties({})

    def _adopt_properties(self, properties: dict[str, ZfsProperty]) -> dict[str, ZfsProperty]:
        return self._build_owned_properties(properties)

    def _build_owned_properties(self, reported: dict[str, ZfsProperty]) -> dict[str, ZfsProperty]:
        parent = self.parent
        assert parent is not None
        props: dict[str, ZfsProperty] = {}

        for name in FORCED_INHERITED_PROPERTIES:
            props[name] = ZfsProperty.create(name, parent[name].value, False, self)
        for name in FORCED_LOCAL_PROPERTIES:
            value = reported[name].value if name in reported else parent[name].value
            props[name] = ZfsProperty.create(name, value, True, self)

        prune = self._prune_snapshots or reported.get(names.PRUNE_SNAPSHOTS)
        if prune is None:
            prune = ZfsProperty(names.PRUNE_SNAPSHOTS, parent.prune_snapshots, False)
        elif not prune.is_local:
            prune = prune.with_value(parent.prune_snapshots)
        props[names.PRUNE_SNAPSHOTS] = prune.with_owner(self)

        for name in names.TIMESTAMP_PROPERTIES:
            props[name] = ZfsProperty.create(name, EPOCH, True, self)
        props[names.SNAPSHOT_PERIOD] = ZfsProperty.create(names.SNAPSHOT_PERIOD, self._period.value, True, self)
        props[names.SNAPSHOT_TIMESTAMP] = ZfsProperty.create(names.SNAPSHOT_TIMESTAMP, self._timestamp, True, self)
        return props

    # ---------- Snapshot attributes ----------

    @property
    def period(self) -> SnapshotPeriodKind:
        return self._period

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    @property
    def bytes_available(self) -> int:
        return self.parent.bytes_available if self.parent else 0

    @property
    def bytes_used(self) -> int:
        return self.parent.bytes_used if self.parent else 0

    def update_property(self, name: str, value: PropertyValue, is_local: bool = True) -> ZfsProperty:
        if name in IMMUTABLE_PROPERTIES:
            raise ZfsStructureError(f"{self.name}: '{name}' cannot be changed on a snapshot", self.name)
        return super().update_property(name, value, is_local)

    # ---------- Tree operations that do not apply to snapshots ----------

    def add_child(self, child: ZfsRecord) -> ZfsRecord:
        raise ZfsStructureError(f"{self.name}: snapshots cannot have children", self.name)

    def add_snapshot(self, snap: Snapshot) -> Snapshot:
        raise ZfsStructureError(f"{self.name}: snapshots cannot have snapshots", self.name)

    def deep_copy_clone(self, new_parent: ZfsRecord | None = None) -> Snapshot:  # type: ignore[override]
        parent = new_parent or self.parent
        assert parent is not None
        return Snapshot(
            self.name,
            self._period,
            self._timestamp,
            parent,
            prune_snapshots=self.properties[names.PRUNE_SNAPSHOTS],
            properties=dict(self.properties),
        )

    # ---------- Ordering ----------

    def sort_key(self) -> tuple[datetime, int, str]:
        return (self._timestamp, self._period.rank, self.name)

    def __lt__(self, other: Snapshot | None) -> bool:
        return compare_snapshots(self, other) < 0


def compare_snapshots(a: Snapshot | None, b: Snapshot | None) -> int:
    """
    Oldest-first ordering: timestamp, then period rank, then name (ordinal).
    None sorts before any snapshot.
    """
    if a is None:
        return 0 if b is None else -1
    if b is None:
        return 1
    key_a, key_b = a.sort_key(), b.sort_key()
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def snapshot_sort_key(snap: Snapshot) -> tuple[datetime, int, str]:
    return snap.sort_key()

import asyncio
import logging
import threading
from collections.abc import AsyncIterable, Iterable
from typing import TYPE_CHECKING

from core.ingest.raw_zfs_object import (
    RawProperty,
    RawZfsObject,
    add_raw_line,
    format_raw_line,
    group_raw_lines,
    sort_raw_objects,
)
from core.model import zfs_property_names as names
from core.model.enum.snapshot_period_enum import SnapshotPeriodKind
from core.model.enum.zfs_object_kind_enum import ZfsObjectKind
from core.model.snapshot import Snapshot
from core.model.zfs_property import ZfsProperty, try_parse
from core.model.zfs_record import ZfsRecord
from core.util.zfs_name_util import get_parent_path
from exception import MalformedZfsObjectError, ZfsStructureError

if TYPE_CHECKING:
    from core.executor.zfs_command_runner import ZfsCommandRunner

logger = logging.getLogger(__name__)

QUERY_PROPERTY_LIST = ",".join((names.TYPE, *names.SNAPSHOT_PROPERTIES, names.USED, names.AVAILABLE))
QUERY_ARGS_TEMPLATE = f"-Hpr -o name,property,value,source -t filesystem,volume,snapshot {QUERY_PROPERTY_LIST} {{target}}"


class ZfsObjectIngestor:
    """
    Fold raw `name/property/value/source` output into the dataset/snapshot tree.

    Objects that are missing required properties, carry unparseable values, or
    whose parent was not ingested are logged and skipped; the rest of the batch is
    unaffected. `datasets` and `snapshots` may be shared between ingestors so that
    several pools can be fetched concurrently into the same collections.
    """

    def __init__(
        self,
        datasets: dict[str, ZfsRecord] | None = None,
        snapshots: dict[str, Snapshot] | None = None,
    ):
        self.datasets: dict[str, ZfsRecord] = datasets if datasets is not None else {}
        self.snapshots: dict[str, Snapshot] = snapshots if snapshots is not None else {}
        self.skipped: list[str] = []
        self._lock = threading.Lock()

    # ---------- Public API ----------

    def ingest_lines(self, lines: Iterable[str]) -> None:
        self.build_tree(group_raw_lines(lines))

    async def ingest_async(self, lines: AsyncIterable[str]) -> None:
        raw_objects: dict[str, RawZfsObject] = {}
        async for line in lines:
            add_raw_line(line, raw_objects)
        self.build_tree(sort_raw_objects(raw_objects))

    async def load_pools_async(self, runner: "ZfsCommandRunner", pool_names: Iterable[str]) -> None:
        """Fetch every pool with its own query stream, concurrently, into the shared collections."""
        pools = list(pool_names)
        logger.info(f"[Ingest] Loading {len(pools)} pool(s): {pools}")
        await asyncio.gather(*(self._load_pool(runner, pool) for pool in pools))
        logger.info(f"[Ingest] Loaded {len(self.datasets)} datasets, {len(self.snapshots)} snapshots")

    def build_tree(self, raw_objects: dict[str, RawZfsObject]) -> None:
        """Convert name-ordered raw objects; parents must precede their descendants."""
        for name, obj in raw_objects.items():
            try:
                if obj.kind is ZfsObjectKind.SNAPSHOT:
                    self._add_snapshot(name, obj)
                else:
                    self._add_dataset(name, obj)
            except MalformedZfsObjectError as e:
                logger.warning(f"[Ingest] Skipping {name}: {e}")
                self.skipped.append(name)

    # ---------- Conversion ----------

    def _add_dataset(self, name: str, obj: RawZfsObject) -> None:
        self._require_mandatory(name, obj)
        if obj.kind is None:
            raise MalformedZfsObjectError("missing or unknown object type", name)
        properties = self._parse_properties(name, obj, names.DATASET_PROPERTIES)

        try:
            bytes_available = int(obj.properties[names.AVAILABLE].value)
            bytes_used = int(obj.properties[names.USED].value)
        except ValueError:
            raise MalformedZfsObjectError("capacity figures are not integers", name) from None

        parent = self._find_parent(name)
        try:
            record = ZfsRecord.from_properties(name, obj.kind, parent, properties, bytes_available, bytes_used)
        except ZfsStructureError as e:
            raise MalformedZfsObjectError(str(e), name) from e

        with self._lock:
            stored = self.datasets.setdefault(name, record)
        if stored is record and parent is not None:
            parent.add_child_if_absent(record)
        logger.debug(f"[Ingest] {obj.kind} {name} added")

    def _add_snapshot(self, name: str, obj: RawZfsObject) -> None:
        self._require_mandatory(name, obj)
        properties = self._parse_properties(name, obj, names.SNAPSHOT_PROPERTIES)

        try:
            period = SnapshotPeriodKind.parse(str(properties[names.SNAPSHOT_PERIOD].value))
        except ValueError:
            raise MalformedZfsObjectError(
                f"unknown snapshot period '{properties[names.SNAPSHOT_PERIOD].value}'", name
            ) from None
        if period is SnapshotPeriodKind.NOT_SET:
            raise MalformedZfsObjectError("snapshot period is not set", name)

        parent = self._find_parent(name)
        if parent is None:
            raise MalformedZfsObjectError("snapshot has no parent dataset", name)
        try:
            snap = Snapshot.from_properties(name, parent, properties)
        except ZfsStructureError as e:
            raise MalformedZfsObjectError(str(e), name) from e

        with self._lock:
            stored = self.snapshots.setdefault(name, snap)
        if stored is snap:
            parent.add_snapshot_if_absent(snap)
        logger.debug(f"[Ingest] {period} snapshot {name} added to {parent.name}")

    # ---------- Private helpers ----------

    async def _load_pool(self, runner: "ZfsCommandRunner", pool_name: str) -> None:
        raw_objects: dict[str, RawZfsObject] = {}
        async for line in runner.run_query("get", QUERY_ARGS_TEMPLATE.format(target=pool_name)):
            add_raw_line(line, raw_objects)
        logger.debug(f"[Ingest] {pool_name}: {len(raw_objects)} raw objects")
        self.build_tree(sort_raw_objects(raw_objects))

    @staticmethod
    def _require_mandatory(name: str, obj: RawZfsObject) -> None:
        if obj.malformed_lines:
            raise MalformedZfsObjectError(f"{len(obj.malformed_lines)} line(s) without exactly four fields", name)
        missing = obj.missing_mandatory_properties()
        if missing:
            raise MalformedZfsObjectError(f"missing properties {missing}", name)

    @staticmethod
    def _parse_properties(name: str, obj: RawZfsObject, property_names: Iterable[str]) -> dict[str, ZfsProperty]:
        parsed: dict[str, ZfsProperty] = {}
        for prop_name in property_names:
            raw = obj.properties[prop_name]
            prop = try_parse(raw)
            if prop is None:
                raise MalformedZfsObjectError(f"invalid value '{raw.value}' for {prop_name} (source={raw.source})", name)
            parsed[prop_name] = prop
        return parsed

    def _find_parent(self, name: str) -> ZfsRecord | None:
        parent_name = get_parent_path(name)
        if parent_name is None:
            return None
        with self._lock:
            parent = self.datasets.get(parent_name)
        if parent is None:
            raise MalformedZfsObjectError(f"parent {parent_name} was not ingested", name)
        return parent


def format_raw_lines(record: ZfsRecord) -> list[str]:
    """Render a node in the raw wire format, `type` first, properties ordered by name."""
    lines = [format_raw_line(record.name, RawProperty(names.TYPE, record.kind.value, names.SOURCE_NONE))]
    for prop_name in sorted(record.properties):
        prop = record.properties[prop_name]
        lines.append(format_raw_line(record.name, RawProperty(prop.name, prop.value_string, prop.source)))
    lines.append(format_raw_line(record.name, RawProperty(names.USED, str(record.bytes_used), names.SOURCE_NONE)))
    if record.kind.is_dataset:
        lines.append(
            format_raw_line(record.name, RawProperty(names.AVAILABLE, str(record.bytes_available), names.SOURCE_NONE))
        )
    return lines

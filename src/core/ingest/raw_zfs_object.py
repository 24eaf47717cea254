import logging
from collections.abc import Iterable
from typing import NamedTuple

from core.model import zfs_property_names as names
from core.model.enum.recursion_enum import RecursionMode
from core.model.enum.zfs_object_kind_enum import ZfsObjectKind
from core.util.time_util import EPOCH, parse_timestamp
from exception import ZfsSchemaIntegrityError

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\t"

MANDATORY_SNAPSHOT_PROPERTIES = frozenset((*names.SNAPSHOT_PROPERTIES, names.TYPE, names.USED))
MANDATORY_DATASET_PROPERTIES = frozenset((*names.DATASET_PROPERTIES, names.TYPE, names.USED, names.AVAILABLE))
POOL_ROOT_PROPERTIES = (*names.DATASET_PROPERTIES, names.TYPE, names.USED, names.AVAILABLE)


class RawProperty(NamedTuple):
    """One (name, value, source) triple exactly as the external tool reported it."""

    name: str
    value: str
    source: str


class RawZfsObject:
    """Unparsed properties of one object, grouped by name."""

    def __init__(self, kind: ZfsObjectKind | None = None):
        self.kind = kind
        self.properties: dict[str, RawProperty] = {}
        self.malformed_lines: list[str] = []

    def add_raw_property(self, name: str, value: str, source: str) -> None:
        self.properties[name] = RawProperty(name, value, source)
        if name == names.TYPE and self.kind is None:
            try:
                self.kind = ZfsObjectKind(value)
            except ValueError:
                logger.debug(f"[Ingest] Unknown object type '{value}'")

    def missing_mandatory_properties(self) -> list[str]:
        if self.kind is ZfsObjectKind.SNAPSHOT:
            mandatory = MANDATORY_SNAPSHOT_PROPERTIES
        else:
            mandatory = MANDATORY_DATASET_PROPERTIES
        return sorted(mandatory - self.properties.keys())

    def has_all_mandatory_properties(self) -> bool:
        return self.kind is not None and not self.malformed_lines and not self.missing_mandatory_properties()


# ---------- Line handling ----------


def split_raw_line(line: str) -> list[str]:
    return [token.strip() for token in line.rstrip("\r\n").split(FIELD_SEPARATOR)]


def parse_raw_line(line: str) -> tuple[str, RawProperty] | None:
    """
    Split one `name<TAB>property<TAB>value<TAB>source` line.
    Returns None (and logs) for lines that do not carry exactly four fields.
    """
    tokens = split_raw_line(line)
    if len(tokens) != 4 or not tokens[0] or not tokens[1]:
        if line.strip():
            logger.warning(f"[Ingest] Skipping malformed line: {line!r}")
        return None
    object_name, prop_name, value, source = tokens[0], tokens[1], tokens[2], tokens[3]
    return object_name, RawProperty(prop_name, value, source)


def format_raw_line(object_name: str, prop: RawProperty) -> str:
    return FIELD_SEPARATOR.join((object_name, prop.name, prop.value, prop.source))


def add_raw_line(line: str, raw_objects: dict[str, RawZfsObject]) -> None:
    if not line.strip():
        return
    parsed = parse_raw_line(line)
    if parsed is None:
        object_name = split_raw_line(line)[0]
        if object_name:
            # One unreadable line taints the whole object
            _get_or_create(raw_objects, object_name).malformed_lines.append(line)
        return
    object_name, prop = parsed
    _get_or_create(raw_objects, object_name).add_raw_property(prop.name, prop.value, prop.source)


def _get_or_create(raw_objects: dict[str, RawZfsObject], object_name: str) -> RawZfsObject:
    obj = raw_objects.get(object_name)
    if obj is None:
        # The first line for an object normally carries its type
        obj = raw_objects[object_name] = RawZfsObject()
    return obj


def group_raw_lines(lines: Iterable[str]) -> dict[str, RawZfsObject]:
    """Group lines by object name in one pass; the result is ordered by name (parents first)."""
    raw_objects: dict[str, RawZfsObject] = {}
    for line in lines:
        add_raw_line(line, raw_objects)
    return sort_raw_objects(raw_objects)


def sort_raw_objects(raw_objects: dict[str, RawZfsObject]) -> dict[str, RawZfsObject]:
    return {name: raw_objects[name] for name in sorted(raw_objects)}


# ---------- Pool root validation ----------


def is_pool_root_property_valid(prop: RawProperty) -> bool:
    """Basic parse and range check for a property that must be defined on every pool root."""
    name, value = prop.name, prop.value
    if name in names.DATASET_PROPERTIES and prop.source == names.SOURCE_NONE:
        return False
    if name == names.TYPE:
        return value in (ZfsObjectKind.FILESYSTEM, ZfsObjectKind.VOLUME)
    if name in names.BOOL_PROPERTIES:
        return value.lower() in ("true", "false")
    if name == names.RECURSION:
        return value in (RecursionMode.SIAZ, RecursionMode.ZFS)
    if name == names.TEMPLATE:
        return bool(value.strip())
    if name in names.POOL_ROOT_INT_PROPERTY_RANGES:
        low, high = names.POOL_ROOT_INT_PROPERTY_RANGES[name]
        try:
            return low <= int(value) <= high
        except ValueError:
            return False
    if name in names.TIMESTAMP_PROPERTIES:
        ts = parse_timestamp(value)
        return ts is not None and ts >= EPOCH
    if name in (names.USED, names.AVAILABLE):
        return value.isdigit()
    raise ValueError(f"'{name}' is not a pool root property")


def check_pool_root_properties(lines: Iterable[str]) -> dict[str, dict[str, bool]]:
    """
    Validity of each required property on each pool root, from lines fetched for pool roots only.
    Properties that were never reported are recorded as invalid.
    """
    report: dict[str, dict[str, bool]] = {}
    for line in lines:
        parsed = parse_raw_line(line)
        if parsed is None:
            continue
        pool_name, prop = parsed
        if prop.name not in POOL_ROOT_PROPERTIES:
            continue
        report.setdefault(pool_name, {})[prop.name] = is_pool_root_property_valid(prop)

    for validity in report.values():
        for name in POOL_ROOT_PROPERTIES:
            validity.setdefault(name, False)
    return report


def ensure_pool_roots_valid(report: dict[str, dict[str, bool]]) -> None:
    """Raise ZfsSchemaIntegrityError for the first pool root (by name) with invalid properties."""
    for pool_name in sorted(report):
        invalid = sorted(name for name, valid in report[pool_name].items() if not valid)
        if invalid:
            raise ZfsSchemaIntegrityError(
                f"Pool root {pool_name} has missing or invalid properties {invalid}", pool_name, invalid
            )

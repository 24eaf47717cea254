from datetime import datetime

from core.model.enum.recursion_enum import RecursionMode
from core.model.enum.snapshot_period_enum import SnapshotPeriodKind
from core.util.time_util import EPOCH

PROPERTY_NAMESPACE = "snapsinazfs.com"

# Inheritable user properties
ENABLED = f"{PROPERTY_NAMESPACE}:enabled"
TAKE_SNAPSHOTS = f"{PROPERTY_NAMESPACE}:takesnapshots"
PRUNE_SNAPSHOTS = f"{PROPERTY_NAMESPACE}:prunesnapshots"
RECURSION = f"{PROPERTY_NAMESPACE}:recursion"
TEMPLATE = f"{PROPERTY_NAMESPACE}:template"
RETENTION_FREQUENT = f"{PROPERTY_NAMESPACE}:retention:frequent"
RETENTION_HOURLY = f"{PROPERTY_NAMESPACE}:retention:hourly"
RETENTION_DAILY = f"{PROPERTY_NAMESPACE}:retention:daily"
RETENTION_WEEKLY = f"{PROPERTY_NAMESPACE}:retention:weekly"
RETENTION_MONTHLY = f"{PROPERTY_NAMESPACE}:retention:monthly"
RETENTION_YEARLY = f"{PROPERTY_NAMESPACE}:retention:yearly"
RETENTION_PRUNE_DEFERRAL = f"{PROPERTY_NAMESPACE}:retention:prunedeferral"

# Never inherited, always local to the observing object
LAST_FREQUENT_SNAPSHOT_TIMESTAMP = f"{PROPERTY_NAMESPACE}:lastfrequentsnapshottimestamp"
LAST_HOURLY_SNAPSHOT_TIMESTAMP = f"{PROPERTY_NAMESPACE}:lasthourlysnapshottimestamp"
LAST_DAILY_SNAPSHOT_TIMESTAMP = f"{PROPERTY_NAMESPACE}:lastdailysnapshottimestamp"
LAST_WEEKLY_SNAPSHOT_TIMESTAMP = f"{PROPERTY_NAMESPACE}:lastweeklysnapshottimestamp"
LAST_MONTHLY_SNAPSHOT_TIMESTAMP = f"{PROPERTY_NAMESPACE}:lastmonthlysnapshottimestamp"
LAST_YEARLY_SNAPSHOT_TIMESTAMP = f"{PROPERTY_NAMESPACE}:lastyearlysnapshottimestamp"

# Snapshot-only
SNAPSHOT_PERIOD = f"{PROPERTY_NAMESPACE}:snapshot:period"
SNAPSHOT_TIMESTAMP = f"{PROPERTY_NAMESPACE}:snapshot:timestamp"

# Native pseudo-properties
TYPE = "type"
USED = "used"
AVAILABLE = "available"

# Property source strings
SOURCE_NONE = "-"
SOURCE_DEFAULT = "default"
SOURCE_LOCAL = "local"
SOURCE_INHERITED_PREFIX = "inherited from "

DEFAULT_TEMPLATE_NAME = "default"

RETENTION_BY_PERIOD: dict[SnapshotPeriodKind, str] = {
    SnapshotPeriodKind.FREQUENT: RETENTION_FREQUENT,
    SnapshotPeriodKind.HOURLY: RETENTION_HOURLY,
    SnapshotPeriodKind.DAILY: RETENTION_DAILY,
    SnapshotPeriodKind.WEEKLY: RETENTION_WEEKLY,
    SnapshotPeriodKind.MONTHLY: RETENTION_MONTHLY,
    SnapshotPeriodKind.YEARLY: RETENTION_YEARLY,
}

LAST_TIMESTAMP_BY_PERIOD: dict[SnapshotPeriodKind, str] = {
    SnapshotPeriodKind.FREQUENT: LAST_FREQUENT_SNAPSHOT_TIMESTAMP,
    SnapshotPeriodKind.HOURLY: LAST_HOURLY_SNAPSHOT_TIMESTAMP,
    SnapshotPeriodKind.DAILY: LAST_DAILY_SNAPSHOT_TIMESTAMP,
    SnapshotPeriodKind.WEEKLY: LAST_WEEKLY_SNAPSHOT_TIMESTAMP,
    SnapshotPeriodKind.MONTHLY: LAST_MONTHLY_SNAPSHOT_TIMESTAMP,
    SnapshotPeriodKind.YEARLY: LAST_YEARLY_SNAPSHOT_TIMESTAMP,
}

BOOL_PROPERTIES = (ENABLED, TAKE_SNAPSHOTS, PRUNE_SNAPSHOTS)
STRING_PROPERTIES = (RECURSION, TEMPLATE)
INT_PROPERTIES = (*RETENTION_BY_PERIOD.values(), RETENTION_PRUNE_DEFERRAL)
TIMESTAMP_PROPERTIES = tuple(LAST_TIMESTAMP_BY_PERIOD.values())

INHERITABLE_PROPERTIES = (*BOOL_PROPERTIES, *STRING_PROPERTIES, *INT_PROPERTIES)
DATASET_PROPERTIES = (*INHERITABLE_PROPERTIES, *TIMESTAMP_PROPERTIES)
SNAPSHOT_PROPERTIES = (*DATASET_PROPERTIES, SNAPSHOT_PERIOD, SNAPSHOT_TIMESTAMP)
KNOWN_PROPERTIES = frozenset(SNAPSHOT_PROPERTIES)

# Accepted value ranges, inclusive. -1 marks an unset retention count.
INT_PROPERTY_RANGES: dict[str, tuple[int, int]] = {
    **{name: (-1, 2**31 - 1) for name in RETENTION_BY_PERIOD.values()},
    RETENTION_PRUNE_DEFERRAL: (0, 100),
}

# Pool roots must carry real values
POOL_ROOT_INT_PROPERTY_RANGES: dict[str, tuple[int, int]] = {
    **{name: (0, 2**31 - 1) for name in RETENTION_BY_PERIOD.values()},
    RETENTION_PRUNE_DEFERRAL: (0, 100),
}

# Values assigned to a freshly created object that does not inherit
DEFAULT_PROPERTY_VALUES: dict[str, bool | int | str | datetime] = {
    ENABLED: False,
    TAKE_SNAPSHOTS: False,
    PRUNE_SNAPSHOTS: False,
    RECURSION: RecursionMode.SIAZ.value,
    TEMPLATE: DEFAULT_TEMPLATE_NAME,
    **{name: -1 for name in RETENTION_BY_PERIOD.values()},
    RETENTION_PRUNE_DEFERRAL: 0,
    **{name: EPOCH for name in TIMESTAMP_PROPERTIES},
}

# Value type of every known property, used by the raw parser
PROPERTY_VALUE_TYPES: dict[str, type] = {
    **{name: bool for name in BOOL_PROPERTIES},
    **{name: str for name in STRING_PROPERTIES},
    **{name: int for name in INT_PROPERTIES},
    **{name: datetime for name in TIMESTAMP_PROPERTIES},
    SNAPSHOT_PERIOD: str,
    SNAPSHOT_TIMESTAMP: datetime,
}

# Values written to pool roots that lack a valid local definition
POOL_ROOT_DEFAULT_PROPERTY_VALUES: dict[str, bool | int | str | datetime] = {
    **DEFAULT_PROPERTY_VALUES,
    RETENTION_FREQUENT: 0,
    RETENTION_HOURLY: 48,
    RETENTION_DAILY: 90,
    RETENTION_WEEKLY: 0,
    RETENTION_MONTHLY: 6,
    RETENTION_YEARLY: 0,
}

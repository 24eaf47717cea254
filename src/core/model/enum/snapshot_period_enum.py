from enum import StrEnum


class SnapshotPeriodKind(StrEnum):
    """
    Period a snapshot was taken for.

    The string value is what is stored in the snapshot's period property.
    NOT_SET is an un-set value and is never a valid period for a stored snapshot.
    MANUAL and TEMPORARY are unscheduled: they are never due and never pruned.
    """

    NOT_SET = "-"
    FREQUENT = "frequently"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    MANUAL = "manual"
    TEMPORARY = "temporary"

    @property
    def rank(self) -> int:
        """Canonical ordering used to break exact-timestamp ties."""
        return _PERIOD_RANK[self]

    @property
    def is_scheduled(self) -> bool:
        return self in SCHEDULED_PERIODS

    @classmethod
    def parse(cls, value: str) -> "SnapshotPeriodKind":
        """Parse a stored period string; raises ValueError for unknown values."""
        return cls(value.strip().lower())


_PERIOD_RANK: dict[SnapshotPeriodKind, int] = {
    SnapshotPeriodKind.NOT_SET: 0,
    SnapshotPeriodKind.FREQUENT: 1,
    SnapshotPeriodKind.HOURLY: 2,
    SnapshotPeriodKind.DAILY: 3,
    SnapshotPeriodKind.WEEKLY: 4,
    SnapshotPeriodKind.MONTHLY: 5,
    SnapshotPeriodKind.YEARLY: 6,
    SnapshotPeriodKind.MANUAL: 7,
    SnapshotPeriodKind.TEMPORARY: 8,
}

# Scheduled kinds in canonical order
SCHEDULED_PERIODS: tuple[SnapshotPeriodKind, ...] = (
    SnapshotPeriodKind.FREQUENT,
    SnapshotPeriodKind.HOURLY,
    SnapshotPeriodKind.DAILY,
    SnapshotPeriodKind.WEEKLY,
    SnapshotPeriodKind.MONTHLY,
    SnapshotPeriodKind.YEARLY,
)

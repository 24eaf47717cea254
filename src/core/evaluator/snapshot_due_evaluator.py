import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from core.model.enum.snapshot_period_enum import SCHEDULED_PERIODS, SnapshotPeriodKind
from core.model.zfs_record import ZfsRecord
from core.schema.snapshot_timing_schema import SnapshotTimingConfig
from core.util.time_util import week_of_year

logger = logging.getLogger("SnapshotDueEvaluator")

DEFAULT_TIMING = SnapshotTimingConfig()


# ---------- Per-period decisions ----------
# All six share one shape: retention gate, ordering guard, then a period boundary test.


def is_frequent_snapshot_needed(
    record: ZfsRecord, timestamp: datetime, timing: SnapshotTimingConfig | None = None
) -> bool:
    timing = timing or DEFAULT_TIMING
    window = _window(record, SnapshotPeriodKind.FREQUENT, timestamp, timing, allow_equal=True)
    if window is None:
        return False
    last, now = window

    elapsed = _elapsed(last, now)
    slice_changed = timing.get_period_of_hour(now) != timing.get_period_of_hour(last)
    needed = elapsed >= timedelta(minutes=timing.frequent_period) or slice_changed
    _log_decision(record, SnapshotPeriodKind.FREQUENT, last, now, needed)
    return needed


def is_hourly_snapshot_needed(
    record: ZfsRecord, timestamp: datetime, timing: SnapshotTimingConfig | None = None
) -> bool:
    timing = timing or DEFAULT_TIMING
    window = _window(record, SnapshotPeriodKind.HOURLY, timestamp, timing, allow_equal=True)
    if window is None:
        return False
    last, now = window

    needed = _elapsed(last, now) >= timedelta(hours=1) or now.hour != last.hour
    _log_decision(record, SnapshotPeriodKind.HOURLY, last, now, needed)
    return needed


def is_daily_snapshot_needed(
    record: ZfsRecord, timestamp: datetime, timing: SnapshotTimingConfig | None = None
) -> bool:
    timing = timing or DEFAULT_TIMING
    window = _window(record, SnapshotPeriodKind.DAILY, timestamp, timing)
    if window is None:
        return False
    last, now = window

    needed = _elapsed(last, now) >= timedelta(days=1) or now.timetuple().tm_yday != last.timetuple().tm_yday
    _log_decision(record, SnapshotPeriodKind.DAILY, last, now, needed)
    return needed


def is_weekly_snapshot_needed(
    record: ZfsRecord, timestamp: datetime, timing: SnapshotTimingConfig | None = None
) -> bool:
    timing = timing or DEFAULT_TIMING
    window = _window(record, SnapshotPeriodKind.WEEKLY, timestamp, timing)
    if window is None:
        return False
    last, now = window

    week_changed = week_of_year(now.date(), timing.weekly_day) != week_of_year(last.date(), timing.weekly_day)
    needed = _elapsed(last, now) >= timedelta(days=7) or week_changed
    _log_decision(record, SnapshotPeriodKind.WEEKLY, last, now, needed)
    return needed


def is_monthly_snapshot_needed(
    record: ZfsRecord, timestamp: datetime, timing: SnapshotTimingConfig | None = None
) -> bool:
    timing = timing or DEFAULT_TIMING
    window = _window(record, SnapshotPeriodKind.MONTHLY, timestamp, timing)
    if window is None:
        return False
    last, now = window

    needed = (now.year, now.month) != (last.year, last.month)
    _log_decision(record, SnapshotPeriodKind.MONTHLY, last, now, needed)
    return needed


def is_yearly_snapshot_needed(
    record: ZfsRecord, timestamp: datetime, timing: SnapshotTimingConfig | None = None
) -> bool:
    timing = timing or DEFAULT_TIMING
    window = _window(record, SnapshotPeriodKind.YEARLY, timestamp, timing)
    if window is None:
        return False
    last, now = window

    needed = last.year < now.year
    _log_decision(record, SnapshotPeriodKind.YEARLY, last, now, needed)
    return needed


_DECISIONS: dict[SnapshotPeriodKind, Callable[[ZfsRecord, datetime, SnapshotTimingConfig | None], bool]] = {
    SnapshotPeriodKind.FREQUENT: is_frequent_snapshot_needed,
    SnapshotPeriodKind.HOURLY: is_hourly_snapshot_needed,
    SnapshotPeriodKind.DAILY: is_daily_snapshot_needed,
    SnapshotPeriodKind.WEEKLY: is_weekly_snapshot_needed,
    SnapshotPeriodKind.MONTHLY: is_monthly_snapshot_needed,
    SnapshotPeriodKind.YEARLY: is_yearly_snapshot_needed,
}


class SnapshotDueEvaluator:
    """Evaluate all scheduled periods for a record against one template's timing."""

    def __init__(self, timing: SnapshotTimingConfig | None = None):
        self._timing: SnapshotTimingConfig = timing or DEFAULT_TIMING

    # ---------- Public API ----------

    def is_due(self, record: ZfsRecord, period: SnapshotPeriodKind, timestamp: datetime) -> bool:
        decision = _DECISIONS.get(period)
        if decision is None:
            # Unscheduled kinds are only ever taken on demand
            return False
        return decision(record, timestamp, self._timing)

    def periods_due(self, record: ZfsRecord, timestamp: datetime) -> list[SnapshotPeriodKind]:
        """Due scheduled periods, in canonical order."""
        return [period for period in SCHEDULED_PERIODS if self.is_due(record, period, timestamp)]


# ---------- Private helpers ----------


def _window(
    record: ZfsRecord,
    period: SnapshotPeriodKind,
    timestamp: datetime,
    timing: SnapshotTimingConfig,
    allow_equal: bool = False,
) -> tuple[datetime, datetime] | None:
    """
    Apply the retention gate and ordering guard. Returns (last, now) on the
    template's wall clock, or None when no snapshot can be due.
    """
    if record.retention(period) <= 0:
        logger.debug(f"[Due] {record.name} {period}: not wanted (retention={record.retention(period)})")
        return None

    last = timing.to_local(record.last_snapshot_timestamp(period))
    now = timing.to_local(timestamp)
    if now < last or (now == last and not allow_equal):
        logger.debug(f"[Due] {record.name} {period}: {now.isoformat()} is not after last {last.isoformat()}")
        return None
    return last, now


def _log_decision(record: ZfsRecord, period: SnapshotPeriodKind, last: datetime, now: datetime, needed: bool) -> None:
    logger.debug(
        f"[Due] {record.name} {period}: last={last.isoformat()} now={now.isoformat()} → needed={needed}"
    )


def _elapsed(last: datetime, now: datetime) -> timedelta:
    # Same-zone aware subtraction ignores DST shifts; compare absolute instants
    return now.astimezone(timezone.utc) - last.astimezone(timezone.utc)

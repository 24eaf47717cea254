from datetime import datetime

import pytest

from core.model import zfs_property_names as names
from core.model.enum.snapshot_period_enum import SnapshotPeriodKind
from core.model.enum.zfs_object_kind_enum import ZfsObjectKind
from core.model.snapshot import Snapshot
from core.model.zfs_record import ZfsRecord
from core.schema.formatting_schema import FormattingConfig
from core.schema.snapshot_timing_schema import SnapshotTimingConfig

POLICY_ARGUMENTS = {
    "frequent": names.RETENTION_FREQUENT,
    "hourly": names.RETENTION_HOURLY,
    "daily": names.RETENTION_DAILY,
    "weekly": names.RETENTION_WEEKLY,
    "monthly": names.RETENTION_MONTHLY,
    "yearly": names.RETENTION_YEARLY,
    "deferral": names.RETENTION_PRUNE_DEFERRAL,
}


@pytest.fixture
def formatting():
    return FormattingConfig()


@pytest.fixture
def utc_timing():
    """Default timing evaluated on the UTC wall clock so results do not depend on the host zone"""
    return SnapshotTimingConfig(timezone="UTC")


@pytest.fixture
def make_pool():
    """Factory for a pool root with every policy property defined locally"""

    def _make_pool(
        name: str = "tank",
        *,
        enabled: bool = True,
        take: bool = True,
        prune: bool = True,
        bytes_available: int = 1000,
        bytes_used: int = 100,
        kind: ZfsObjectKind = ZfsObjectKind.FILESYSTEM,
        **policy: int,
    ) -> ZfsRecord:
        pool = ZfsRecord(name, kind, bytes_available=bytes_available, bytes_used=bytes_used)
        pool.update_property(names.ENABLED, enabled)
        pool.update_property(names.TAKE_SNAPSHOTS, take)
        pool.update_property(names.PRUNE_SNAPSHOTS, prune)
        for key, value in policy.items():
            pool.update_property(POLICY_ARGUMENTS[key], value)
        return pool

    return _make_pool


@pytest.fixture
def add_snapshot(formatting):
    """Factory that names, builds and inserts a scheduled snapshot"""

    def _add_snapshot(record: ZfsRecord, period: SnapshotPeriodKind, timestamp: datetime) -> Snapshot:
        return record.add_snapshot(record.create_snapshot(period, timestamp, formatting))

    return _add_snapshot

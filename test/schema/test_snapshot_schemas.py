from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from core.model.enum.snapshot_period_enum import SnapshotPeriodKind
from core.schema.formatting_schema import FormattingConfig
from core.schema.siaz_config_schema import LoggingConfig
from core.schema.snapshot_timing_schema import SnapshotTimingConfig

TS = datetime(2024, 5, 1, 6, 30, 15, tzinfo=timezone.utc)


class TestFormattingConfig:

    def test_default_snapshot_names(self):
        formatting = FormattingConfig()

        assert formatting.generate_short_snapshot_name(SnapshotPeriodKind.DAILY, TS) == "autosnap_2024-05-01_06:30:15_daily"
        assert (
            formatting.generate_full_snapshot_name("tank/data", SnapshotPeriodKind.FREQUENT, TS)
            == "tank/data@autosnap_2024-05-01_06:30:15_frequently"
        )

    def test_custom_components(self):
        formatting = FormattingConfig(prefix="bk", component_separator="-", timestamp_format="%Y%m%d", weekly_suffix="w")

        assert formatting.generate_short_snapshot_name(SnapshotPeriodKind.WEEKLY, TS) == "bk-20240501-w"

    def test_unscheduled_period_has_no_suffix(self):
        with pytest.raises(ValueError):
            FormattingConfig().suffix_for(SnapshotPeriodKind.MANUAL)


class TestSnapshotTimingConfig:

    def test_period_of_hour(self):
        timing = SnapshotTimingConfig(timezone="UTC")

        assert timing.get_period_of_hour(TS) == 2

    @pytest.mark.parametrize(
        "kwargs", [{"frequent_period": 7}, {"weekly_day": 8}, {"timezone": "Mars/Olympus"}, {"daily_time": "00:00"}]
    )
    def test_invalid_values_are_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            SnapshotTimingConfig(**kwargs)


def test_logging_level_is_normalized():
    assert LoggingConfig(level="debug").level == "DEBUG"

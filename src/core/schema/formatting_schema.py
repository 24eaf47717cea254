from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from core.model.enum.snapshot_period_enum import SnapshotPeriodKind


class FormattingConfig(BaseModel):
    """Snapshot naming: `<dataset>@<prefix><sep><timestamp><sep><suffix>`."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    prefix: str = Field(default="autosnap", min_length=1)
    component_separator: str = "_"
    timestamp_format: str = Field(default="%Y-%m-%d_%H:%M:%S", description="strftime format")
    frequent_suffix: str = "frequently"
    hourly_suffix: str = "hourly"
    daily_suffix: str = "daily"
    weekly_suffix: str = "weekly"
    monthly_suffix: str = "monthly"
    yearly_suffix: str = "yearly"

    def suffix_for(self, period: SnapshotPeriodKind) -> str:
        suffixes = {
            SnapshotPeriodKind.FREQUENT: self.frequent_suffix,
            SnapshotPeriodKind.HOURLY: self.hourly_suffix,
            SnapshotPeriodKind.DAILY: self.daily_suffix,
            SnapshotPeriodKind.WEEKLY: self.weekly_suffix,
            SnapshotPeriodKind.MONTHLY: self.monthly_suffix,
            SnapshotPeriodKind.YEARLY: self.yearly_suffix,
        }
        if period not in suffixes:
            raise ValueError(f"No snapshot name suffix for period '{period}'")
        return suffixes[period]

    def generate_short_snapshot_name(self, period: SnapshotPeriodKind, timestamp: datetime) -> str:
        sep = self.component_separator
        return f"{self.prefix}{sep}{timestamp.strftime(self.timestamp_format)}{sep}{self.suffix_for(period)}"

    def generate_full_snapshot_name(self, dataset_name: str, period: SnapshotPeriodKind, timestamp: datetime) -> str:
        return f"{dataset_name}@{self.generate_short_snapshot_name(period, timestamp)}"

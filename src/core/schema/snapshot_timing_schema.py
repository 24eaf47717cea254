from datetime import datetime, tzinfo
from zoneinfo import ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.util.time_util import resolve_timezone, to_local


class SnapshotTimingConfig(BaseModel):
    """
    When scheduled snapshots fall due.

    `timezone` selects the wall clock used for calendar comparisons
    (hour, day-of-year, week, month, year); None means the host's local zone.
    Periods fall due on calendar boundaries of that clock, so there are no
    per-period times of day to configure.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    frequent_period: int = Field(default=15, ge=1, le=60, description="Minutes per frequent slice of the hour")
    weekly_day: int = Field(default=1, ge=1, le=7, description="First day of week (ISO: 1=Mon..7=Sun)")
    timezone: str | None = None

    @field_validator("frequent_period", mode="after")
    @classmethod
    def _validate_frequent_period(cls, v: int) -> int:
        if 60 % v != 0:
            raise ValueError(f"frequent_period must divide an hour evenly, got {v}")
        return v

    @field_validator("timezone", mode="after")
    @classmethod
    def _validate_timezone(cls, v: str | None) -> str | None:
        if v:
            try:
                resolve_timezone(v)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    @property
    def tz(self) -> tzinfo:
        return resolve_timezone(self.timezone)

    def to_local(self, ts: datetime) -> datetime:
        return to_local(ts, self.tz)

    def get_period_of_hour(self, ts: datetime) -> int:
        """Index of the frequent slice of the hour that `ts` falls in."""
        return self.to_local(ts).minute // self.frequent_period

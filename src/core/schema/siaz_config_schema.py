import logging

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.model.zfs_property_names import DEFAULT_TEMPLATE_NAME
from core.schema.formatting_schema import FormattingConfig
from core.schema.snapshot_timing_schema import SnapshotTimingConfig


class TemplateConfig(BaseModel):
    """Naming and timing applied to every object whose template property names this entry."""

    model_config = ConfigDict(extra="ignore")

    formatting: FormattingConfig = Field(default_factory=FormattingConfig)
    snapshot_timing: SnapshotTimingConfig = Field(default_factory=SnapshotTimingConfig)


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class LoggingConfig(BaseModel):
    """Root logger level plus optional daily-rotated log file."""

    model_config = ConfigDict(extra="ignore")

    level: str = Field(default="INFO", description="DEBUG / INFO / WARNING / ERROR")
    log_to_file: bool = False
    log_dir: str = "logs"
    log_base_filename: str = "siaz"
    rotate_when: str = Field(default="midnight", description="TimedRotatingFileHandler `when`")
    backup_count: int = Field(default=7, ge=0)

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unsupported log level '{v}'")
        return level

    @property
    def level_number(self) -> int:
        return logging.getLevelNamesMapping()[self.level]

    def with_level(self, level: str | None) -> "LoggingConfig":
        """Copy with `level` replaced (and validated); None keeps the configured level."""
        if level is None:
            return self
        return LoggingConfig.model_validate({**self.model_dump(), "level": level})


class SiazConfig(BaseModel):
    """Whole settings file"""

    model_config = ConfigDict(extra="ignore")

    dry_run: bool = Field(default=False, description="Plan and log mutations without applying them")
    take_snapshots: bool = True
    prune_snapshots: bool = True
    sync_concurrency: int = Field(default=4, ge=1, le=16, description="Parallel per-pool workers")
    templates: dict[str, TemplateConfig] = Field(
        default_factory=lambda: {DEFAULT_TEMPLATE_NAME: TemplateConfig()}
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("templates", mode="after")
    @classmethod
    def _require_default_template(cls, v: dict[str, TemplateConfig]) -> dict[str, TemplateConfig]:
        if DEFAULT_TEMPLATE_NAME not in v:
            raise ValueError(f"templates must define '{DEFAULT_TEMPLATE_NAME}'")
        return v

import logging
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.schema.siaz_config_schema import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


class LocalIsoFormatter(logging.Formatter):
    """Record time as ISO-8601 with the host's UTC offset, to the second."""

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="seconds")


def build_handlers(config: LoggingConfig) -> list[logging.Handler]:
    """Stdout handler, plus a rotating file under `log_dir` when file logging is on."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if config.log_to_file:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            TimedRotatingFileHandler(
                filename=log_dir / f"{config.log_base_filename}.log",
                when=config.rotate_when,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )

    formatter = LocalIsoFormatter(fmt=LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(config: LoggingConfig | None = None, override_level: str | None = None) -> LoggingConfig:
    """
    Configure the root logger from the settings file section.

    Handlers are installed only when the root logger has none yet, so a second
    call (or an embedding application) keeps its handlers and only the level
    changes. Returns the effective config.
    """
    effective = (config or LoggingConfig()).with_level(override_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(effective.level_number)
    if not root_logger.handlers:
        for handler in build_handlers(effective):
            root_logger.addHandler(handler)
    return effective

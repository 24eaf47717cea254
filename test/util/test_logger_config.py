import logging
from logging.handlers import TimedRotatingFileHandler

import pytest
from pydantic import ValidationError

from core.schema.siaz_config_schema import LoggingConfig
from core.util.logger_config import LocalIsoFormatter, build_handlers, setup_logging


@pytest.fixture
def restore_root_level():
    root_logger = logging.getLogger()
    level = root_logger.level
    yield root_logger
    root_logger.setLevel(level)


class TestLoggingConfig:

    def test_level_number_follows_level_name(self):
        assert LoggingConfig(level="warning").level_number == logging.WARNING

    def test_with_level_overrides_and_validates(self):
        config = LoggingConfig(level="INFO")

        assert config.with_level("debug").level == "DEBUG"
        assert config.with_level(None) is config
        with pytest.raises(ValidationError):
            config.with_level("chatty")


class TestBuildHandlers:

    def test_console_only_by_default(self):
        handlers = build_handlers(LoggingConfig())

        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, LocalIsoFormatter)

    def test_when_file_logging_on_then_rotating_file_is_added(self, tmp_path):
        # Arrange
        config = LoggingConfig(log_to_file=True, log_dir=str(tmp_path / "logs"), log_base_filename="cycle", backup_count=3)

        # Act
        handlers = build_handlers(config)

        # Assert
        file_handler = handlers[1]
        try:
            assert isinstance(file_handler, TimedRotatingFileHandler)
            assert file_handler.backupCount == 3
            assert (tmp_path / "logs" / "cycle.log").exists()
        finally:
            for handler in handlers:
                handler.close()

    def test_formatted_record_carries_offset_timestamp(self):
        record = logging.LogRecord("SnapshotExecutor", logging.INFO, __file__, 1, "[Take] done", None, None)

        line = LocalIsoFormatter(fmt="%(asctime)s %(message)s").format(record)

        timestamp = line.split(" ", 1)[0]
        assert "T" in timestamp
        assert timestamp[-6] in "+-"
        assert line.endswith("[Take] done")


def test_setup_logging_applies_override_level(restore_root_level):
    effective = setup_logging(LoggingConfig(level="INFO"), override_level="debug")

    assert effective.level == "DEBUG"
    assert restore_root_level.level == logging.DEBUG

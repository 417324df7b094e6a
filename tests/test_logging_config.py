"""Tests for logging setup."""

import json
import logging

from extkit.config import Settings
from extkit.logging_config import JsonFormatter, setup_logging


def _settings(tmp_path, **kwargs):
    kwargs.setdefault("log_dir", str(tmp_path / "logs"))
    kwargs.setdefault("cache_dir", str(tmp_path / "cache"))
    return Settings(**kwargs)


class TestSetupLogging:
    """Test configuring the extkit logger."""

    def test_console_handler(self, tmp_path):
        logger = setup_logging(config=_settings(tmp_path, log_level="DEBUG"))

        assert logger.name == "extkit"
        assert logger.level == logging.DEBUG
        assert [type(h) for h in logger.handlers] == [logging.StreamHandler]

    def test_file_handler(self, tmp_path):
        """Test that each context logs to its own rotating file."""
        config = _settings(tmp_path, log_console_enabled=False, log_file_enabled=True)

        logger = setup_logging(context="test", config=config)
        logging.getLogger("extkit.build.runner").info("validated bundle")
        for handler in logger.handlers:
            handler.flush()

        log_file = tmp_path / "logs" / "test.log"
        assert log_file.exists()
        assert "validated bundle" in log_file.read_text()

    def test_repeated_setup_replaces_handlers(self, tmp_path):
        config = _settings(tmp_path)

        setup_logging(config=config)
        logger = setup_logging(config=config)

        assert len(logger.handlers) == 1

    def test_foreign_handlers_kept(self, tmp_path):
        logger = logging.getLogger("extkit")
        foreign = logging.NullHandler()
        logger.addHandler(foreign)
        try:
            setup_logging(config=_settings(tmp_path))

            assert foreign in logger.handlers
        finally:
            logger.removeHandler(foreign)


class TestJsonFormatter:
    """Test structured log output."""

    def test_format(self):
        record = logging.LogRecord(
            "extkit.build.catalog", logging.WARNING, __file__, 1, "Skipping %s", ("a.pyz",), None
        )

        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "extkit.build.catalog"
        assert payload["message"] == "Skipping a.pyz"
        assert "ts" in payload

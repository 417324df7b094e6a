"""
Logging setup for extkit.

Configures the ``extkit`` logger hierarchy from settings: a console handler
and, when enabled, a rotating file handler per context (``cli``, ``test``).
"""

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from typing import Optional

from extkit.config import Settings, settings as default_settings

_HANDLER_MARK = "_extkit_handler"


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    return logging.Formatter(
        fmt="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(context: str = "cli", config: Optional[Settings] = None) -> logging.Logger:
    """
    Configure the ``extkit`` logger.

    Calling this more than once replaces previously installed handlers, so
    it is safe to call from every command.

    Args:
        context: Name of the running workflow, used for the log file name
        config: Settings to use (defaults to the global settings)

    Returns:
        The configured ``extkit`` logger

    Raises:
        PermissionError: If the log directory cannot be created
    """
    config = config or default_settings
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logger = logging.getLogger("extkit")
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    formatter = _build_formatter(config.log_format)

    if config.log_console_enabled:
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        setattr(console, _HANDLER_MARK, True)
        logger.addHandler(console)

    if config.log_file_enabled:
        log_dir = config.log_directory
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{context}.log",
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_MARK, True)
        logger.addHandler(file_handler)

    return logger

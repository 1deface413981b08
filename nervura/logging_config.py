"""
Logging setup for the CLI.

Console output goes to stderr so exported content and command output on
stdout stay clean. Text mode tags each line with the level in color; JSON
mode writes one object per line, carrying any ``extra={...}`` fields such as
the record id a warning is about.
"""

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Attributes every LogRecord has; anything else was passed through ``extra``
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Third-party loggers that are chatty at INFO/DEBUG
QUIET_LOGGERS = ("PIL", "pyexcel", "pyexcel_io", "openpyxl")


class JSONFormatter(logging.Formatter):
    """One JSON object per line: ``time``, ``level``, ``logger``, ``message`` and extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Short ``HH:MM:SS LEVEL logger: message`` lines with a colored level tag."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        # format a copy; other handlers share the record
        tagged = logging.makeLogRecord(vars(record))
        level = f"{record.levelname:<7}"
        if self.use_color:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"
        tagged.levelname = level
        return super().format(tagged)


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """
    Replace the root logger's handlers with the CLI's console (and file) output.

    Args:
        level: Log level name for the root logger
        json_format: JSON lines instead of colored text on the console
        log_file: Optional path; always written as JSON lines, without color
    """
    console_formatter = "json" if json_format else "text"
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": console_formatter,
        }
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": log_file,
            "encoding": "utf-8",
            "formatter": "json",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JSONFormatter},
                "text": {"()": ColoredFormatter},
            },
            "handlers": handlers,
            "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
            "root": {"level": level.upper(), "handlers": list(handlers)},
        }
    )

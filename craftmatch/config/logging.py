"""
Logging setup for Craftmatch.

One root handler on stdout, either a coloured console line or one JSON
object per record. ``extra=`` fields are appended to both.

    CRAFTMATCH_LOG_LEVEL   DEBUG | INFO | WARNING | ERROR   (default INFO)
    CRAFTMATCH_LOG_FORMAT  console | json                  (default console)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone


LOG_LEVEL = os.getenv("CRAFTMATCH_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("CRAFTMATCH_LOG_FORMAT", "console")

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}

_QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "qdrant_client", "grpc", "uvicorn.access")


def _extras(record: logging.LogRecord) -> dict:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED and not k.startswith("_")}


class ConsoleFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [k=v, ...]``, coloured on a TTY."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if sys.stdout.isatty():
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"

        parts = [self.formatTime(record, "%H:%M:%S"), level, f"{record.name}: {record.getMessage()}"]
        extras = _extras(record)
        if extras:
            parts.append("[" + ", ".join(f"{k}={v}" for k, v in extras.items()) + "]")

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_extras(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_configured = False


def configure_logging() -> None:
    """Install the stdout handler on the root logger. Idempotent."""
    global _configured
    if _configured:
        return

    level = getattr(logging, LOG_LEVEL, logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if LOG_FORMAT == "json" else ConsoleFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


__all__ = [
    "ConsoleFormatter",
    "JSONFormatter",
    "get_logger",
    "configure_logging",
    "LOG_LEVEL",
    "LOG_FORMAT",
]

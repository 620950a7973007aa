"""JSON structured logging that redacts sensitive attribute values."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from typing import IO, Optional, Union

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = frozenset(
    {
        "psk",
        "key",
        "session_key",
        "password",
        "secret",
        "token",
        "private",
        "private_key",
        "access_token",
    }
)

_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
}


class RedactingJSONFormatter(logging.Formatter):
    """Format records as one JSON object per line, redacting sensitive keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname),
            "msg": record.getMessage(),
        }
        for name, value in record.__dict__.items():
            if name in _RESERVED_ATTRS or name.startswith("_"):
                continue
            entry[name] = REDACTED if name.lower() in SENSITIVE_KEYS else value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def new_logger(level: int = logging.INFO, stream: Optional[IO[str]] = None) -> logging.Logger:
    """Return a standalone JSON logger writing to stream (stderr by default)."""
    logger = logging.Logger("nabu", level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(RedactingJSONFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def logger_for_level(
    level_name: Union[str, None] = "info", stream: Optional[IO[str]] = None
) -> logging.Logger:
    """Return a JSON logger for a text level; unknown names mean info."""
    name = (level_name or "").lower()
    if name == "debug":
        level = logging.DEBUG
    elif name in ("warn", "warning"):
        level = logging.WARNING
    elif name == "error":
        level = logging.ERROR
    else:
        level = logging.INFO
    return new_logger(level, stream)
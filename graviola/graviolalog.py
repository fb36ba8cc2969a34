"""Loggers writing one JSON object per line, and a logger that discards everything."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from typing import IO

from graviola.config import LogConfig

__all__ = ["JSONFormatter", "parse_level", "new_logger", "new_noop_logger"]

_LOGGER_NAME = "graviola"

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
}


class JSONFormatter(logging.Formatter):
    """Formats a record as a JSON object with time, level, msg and any extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "time": datetime.fromtimestamp(record.created)
            .astimezone()
            .isoformat(timespec="milliseconds"),
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname),
            "msg": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def parse_level(level: str) -> int:
    """Map a configured level name to a logging level; unknown names mean INFO."""
    return {
        "ERROR": logging.ERROR,
        "WARN": logging.WARNING,
        "DEBUG": logging.DEBUG,
    }.get(level.upper(), logging.INFO)


def new_logger(conf: LogConfig, stream: IO[str] | None = None) -> logging.Logger:
    """A logger writing JSON lines to ``stream`` (standard output by default)."""
    logger = logging.Logger(_LOGGER_NAME, level=parse_level(conf.level))
    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def new_noop_logger() -> logging.Logger:
    """A logger that is never enabled and writes nothing."""
    logger = logging.Logger(_LOGGER_NAME)
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    logger.disabled = True
    return logger
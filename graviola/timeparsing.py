"""Parsing of durations and points in time used throughout the configuration."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

__all__ = ["TimeParsingError", "parse_duration", "parse_date"]


class TimeParsingError(ValueError):
    """Raised when a duration or a date cannot be parsed."""


_DURATION_RE = re.compile(r"[0-9]+(d|h|m|s|ms)")
_UNIX_TIMESTAMP_RE = re.compile(r"[0-9]+")
_RELATIVE_TIMESTAMP_RE = re.compile(r"now(-[0-9]+(?:d|h|m|s|ms))?")
_RFC3339_RE = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})"
    r"(?:\.([0-9]+))?(Z|[+-][0-9]{2}:[0-9]{2})"
)

_NOW = "now"
_RELATIVE_SEPARATOR = "-"

_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as ``5m``, ``250ms`` or ``2d``."""
    text = value.strip(" ")
    match = _DURATION_RE.fullmatch(text)
    if match is None:
        raise TimeParsingError(f"value {text} is not a duration")

    unit = match.group(1)
    digits = text[: -len(unit)]
    try:
        return int(digits) * _UNITS[unit]
    except (OverflowError, ValueError) as exc:
        raise TimeParsingError(f"unable to parse {digits} as integer") from exc


def parse_date(value: str, now: datetime) -> datetime:
    """Parse an RFC 3339 date, a ``now[-<duration>]`` expression or a unix timestamp."""
    text = value.strip(" ")
    last_error: TimeParsingError | None = None
    for parser in (_parse_rfc3339, _parse_relative_timestamp, _parse_unix_timestamp):
        try:
            return parser(text, now)
        except TimeParsingError as exc:
            last_error = exc
    raise TimeParsingError(f"unable to parse time: {last_error}") from last_error


def _parse_rfc3339(text: str, _now: datetime) -> datetime:
    match = _RFC3339_RE.fullmatch(text)
    if match is None:
        raise TimeParsingError(f"value {text} is not an RFC3339 date")

    year, month, day, hour, minute, second, fraction, offset = match.groups()
    microsecond = int((fraction or "0")[:6].ljust(6, "0"))
    try:
        if offset == "Z":
            tzinfo = timezone.utc
        else:
            sign = -1 if offset[0] == "-" else 1
            off_hours, off_minutes = int(offset[1:3]), int(offset[4:6])
            if off_minutes >= 60:
                raise ValueError("offset minutes out of range")
            tzinfo = timezone(sign * timedelta(hours=off_hours, minutes=off_minutes))
        return datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second),
            microsecond, tzinfo=tzinfo,
        )
    except ValueError as exc:
        raise TimeParsingError(f"value {text} is not a valid RFC3339 date: {exc}") from exc


def _parse_relative_timestamp(text: str, now: datetime) -> datetime:
    if _RELATIVE_TIMESTAMP_RE.fullmatch(text) is None:
        raise TimeParsingError(f"value {text} is not a relative date")

    if text == _NOW:
        return now

    parts = text.split(_RELATIVE_SEPARATOR)
    if len(parts) <= 1:
        raise TimeParsingError(f"value {text} is not a relative date")

    try:
        period = parse_duration(parts[1])
    except TimeParsingError as exc:
        raise TimeParsingError(f"error parsing period on date: {exc}") from exc

    try:
        return now - period
    except OverflowError as exc:
        raise TimeParsingError(f"value {text} is out of range") from exc


def _parse_unix_timestamp(text: str, _now: datetime) -> datetime:
    if _UNIX_TIMESTAMP_RE.fullmatch(text) is None:
        raise TimeParsingError(f"value {text} is not a unix timestamp")

    try:
        return datetime.fromtimestamp(int(text), tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise TimeParsingError(f"value {text} is out of range") from exc
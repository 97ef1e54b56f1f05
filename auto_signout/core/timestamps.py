"""Normalise stored time values into epoch milliseconds.

Session documents are written by several clients over the years, so ``time_in``
may hold a native timestamp (any ``datetime``, including store driver
subclasses), a bare ``date`` or an ISO-8601 string. Anything else is reported
as unrepresentable (``None``) rather than raising.
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Union


StoredTimestamp = Union[datetime, date, str]


def _aware(dt: datetime) -> datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _datetime_millis(dt: datetime) -> int:
    return int(_aware(dt).timestamp() * 1000)


def _parse_iso(raw: str) -> datetime | None:
    text = raw.strip()
    if not text:
        return None
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def to_millis(value: object) -> int | None:
    match value:
        case datetime():
            return _datetime_millis(value)
        case date():
            return _datetime_millis(datetime.combine(value, time.min))
        case str():
            parsed = _parse_iso(value)
            return _datetime_millis(parsed) if parsed is not None else None
        case _:
            return None


def to_datetime(value: object) -> datetime | None:
    millis = to_millis(value)
    if millis is None:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from auto_signout.config import settings


APP_TIMEZONE = settings.app_timezone or 'UTC'
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedTimeProvider(TimeProvider):
    """Always answers the same instant. Used by tests and manual replays."""

    def __init__(self, instant: datetime) -> None:
        self._instant = ensure_aware(instant)

    def now(self) -> datetime:
        return self._instant


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        raise ValueError('Naive datetime not allowed in business logic')
    return dt


default_time_provider = TimeProvider()

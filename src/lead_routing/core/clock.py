"""Clock abstraction shared by assignment and SLA processing."""

from datetime import datetime, timedelta, timezone
from typing import Optional


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    """Source of the current time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Manually driven clock for simulations and tests."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start or datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime):
        self._now = ensure_utc(value)

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta built from kwargs (minutes=46, ...)."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

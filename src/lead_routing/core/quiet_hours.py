"""Tenant quiet-hours window."""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .clock import ensure_utc

logger = logging.getLogger(__name__)


def resolve_timezone(name: str) -> ZoneInfo:
    """Load an IANA zone, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}; using UTC")
        return ZoneInfo("UTC")


def is_quiet_hours(now: datetime, timezone_name: str, start_hour: int, end_hour: int) -> bool:
    """True when the tenant-local hour falls in [start_hour, end_hour).

    A window with start_hour > end_hour wraps past midnight (21 -> 8).
    Equal bounds mean no quiet hours.
    """
    local = ensure_utc(now).astimezone(resolve_timezone(timezone_name))
    hour = local.hour

    if start_hour == end_hour:
        return False
    if start_hour < end_hour:
        return start_hour <= hour < end_hour
    return hour >= start_hour or hour < end_hour

"""Time helpers: local zone resolution and local <-> UTC conversion."""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from machine_oee.config import settings

logger = structlog.get_logger()


@lru_cache(maxsize=None)
def resolve_zone(name: str, fallback: str) -> ZoneInfo:
    """Return the zone called ``name``, or ``fallback`` when the platform lacks it."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Time zone not found, using fallback", zone=name, fallback=fallback)
        return ZoneInfo(fallback)


def local_tz() -> ZoneInfo:
    return resolve_zone(settings.TIMEZONE, settings.TIMEZONE_FALLBACK)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_to_utc(local: datetime, tz: ZoneInfo = None) -> datetime:
    """Interpret a naive local wall-clock datetime in ``tz`` and return it in UTC."""
    tz = tz or local_tz()
    if local.tzinfo is None:
        local = local.replace(tzinfo=tz)
    return local.astimezone(timezone.utc)


def ensure_utc(instant: datetime) -> datetime:
    """Normalize a stored instant to an aware UTC datetime (naive values are UTC)."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def local_day_range_utc(start_date: date, end_date: date, tz: ZoneInfo = None) -> Tuple[datetime, datetime]:
    """
    UTC bounds of the inclusive local calendar range [start_date, end_date].

    The end bound is the last microsecond of ``end_date``.
    """
    start_local = datetime.combine(start_date, time.min)
    end_local = datetime.combine(end_date + timedelta(days=1), time.min) - timedelta(microseconds=1)
    return local_to_utc(start_local, tz), local_to_utc(end_local, tz)

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

DEFAULT_BUSINESS_TIMEZONE = "Asia/Colombo"


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD" (None / "" -> None). Raises ValueError on bad input."""
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s[:10])


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


# =============================================================================
# Business wall clock
# =============================================================================

def business_tz(name: str | None = None) -> ZoneInfo:
    """Configured business timezone (BUSINESS_TIMEZONE)."""
    if name is None:
        name = DEFAULT_BUSINESS_TIMEZONE
        if has_app_context():
            name = current_app.config.get("BUSINESS_TIMEZONE") or DEFAULT_BUSINESS_TIMEZONE
    return ZoneInfo(name)


def to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    """UTC-naive (or aware) datetime -> aware datetime in tz."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def local_to_utc_naive(dt: datetime) -> datetime:
    """Aware local datetime -> UTC-naive (storage form)."""
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def local_midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def local_day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """[local midnight, next local midnight) for day, as UTC-naive datetimes."""
    start = local_midnight(day, tz)
    end = local_midnight(day + timedelta(days=1), tz)
    return local_to_utc_naive(start), local_to_utc_naive(end)


def local_today(tz: ZoneInfo, now: datetime | None = None) -> date:
    return to_local(now or utcnow(), tz).date()

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from stockledger.services.idempotency import as_utc

DEFAULT_TIMEZONE = "UTC"


def resolve_zone(tz_name: str | None) -> ZoneInfo:
    if not tz_name or not tz_name.strip():
        return ZoneInfo(DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(tz_name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_calendar_date(instant: datetime, tz_name: str | None) -> str:
    """``YYYY-MM-DD`` of ``instant`` on the tenant's wall clock."""
    return as_utc(instant).astimezone(resolve_zone(tz_name)).strftime("%Y-%m-%d")

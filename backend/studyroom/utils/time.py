from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def local_today(tz_name: str, *, now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return now.astimezone(ZoneInfo(tz_name)).date()


def upcoming_days(start: date, count: int = 3) -> list[date]:
    """Today, tomorrow, the day after, ..."""
    return [start + timedelta(days=offset) for offset in range(count)]


def utc_naive_to_local(dt: datetime, tz_name: str) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))

"""Date helpers shared by the weather, index and summary code.

All calendar arithmetic happens in UTC; naive timestamps are taken as UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def midnight(day: date) -> datetime:
    """UTC midnight of a calendar day."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def utc_day(value: datetime) -> date:
    return to_utc(value).date()


def days_ago(now: datetime, days: int) -> datetime:
    return to_utc(now) - timedelta(days=days)


def format_duration(start: Optional[datetime], end: Optional[datetime]) -> str:
    """Render an elapsed time as 'Xm Ys'."""
    if not start or not end:
        return "N/A"
    seconds = (to_utc(end) - to_utc(start)).total_seconds()
    if seconds < 0:
        return "N/A"
    minutes, rest = divmod(int(seconds), 60)
    return f"{minutes}m {rest}s"


def format_relative_time(value: Optional[datetime], now: datetime) -> str:
    """Human-friendly 'time ago' text used for last failure/success."""
    if not value:
        return "N/A"
    delta = to_utc(now) - to_utc(value)
    days = delta.days
    if days <= 0:
        hours = int(delta.total_seconds() // 3600)
        return "Just now" if hours <= 0 else f"{hours}h ago"
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days} days ago"
    return to_utc(value).strftime("%Y-%m-%d")

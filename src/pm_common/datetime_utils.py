"""UTC datetime utilities."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def window_start(days: int, now: datetime | None = None) -> datetime | None:
    """Start of a trailing window of `days` days; None means all time."""
    if days <= 0:
        return None
    return (now or utc_now()) - timedelta(days=days)

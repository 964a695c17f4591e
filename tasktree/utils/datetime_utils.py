"""DateTime utility functions for tasktree."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Current time as a naive UTC datetime.

    SQLite DateTime columns drop tzinfo, so every timestamp the engine
    stores or compares is naive UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_relative_day(dt: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """
    Format a timestamp relative to today for the tree's detail line.

    Args:
        dt: Naive UTC datetime to format (None yields None)
        now: Reference time, defaults to utc_now()

    Returns:
        "Today", "Yesterday", "N days ago" within a week, otherwise a date
        like "Mar 4, 2026"

    Examples:
        >>> now = datetime(2026, 3, 10, 12, 0)
        >>> format_relative_day(datetime(2026, 3, 10, 8, 0), now)
        'Today'
        >>> format_relative_day(datetime(2026, 3, 7, 8, 0), now)
        '3 days ago'
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)

    now = now or utc_now()
    diff_days = (now.date() - dt.date()).days

    if diff_days == 0:
        return "Today"
    if diff_days == 1:
        return "Yesterday"
    if 1 < diff_days < 7:
        return f"{diff_days} days ago"
    return f"{dt.strftime('%b')} {dt.day}, {dt.year}"

"""
Timestamp helpers.

All timestamps are stored as timezone-naive UTC so that SQLite and
PostgreSQL compare them the same way.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None

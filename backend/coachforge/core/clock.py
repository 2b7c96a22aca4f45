# backend/coachforge/core/clock.py
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    # Always timezone-aware UTC
    return datetime.now(timezone.utc)


def as_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize datetimes for safe comparison:
    - naive values (SQLite returns these) are assumed to be UTC
    - aware values are converted to UTC
    """
    if dt is None:
        return None
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

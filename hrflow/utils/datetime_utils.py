"""
Timezone-aware datetime helpers.
- Store and compare in UTC.
- SQLite hands back naive datetimes; treat those as UTC before comparing.
"""
from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc


def now_utc() -> datetime:
    """Current time in UTC (timezone-aware)."""
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """If dt is naive, treat as UTC and return timezone-aware UTC. If already aware, convert to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def within_window(now: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    """True when now lies in [start, end); a missing bound is open."""
    now = ensure_utc(now)
    if start is not None and now < ensure_utc(start):
        return False
    if end is not None and now >= ensure_utc(end):
        return False
    return True


def iso_8601_utc(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with Z for UTC."""
    if dt is None:
        return None
    s = ensure_utc(dt).isoformat()
    if s.endswith("+00:00"):
        s = s[:-6] + "Z"
    return s

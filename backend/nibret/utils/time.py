"""Timezone-aware clock helpers."""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def window_start(days: int, now: datetime | None = None) -> datetime:
    """Start of a lookback window of ``days`` days ending at ``now``."""
    return (now or utcnow()) - timedelta(days=days)

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def now_utc() -> datetime:
    """Current time, timezone-aware.

    Note: Wrapped so tests can inject a manual clock instead.
    """
    return datetime.now(timezone.utc)


def format_hhmm(value: timedelta) -> str:
    """Render a duration as zero-padded ``HH:MM`` (seconds truncated)."""
    total_minutes = max(int(value.total_seconds()), 0) // 60
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"

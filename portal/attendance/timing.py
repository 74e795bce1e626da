"""
Elapsed-time arithmetic for time entries.

``work_elapsed`` and ``break_elapsed`` feed live displays only.
``finalize_hours`` is the single source of a completed entry's ``total_hours``.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

SECONDS_PER_HOUR = 3600


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed(now: datetime, since: datetime) -> timedelta:
    delta = ensure_aware(now) - ensure_aware(since)
    return max(delta, timedelta(0))


def work_elapsed(now: datetime, clock_in: datetime) -> timedelta:
    """Time since clock-in, for display while the entry is active."""
    return _elapsed(now, clock_in)


def break_elapsed(now: datetime, break_start: datetime) -> timedelta:
    """Time since the current break started, for display while on break."""
    return _elapsed(now, break_start)


def finalize_hours(
    clock_in: datetime,
    clock_out: datetime,
    total_break_seconds: Union[int, float, None]
) -> float:
    """
    Worked hours for a completed entry.

    ``(clock_out - clock_in - breaks) / 3600``, never below zero.
    """
    span = (ensure_aware(clock_out) - ensure_aware(clock_in)).total_seconds()
    worked = span - float(total_break_seconds or 0)
    return max(0.0, worked / SECONDS_PER_HOUR)


def format_duration(duration: Optional[timedelta]) -> str:
    """Render a duration as HH:MM:SS."""
    if duration is None:
        return "00:00:00"
    total = max(int(duration.total_seconds()), 0)
    hours, remainder = divmod(total, SECONDS_PER_HOUR)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

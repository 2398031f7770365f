"""Shared time helpers for the bot package."""
from __future__ import annotations

from datetime import datetime, time, timedelta, tzinfo
from typing import Callable

Clock = Callable[[], datetime]


def local_clock(zone: tzinfo) -> Clock:
    """Return a zero-argument callable giving the current time in ``zone``."""
    def now() -> datetime:
        return datetime.now(zone)
    return now


def next_occurrence(time_of_day: time, now: datetime) -> datetime:
    """Resolve a time of day to today at that time, or tomorrow if it already elapsed.

    The result carries ``now``'s timezone; a time equal to ``now`` stays today.
    """
    candidate = datetime.combine(now.date(), time_of_day, tzinfo=now.tzinfo)
    if candidate < now:
        candidate = datetime.combine(now.date() + timedelta(days=1), time_of_day, tzinfo=now.tzinfo)
    return candidate


def format_hhmm(dt: datetime) -> str:
    return f"{dt:%H:%M}"


def format_date(dt: datetime) -> str:
    return f"{dt:%d/%m/%Y}"

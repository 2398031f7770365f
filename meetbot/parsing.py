"""Validation of /gamemeet arguments into a MeetupInfo."""
from __future__ import annotations

import logging
import re
from datetime import datetime, time
from typing import Optional, Sequence

from .errors import ValidationError
from .models import MeetupInfo, Member
from .utils import next_occurrence

logger = logging.getLogger(__name__)

TIME_TOKEN = re.compile(r"^[0-9]{2}:[0-9]{2}$")
USAGE = "/gamemeet <game> <HH:MM> [max_participants]"


def sanitize_topic(raw: str) -> str:
    """Normalize a game name: trimmed, lowercase, whitespace runs collapsed into dashes.

    Raises:
        ValidationError: If nothing but whitespace was given.
    """
    topic = raw.strip()
    if not topic:
        raise ValidationError("Game name cannot be empty")
    topic = topic.lower()
    topic = re.sub(r"\s+", " ", topic)
    return topic.replace(" ", "-")


def parse_time_token(token: str, now: datetime) -> datetime:
    """Parse ``HH:MM`` (24-hour, two digits each) into its next occurrence after ``now``."""
    if not TIME_TOKEN.match(token):
        raise ValidationError("Bad time format! Use HH:MM, for example 21:00")
    hour, minute = (int(part) for part in token.split(":"))
    if hour > 23 or minute > 59:
        raise ValidationError(f"{token} is not a valid time of day")
    return next_occurrence(time(hour, minute), now)


def parse_capacity(token: Optional[str]) -> Optional[int]:
    """Parse the optional participant limit; a missing token means unbounded."""
    if token is None:
        return None
    try:
        capacity = int(token)
    except ValueError:
        raise ValidationError(f"Max participants must be a number, got {token!r}")
    if capacity <= 0:
        raise ValidationError("Max participants must be at least 1")
    return capacity


def build_info(owner: Member, args: Sequence[str], now: datetime) -> MeetupInfo:
    """Turn the raw command arguments into a validated MeetupInfo.

    Args:
        owner: Member issuing the command.
        args: ``[game, HH:MM, max_participants?]``.
        now: Current timezone-aware time used to resolve the start.

    Raises:
        ValidationError: On bad usage or any malformed token.
    """
    if len(args) < 2:
        raise ValidationError(f"Bad usage! Use {USAGE}")
    topic = sanitize_topic(args[0])
    logger.debug("sanitized game name: %s", topic)
    start_at = parse_time_token(args[1], now)
    capacity = parse_capacity(args[2] if len(args) > 2 else None)
    return MeetupInfo(owner=owner, topic=topic, start_at=start_at, capacity=capacity)

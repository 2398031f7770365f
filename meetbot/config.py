"""Configuration loading for the game meetup bot.

Defines Pydantic models for settings and reads environment variables (via
python-dotenv when a .env file is present).
"""
from __future__ import annotations

import logging
import os
from datetime import timedelta
from typing import Optional

import zoneinfo
from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class LifecycleConfig(BaseModel):
    """Timing policy applied to every meetup.

    Attributes:
        reminder_lead: How long before the start participants get a reminder.
        provision_lead: How long before the start the workspace is created.
        absence_delay: How long after the start absent participants are pinged.
        occupancy_period: Interval of the "is anybody still there" check.
        max_duration: Hard ceiling on a meetup's life after its start; None
            lets the occupancy check alone decide when it is over.
    """
    reminder_lead: timedelta = timedelta(minutes=10)
    provision_lead: timedelta = timedelta(minutes=30)
    absence_delay: timedelta = timedelta(minutes=5)
    occupancy_period: timedelta = timedelta(minutes=15)
    max_duration: Optional[timedelta] = None


class Settings(BaseModel):
    """Typed configuration values for the bot.

    Values are primarily read from environment variables, see
    ``load_settings`` for the list of supported variables.
    """
    telegram_bot_token: str
    tz: str = "Europe/Berlin"
    workspace_chat_id: int | None = None
    log_level: str = "INFO"

    reminder_minutes: int = 10
    provision_minutes: int = 30
    absence_minutes: int = 5
    occupancy_check_minutes: int = 15
    max_duration_minutes: int | None = None

    def tzinfo(self) -> zoneinfo.ZoneInfo:
        """Return ZoneInfo instance for the configured time zone."""
        return zoneinfo.ZoneInfo(self.tz)

    def lifecycle_config(self) -> LifecycleConfig:
        """Build a LifecycleConfig from the flat minute values.

        Non-positive values fall back to the defaults, except the reminder and
        provisioning leads which may be zero.

        Returns:
            LifecycleConfig: Validated timing policy.
        """
        defaults = LifecycleConfig()

        def minutes(value: int, default: timedelta, allow_zero: bool = False) -> timedelta:
            if value > 0 or (allow_zero and value == 0):
                return timedelta(minutes=value)
            return default

        max_duration = None
        if self.max_duration_minutes is not None and self.max_duration_minutes > 0:
            max_duration = timedelta(minutes=self.max_duration_minutes)
        return LifecycleConfig(
            reminder_lead=minutes(self.reminder_minutes, defaults.reminder_lead, allow_zero=True),
            provision_lead=minutes(self.provision_minutes, defaults.provision_lead, allow_zero=True),
            absence_delay=minutes(self.absence_minutes, defaults.absence_delay),
            occupancy_period=minutes(self.occupancy_check_minutes, defaults.occupancy_period),
            max_duration=max_duration,
        )


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %s", name, raw, default)
        return default


def load_settings() -> Settings:
    """Load Settings from environment variables (optionally from .env).

    Supported variables: BOT_TOKEN, TIMEZONE, WORKSPACE_CHAT_ID, LOG_LEVEL,
    MEETUP_REMINDER_MINUTES, MEETUP_PROVISION_MINUTES, MEETUP_ABSENCE_MINUTES,
    MEETUP_OCCUPANCY_CHECK_MINUTES, MEETUP_MAX_DURATION_MINUTES.

    Returns:
        Settings: Parsed configuration model.
    """
    # Load from .env if present
    load_dotenv()
    token = os.getenv("BOT_TOKEN")
    if not token:
        logger.warning("BOT_TOKEN is not set; the bot will not start.")
        token = ""  # allow object creation; main refuses to start without it

    return Settings(
        telegram_bot_token=token,
        tz=os.getenv("TIMEZONE", "Europe/Berlin"),
        workspace_chat_id=_env_int("WORKSPACE_CHAT_ID", None),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        reminder_minutes=_env_int("MEETUP_REMINDER_MINUTES", 10),
        provision_minutes=_env_int("MEETUP_PROVISION_MINUTES", 30),
        absence_minutes=_env_int("MEETUP_ABSENCE_MINUTES", 5),
        occupancy_check_minutes=_env_int("MEETUP_OCCUPANCY_CHECK_MINUTES", 15),
        max_duration_minutes=_env_int("MEETUP_MAX_DURATION_MINUTES", None),
    )

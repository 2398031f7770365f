"""Exception types raised by the meetup core and the transport adapter."""
from __future__ import annotations

from typing import Any, Optional


class MeetupError(Exception):
    """Base class for every error the bot raises on purpose."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.details = details


class ValidationError(MeetupError):
    """A creation request carried a bad topic, time or capacity token."""


class ProvisionError(MeetupError):
    """The transport refused to create a meetup workspace."""


class DispatchMiss(MeetupError):
    """An interaction token does not resolve to a live action."""

    def __init__(self, token: str):
        super().__init__(f"Unknown interaction token {token!r}", details={"token": token})
        self.token = token


class DeliveryError(MeetupError):
    """Sending, editing or deleting a message failed."""


class StaleEditTarget(DeliveryError):
    """An edit or delete targeted a message the transport no longer has."""

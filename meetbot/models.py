"""In-memory domain types for meetups, members, message slots and workspaces."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Hashable, Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator


@dataclass(frozen=True)
class Member:
    """A chat user taking part in a meetup."""
    id: int
    name: str


@dataclass(frozen=True)
class Recipient:
    """Where a message goes: a private chat, a group, or a forum topic in a group."""
    chat_id: int
    thread_id: Optional[int] = None


@dataclass(frozen=True)
class MessageRef:
    """Opaque handle of a message the transport has delivered."""
    chat_id: int
    message_id: int


class ButtonStyle(str, Enum):
    """Visual intent of an interaction button."""
    SUCCESS = "success"
    SECONDARY = "secondary"
    DANGER = "danger"


@dataclass(frozen=True)
class Button:
    """A registered interaction affordance; ``token`` routes presses back to its action."""
    token: str
    label: str
    style: ButtonStyle


ButtonRows = Tuple[Tuple[Button, ...], ...]


@dataclass(frozen=True)
class Rendered:
    """Full content of one message: HTML text plus rows of buttons."""
    text: str
    buttons: ButtonRows = ()


@dataclass(frozen=True)
class Workspace:
    """Handles of the resources provisioned for a meetup.

    Attributes:
        category: Grouping handle the transport uses for teardown.
        text: Where channel-level messages are posted.
        voice: Handle passed back to the transport for occupancy queries.
    """
    category: Optional[Hashable] = None
    text: Optional[Recipient] = None
    voice: Optional[Hashable] = None


class Phase(Enum):
    """Lifecycle phase of a meetup, ordered by ``rank``."""
    SCHEDULED = "scheduled"
    PROVISIONED = "resources_provisioned"
    STARTED = "started"
    CANCELLED = "cancelled"
    OVER = "over"

    @property
    def rank(self) -> int:
        return _PHASE_RANK[self]

    @property
    def terminal(self) -> bool:
        return self in (Phase.CANCELLED, Phase.OVER)


_PHASE_RANK = {
    Phase.SCHEDULED: 0,
    Phase.PROVISIONED: 1,
    Phase.STARTED: 2,
    Phase.CANCELLED: 3,
    Phase.OVER: 3,
}


class SlotKind(str, Enum):
    GENERAL = "general"
    OWNER = "owner"
    CHANNEL = "channel"
    PARTICIPANT = "participant"
    MAYBE = "maybe"


@dataclass(frozen=True)
class SlotKey:
    """Address of one rendered message; per-user kinds carry the user id."""
    kind: SlotKind
    user_id: Optional[int] = None

    @classmethod
    def participant(cls, user_id: int) -> SlotKey:
        return cls(SlotKind.PARTICIPANT, user_id)

    @classmethod
    def maybe(cls, user_id: int) -> SlotKey:
        return cls(SlotKind.MAYBE, user_id)

    def __str__(self) -> str:
        if self.user_id is None:
            return self.kind.value
        return f"{self.kind.value}:{self.user_id}"


GENERAL_SLOT = SlotKey(SlotKind.GENERAL)
OWNER_SLOT = SlotKey(SlotKind.OWNER)
CHANNEL_SLOT = SlotKey(SlotKind.CHANNEL)


class MessageSlots:
    """Sparse mapping of slot key to the last message sent for it.

    A missing key means the message was never sent or has been withdrawn;
    nothing is ever stored as a placeholder.
    """

    def __init__(self) -> None:
        self._refs: Dict[SlotKey, MessageRef] = {}

    def get(self, slot: SlotKey) -> Optional[MessageRef]:
        return self._refs.get(slot)

    def set(self, slot: SlotKey, ref: MessageRef) -> None:
        self._refs[slot] = ref

    def pop(self, slot: SlotKey) -> Optional[MessageRef]:
        return self._refs.pop(slot, None)

    def transfer(self, source: SlotKey, target: SlotKey) -> Optional[MessageRef]:
        """Move the handle stored under ``source`` to ``target`` and return it."""
        ref = self._refs.pop(source, None)
        if ref is not None:
            self._refs[target] = ref
        return ref

    def clear(self) -> None:
        self._refs.clear()

    def items(self) -> list[tuple[SlotKey, MessageRef]]:
        return list(self._refs.items())

    def __contains__(self, slot: object) -> bool:
        return slot in self._refs

    def __iter__(self) -> Iterator[SlotKey]:
        return iter(list(self._refs))

    def __len__(self) -> int:
        return len(self._refs)


class MeetupInfo(BaseModel):
    """Immutable description of a meetup, fixed at creation.

    Attributes:
        owner: The member who created the meetup.
        topic: Sanitized game name (lowercase, dashes instead of spaces).
        start_at: Timezone-aware start instant.
        capacity: Maximum confirmed participants, owner included; None is unbounded.
    """
    model_config = ConfigDict(frozen=True)

    owner: Member
    topic: str
    start_at: datetime
    capacity: Optional[int] = None

    @field_validator("topic")
    @classmethod
    def _topic_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("topic must not be empty")
        return value

    @field_validator("capacity")
    @classmethod
    def _capacity_positive(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("capacity must be positive")
        return value

    @field_validator("start_at")
    @classmethod
    def _start_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("start_at must be timezone-aware")
        return value

"""Notification port used by meetups and its Telegram implementation.

A meetup only ever talks to the transport through :class:`Notifier`. The
Telegram adapter maps the port onto the Bot API:

- messages go to private chats (DMs), groups, or forum topics;
- a workspace is a forum topic in the configured workspace supergroup;
- the voice space is that supergroup's video chat, whose attendance is
  tracked by :class:`VoicePresence` from ``/here``, ``/left`` and the
  video chat started/ended service messages.
"""
from __future__ import annotations

import logging
from typing import Dict, Hashable, Iterable, Optional, Protocol, Set

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

from .errors import DeliveryError, ProvisionError, StaleEditTarget
from .keyboards import InteractionKeyboard
from .models import MessageRef, Recipient, Rendered, Workspace

logger = logging.getLogger(__name__)

FORUM_TOPIC_NAME_LIMIT = 128


class Notifier(Protocol):
    """Everything a meetup needs from the chat platform."""

    async def send_message(self, recipient: Recipient, content: Rendered) -> MessageRef: ...

    async def edit_message(self, ref: MessageRef, content: Rendered) -> None: ...

    async def delete_message(self, ref: MessageRef) -> None: ...

    async def provision_workspace(self, name: str) -> Workspace: ...

    async def teardown_workspace(self, workspace: Workspace) -> None: ...

    async def voice_members(self, voice: Hashable) -> Set[int]: ...

    async def voice_occupancy(self, voice: Hashable) -> int: ...


class VoicePresence:
    """Who is currently in each chat's video chat, as far as the bot can tell."""

    def __init__(self) -> None:
        self._rooms: Dict[Hashable, Set[int]] = {}

    def join(self, room: Hashable, user_ids: Iterable[int]) -> None:
        self._rooms.setdefault(room, set()).update(user_ids)

    def leave(self, room: Hashable, user_id: int) -> None:
        self._rooms.get(room, set()).discard(user_id)

    def end(self, room: Hashable) -> None:
        self._rooms.pop(room, None)

    def members(self, room: Hashable) -> Set[int]:
        return set(self._rooms.get(room, ()))


def _is_missing(exc: BadRequest) -> bool:
    return "not found" in exc.message.lower()


class TelegramNotifier:
    """Notifier implementation on top of a python-telegram-bot ``Bot``."""

    def __init__(self, bot: Bot, presence: VoicePresence, workspace_chat_id: Optional[int] = None):
        self.bot = bot
        self.presence = presence
        self.workspace_chat_id = workspace_chat_id

    async def send_message(self, recipient: Recipient, content: Rendered) -> MessageRef:
        try:
            message = await self.bot.send_message(
                chat_id=recipient.chat_id,
                text=content.text,
                message_thread_id=recipient.thread_id,
                reply_markup=InteractionKeyboard.build(content.buttons),
                parse_mode=ParseMode.HTML,
            )
        except TelegramError as exc:
            raise DeliveryError(f"Could not send message to {recipient.chat_id}: {exc}") from exc
        return MessageRef(chat_id=message.chat_id, message_id=message.message_id)

    async def edit_message(self, ref: MessageRef, content: Rendered) -> None:
        try:
            await self.bot.edit_message_text(
                text=content.text,
                chat_id=ref.chat_id,
                message_id=ref.message_id,
                reply_markup=InteractionKeyboard.build(content.buttons),
                parse_mode=ParseMode.HTML,
            )
        except BadRequest as exc:
            # Full-content edits that change nothing are fine
            if "not modified" in exc.message.lower():
                return
            if _is_missing(exc):
                raise StaleEditTarget(f"Message {ref.message_id} in {ref.chat_id} is gone") from exc
            raise DeliveryError(f"Could not edit message {ref.message_id}: {exc}") from exc
        except TelegramError as exc:
            raise DeliveryError(f"Could not edit message {ref.message_id}: {exc}") from exc

    async def delete_message(self, ref: MessageRef) -> None:
        try:
            await self.bot.delete_message(chat_id=ref.chat_id, message_id=ref.message_id)
        except BadRequest as exc:
            if _is_missing(exc):
                raise StaleEditTarget(f"Message {ref.message_id} in {ref.chat_id} is gone") from exc
            raise DeliveryError(f"Could not delete message {ref.message_id}: {exc}") from exc
        except TelegramError as exc:
            raise DeliveryError(f"Could not delete message {ref.message_id}: {exc}") from exc

    async def provision_workspace(self, name: str) -> Workspace:
        """Open a forum topic named ``name`` in the workspace supergroup."""
        if self.workspace_chat_id is None:
            raise ProvisionError("No WORKSPACE_CHAT_ID configured")
        try:
            topic = await self.bot.create_forum_topic(
                chat_id=self.workspace_chat_id, name=name[:FORUM_TOPIC_NAME_LIMIT]
            )
        except TelegramError as exc:
            raise ProvisionError(f"Could not create forum topic {name!r}: {exc}") from exc
        thread = Recipient(chat_id=self.workspace_chat_id, thread_id=topic.message_thread_id)
        logger.debug("created forum topic %s (%s)", name, topic.message_thread_id)
        return Workspace(category=thread, text=thread, voice=self.workspace_chat_id)

    async def teardown_workspace(self, workspace: Workspace) -> None:
        """Delete the workspace topic; failures are logged and ignored."""
        category = workspace.category
        if not isinstance(category, Recipient) or category.thread_id is None:
            return
        try:
            await self.bot.delete_forum_topic(
                chat_id=category.chat_id, message_thread_id=category.thread_id
            )
        except TelegramError as exc:
            logger.warning("Could not delete forum topic %s: %s", category.thread_id, exc)

    async def voice_members(self, voice: Hashable) -> Set[int]:
        return self.presence.members(voice)

    async def voice_occupancy(self, voice: Hashable) -> int:
        return len(self.presence.members(voice))

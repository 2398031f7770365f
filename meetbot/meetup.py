"""Game meetup lifecycle.

- The owner receives a DM with the meetup card and a cancel button.
- The chat where the meetup is created receives the card with Join/Maybe buttons.
- Whoever joins (or says maybe) receives a DM with the card and their own buttons.
- A reminder goes out before the start to participants not in voice.
- The workspace (text + voice) is provisioned ahead of the start, or right away
  when the start is already that close.
- At the start, absent participants are pinged and the workspace gets an
  announcement; a repeating check then ends the meetup once voice is empty.
- A few minutes after the start, absent participants are pinged again and
  absent maybe-participants are told seats are left.
- If the owner cancels, or the meetup is over, every message is replaced, the
  workspace is torn down and the meetup drops out of the registry.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .config import LifecycleConfig
from .errors import DeliveryError, ProvisionError, StaleEditTarget
from .interactions import Action, Interaction, InteractionRegistry
from .messages import card, mention, notice
from .models import (
    CHANNEL_SLOT,
    GENERAL_SLOT,
    OWNER_SLOT,
    Button,
    ButtonStyle,
    MeetupInfo,
    Member,
    MessageRef,
    MessageSlots,
    Phase,
    Recipient,
    Rendered,
    SlotKey,
    SlotKind,
    Workspace,
)
from .notifier import Notifier
from .scheduler import TimerScheduler
from .utils import Clock, format_date, format_hhmm

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeetupButtons:
    """Buttons registered once per meetup; the shared ones act on whoever pressed."""
    join: Button
    maybe: Button
    participant_cancel: Button
    maybe_confirm: Button
    maybe_cancel: Button
    owner_cancel: Button


class Meetup:
    """One game meetup: participants, messages, timers and lifecycle phase.

    Membership is always mutated synchronously before any message is sent,
    so an interaction arriving while a send is in flight already sees the
    new state. Every timer handle and interaction token the meetup creates is
    appended to ``timers``/``tokens`` and released together when the meetup
    reaches a terminal phase.
    """

    def __init__(
        self,
        meetup_id: int,
        info: MeetupInfo,
        *,
        origin: Recipient,
        notifier: Notifier,
        scheduler: TimerScheduler,
        interactions: InteractionRegistry,
        lifecycle: LifecycleConfig,
        on_removed: Callable[[Meetup], None],
        clock: Clock,
    ):
        self._id = meetup_id
        self.info = info
        self.origin = origin
        self.phase = Phase.SCHEDULED
        self.participants: Dict[int, Member] = {info.owner.id: info.owner}
        self.maybe_participants: Dict[int, Member] = {}
        self.messages = MessageSlots()
        self.workspace: Optional[Workspace] = None
        self.timers: List[str] = []
        self.tokens: List[str] = []

        self._notifier = notifier
        self._scheduler = scheduler
        self._interactions = interactions
        self._lifecycle = lifecycle
        self._on_removed = on_removed
        self._clock = clock
        self._steps_done: Set[str] = set()
        self._provisioning = False
        self._personal: Dict[SlotKey, Dict[str, Button]] = {}
        self._final: Optional[Rendered] = None

        self.buttons = MeetupButtons(
            join=self._button("Join", ButtonStyle.SUCCESS, lambda i: self.add_participant(i.user)),
            maybe=self._button("Maybe", ButtonStyle.SECONDARY, lambda i: self.add_maybe_participant(i.user)),
            participant_cancel=self._button(
                "Cancel", ButtonStyle.DANGER, lambda i: self.withdraw_participant(i.user)
            ),
            maybe_confirm=self._button("Confirm", ButtonStyle.SUCCESS, lambda i: self.add_participant(i.user)),
            maybe_cancel=self._button(
                "Cancel", ButtonStyle.DANGER, lambda i: self.withdraw_maybe_participant(i.user)
            ),
            owner_cancel=self._button("Cancel meetup", ButtonStyle.DANGER, self._on_owner_cancel),
        )

    @property
    def id(self) -> int:
        return self._id

    @property
    def owner(self) -> Member:
        return self.info.owner

    @property
    def is_full(self) -> bool:
        return self.info.capacity is not None and len(self.participants) >= self.info.capacity

    @property
    def workspace_name(self) -> str:
        return f"{self.info.topic}-game-meetup"

    def describe(self) -> str:
        """One-line HTML summary used by listings."""
        seats = f"{len(self.participants)}/{self.info.capacity}" if self.info.capacity else str(len(self.participants))
        return (
            f"#{self.id} · <b>{escape(self.info.topic)}</b> · {format_hhmm(self.info.start_at)}"
            f" · {seats} joined · {self.phase.value}"
        )

    # ========== Buttons ==========

    def _button(self, label: str, style: ButtonStyle, action: Action) -> Button:
        button = self._interactions.register(label, style, action)
        self.tokens.append(button.token)
        return button

    def _personal_buttons(self, slot: SlotKey, user: Member) -> Dict[str, Button]:
        """Buttons bound to one user, issued the first time that user needs them."""
        buttons = self._personal.get(slot)
        if buttons is not None:
            return buttons

        def only(handler: Callable[[Member], Awaitable[bool]]) -> Action:
            async def action(interaction: Interaction) -> None:
                if interaction.user.id == user.id:
                    await handler(user)
            return action

        if slot.kind is SlotKind.PARTICIPANT:
            buttons = {"cancel": self._button("Cancel", ButtonStyle.DANGER, only(self.withdraw_participant))}
        else:
            buttons = {
                "confirm": self._button("Confirm", ButtonStyle.SUCCESS, only(self.add_participant)),
                "cancel": self._button("Cancel", ButtonStyle.DANGER, only(self.withdraw_maybe_participant)),
            }
        self._personal[slot] = buttons
        return buttons

    async def _on_owner_cancel(self, interaction: Interaction) -> None:
        if interaction.user.id != self.owner.id:
            logger.warning("meetup %s: %s tried to cancel it without owning it", self.id, interaction.user.id)
            return
        await self.cancel()

    # ========== Rendering ==========

    def _title(self) -> str:
        return f"Game meetup: {self.info.topic} {format_hhmm(self.info.start_at)}"

    def _card(self, content: Optional[str] = None) -> str:
        fields = []
        capacity = self.info.capacity
        if capacity is not None:
            full = " (full)" if self.is_full else ""
            fields.append(f"👥 Participants: {len(self.participants)}/{capacity}{full}")
        fields.append(f"👤 Creator: {escape(self.owner.name)}")
        fields.append(f"📅 Date: {format_date(self.info.start_at)}")
        fields.append("")
        fields.append("<i>Participants list</i>")
        fields.extend(f"• {escape(m.name)}: joined" for m in self.participants.values())
        if not self.is_full:
            fields.extend(f"• {escape(m.name)}: maybe" for m in self.maybe_participants.values())
        return card(self._title(), f"{self.owner.name} created this game meetup.", fields, content=content)

    def _general_message(self) -> Rendered:
        row = (self.buttons.maybe,) if self.is_full else (self.buttons.join, self.buttons.maybe)
        return Rendered(text=self._card(), buttons=(row,))

    def _owner_message(self) -> Rendered:
        return Rendered(
            text=self._card("You created this game meetup, you can cancel it with the button below."),
            buttons=((self.buttons.owner_cancel,),),
        )

    def _participant_message(self, user: Member) -> Rendered:
        buttons = self._personal_buttons(SlotKey.participant(user.id), user)
        return Rendered(
            text=self._card("You joined a game meetup, please be present or cancel."),
            buttons=((buttons["cancel"],),),
        )

    def _maybe_message(self, user: Member) -> Rendered:
        buttons = self._personal_buttons(SlotKey.maybe(user.id), user)
        row = (buttons["cancel"],) if self.is_full else (buttons["confirm"], buttons["cancel"])
        return Rendered(
            text=self._card("You are maybe participating in a game meetup, confirm or cancel."),
            buttons=(row,),
        )

    def _channel_message(self) -> Rendered:
        return Rendered(text=self._card(" ".join(mention(m) for m in self.participants.values())))

    def _voice_hint(self) -> Optional[str]:
        if self.workspace is None:
            return None
        return f"🎙 Voice: <b>{escape(self.workspace_name)}</b>"

    def _withdrawn_message(self) -> Rendered:
        return notice(self._title(), "You canceled your participation.")

    def _cancelled_message(self) -> Rendered:
        return notice(
            "Game meetup cancelled",
            f"The game meetup for {self.info.topic} was cancelled by {self.owner.name}.",
            content="Cancelled",
        )

    def _over_message(self) -> Rendered:
        names = ", ".join(m.name for m in self.participants.values())
        return notice(
            "Game meetup over",
            f"The game of {self.info.topic} is over.\nThe participants were: {names}\n"
            "Thank you for using the game meetup bot.",
        )

    def _reminder_message(self) -> Rendered:
        minutes = int(self._lifecycle.reminder_lead.total_seconds() // 60)
        return notice(
            "Game meetup reminder",
            f"The game of {self.info.topic} is starting in {minutes} mins.",
            content=self._voice_hint(),
            buttons=((self.buttons.participant_cancel,),),
        )

    def _absent_message(self) -> Rendered:
        return notice(
            "Absent from game meetup",
            f"You are absent from the game meetup for {self.info.topic}, please join or cancel.",
            content=self._voice_hint(),
            buttons=((self.buttons.participant_cancel,),),
        )

    def _started_message(self, mention_voice: bool) -> Rendered:
        return notice(
            "Game meetup started",
            f"The game of {self.info.topic} is starting.",
            content=self._voice_hint() if mention_voice else None,
        )

    def _still_join_message(self, occupancy: int) -> Rendered:
        if self.info.capacity is None:
            seats = "There are still places left."
        else:
            seats = f"There are still {self.info.capacity - occupancy} places left."
        return notice(
            "Game meetup reminder",
            f"You can still join the game meetup for {self.info.topic}.\n{seats}",
            content=self._voice_hint(),
            buttons=((self.buttons.maybe_confirm, self.buttons.maybe_cancel),),
        )

    def render_slot(self, slot: SlotKey) -> Optional[Rendered]:
        """Compute the current content of ``slot`` from state, or None if it no longer applies."""
        if slot.kind is SlotKind.GENERAL:
            return self._general_message()
        if slot.kind is SlotKind.OWNER:
            return self._owner_message()
        if slot.kind is SlotKind.CHANNEL:
            return self._channel_message()
        if slot.kind is SlotKind.PARTICIPANT:
            member = self.participants.get(slot.user_id)
            return self._participant_message(member) if member else None
        member = self.maybe_participants.get(slot.user_id)
        return self._maybe_message(member) if member else None

    def render_slots(self) -> Dict[SlotKey, Rendered]:
        """Render every slot that currently holds a message, in one synchronous pass."""
        rendered: Dict[SlotKey, Rendered] = {}
        for slot in self.messages:
            content = self.render_slot(slot)
            if content is not None:
                rendered[slot] = content
        return rendered

    async def update_messages(self) -> None:
        """Push the current content of every sent message; unsent slots are left alone."""
        if self.phase.terminal:
            return
        edits = [(self.messages.get(slot), content) for slot, content in self.render_slots().items()]
        await asyncio.gather(*(self._edit(ref, content) for ref, content in edits if ref is not None))
        logger.debug("meetup %s updated %d messages", self.id, len(edits))

    # ========== Transport ==========

    async def _send(self, recipient: Recipient, content: Rendered) -> Optional[MessageRef]:
        try:
            return await self._notifier.send_message(recipient, content)
        except DeliveryError as exc:
            logger.warning("meetup %s could not send to %s: %s", self.id, recipient.chat_id, exc)
            return None

    async def _edit(self, ref: MessageRef, content: Rendered) -> None:
        try:
            await self._notifier.edit_message(ref, content)
        except StaleEditTarget as exc:
            logger.info("meetup %s: %s", self.id, exc)
        except DeliveryError as exc:
            logger.warning("meetup %s could not edit message %s: %s", self.id, ref.message_id, exc)

    async def _delete(self, ref: MessageRef) -> None:
        try:
            await self._notifier.delete_message(ref)
        except StaleEditTarget as exc:
            logger.info("meetup %s: %s", self.id, exc)
        except DeliveryError as exc:
            logger.warning("meetup %s could not delete message %s: %s", self.id, ref.message_id, exc)

    def _slot_wanted(self, slot: SlotKey) -> bool:
        if slot.kind is SlotKind.PARTICIPANT:
            return slot.user_id in self.participants
        if slot.kind is SlotKind.MAYBE:
            return slot.user_id in self.maybe_participants
        if slot.kind is SlotKind.CHANNEL:
            return self.workspace is not None
        return True

    async def _send_slot(self, slot: SlotKey, recipient: Recipient) -> None:
        """Send the first message of ``slot`` and remember its handle.

        State may change while the send is in flight: a message that arrives
        after the user left or the meetup ended is turned into the matching
        notice, and one that is already outdated is refreshed.
        """
        content = self.render_slot(slot)
        if content is None:
            return
        ref = await self._send(recipient, content)
        if ref is None:
            return
        if self.phase.terminal:
            await self._edit(ref, self._final)
            return
        if not self._slot_wanted(slot) or slot in self.messages:
            await self._edit(ref, self._withdrawn_message())
            return
        self.messages.set(slot, ref)
        current = self.render_slot(slot)
        if current is not None and current != content:
            await self._edit(ref, current)

    # ========== Participants ==========

    async def add_participant(self, user: Member) -> bool:
        """Confirm ``user``; a maybe-participant keeps their message, others get a fresh DM.

        Returns:
            bool: False when nothing changed (already in, meetup full or ended).
        """
        if self.phase.terminal or user.id in self.participants:
            return False
        if self.is_full:
            logger.debug("meetup %s is full, %s not admitted", self.id, user.id)
            return False
        self.participants[user.id] = user
        slot = SlotKey.participant(user.id)
        moved = None
        if self.maybe_participants.pop(user.id, None) is not None:
            moved = self.messages.transfer(SlotKey.maybe(user.id), slot)
        logger.debug("meetup %s add participant %s", self.id, user.name)
        if moved is None:
            await self._send_slot(slot, Recipient(chat_id=user.id))
        await self.update_messages()
        return True

    async def add_maybe_participant(self, user: Member) -> bool:
        """Mark ``user`` as maybe; a participant is demoted and keeps their message."""
        if self.phase.terminal or user.id in self.maybe_participants or user.id == self.owner.id:
            return False
        self.maybe_participants[user.id] = user
        slot = SlotKey.maybe(user.id)
        moved = None
        if self.participants.pop(user.id, None) is not None:
            moved = self.messages.transfer(SlotKey.participant(user.id), slot)
        logger.debug("meetup %s add maybe participant %s", self.id, user.name)
        if moved is None:
            await self._send_slot(slot, Recipient(chat_id=user.id))
        await self.update_messages()
        return True

    def _discard_participant(self, user: Member) -> bool:
        if self.phase.terminal or user.id == self.owner.id or user.id not in self.participants:
            return False
        del self.participants[user.id]
        self.messages.pop(SlotKey.participant(user.id))
        logger.debug("meetup %s remove participant %s", self.id, user.name)
        return True

    def _discard_maybe_participant(self, user: Member) -> bool:
        if self.phase.terminal or user.id not in self.maybe_participants:
            return False
        del self.maybe_participants[user.id]
        self.messages.pop(SlotKey.maybe(user.id))
        logger.debug("meetup %s remove maybe participant %s", self.id, user.name)
        return True

    async def remove_participant(self, user: Member) -> bool:
        """Drop ``user`` and forget their message without touching it."""
        if not self._discard_participant(user):
            return False
        await self.update_messages()
        return True

    async def remove_maybe_participant(self, user: Member) -> bool:
        if not self._discard_maybe_participant(user):
            return False
        await self.update_messages()
        return True

    async def withdraw_participant(self, user: Member) -> bool:
        """Cancel button: finalize the user's own message, then remove them."""
        ref = self.messages.get(SlotKey.participant(user.id))
        if not self._discard_participant(user):
            return False
        if ref is not None:
            await self._edit(ref, self._withdrawn_message())
        await self.update_messages()
        return True

    async def withdraw_maybe_participant(self, user: Member) -> bool:
        ref = self.messages.get(SlotKey.maybe(user.id))
        if not self._discard_maybe_participant(user):
            return False
        if ref is not None:
            await self._edit(ref, self._withdrawn_message())
        await self.update_messages()
        return True

    # ========== Lifecycle ==========

    async def open(self) -> None:
        """Schedule the lifecycle and send the general and owner messages.

        Provisioning runs here, before returning, when its instant has
        already passed.
        """
        provision_due = self._setup_timers()
        logger.info(
            "meetup %s created for %s %s", self.id, self.info.topic, format_hhmm(self.info.start_at)
        )
        await asyncio.gather(
            self._send_slot(GENERAL_SLOT, self.origin),
            self._send_slot(OWNER_SLOT, Recipient(chat_id=self.owner.id)),
        )
        if provision_due:
            await self._run_step("provision", self.provision)

    def _setup_timers(self) -> bool:
        start = self.info.start_at
        now = self._clock()
        policy = self._lifecycle

        reminder_at = start - policy.reminder_lead
        if reminder_at > now:
            self._schedule_step("reminder", reminder_at, self._remind)

        provision_at = start - policy.provision_lead
        provision_due = provision_at <= now
        if not provision_due:
            self._schedule_step("provision", provision_at, self.provision)

        self._schedule_step("start", start, self._start)

        absence_at = start + policy.absence_delay
        if absence_at > now:
            self._schedule_step("absence", absence_at, self._check_absence)

        if policy.max_duration is not None:
            self._schedule_step("deadline", start + policy.max_duration, self._expire)
        return provision_due

    def _schedule_step(self, step: str, at: datetime, action: Callable[[], Awaitable[object]]) -> None:
        handle = ""

        async def fire() -> None:
            if handle in self.timers:
                self.timers.remove(handle)
            await self._run_step(step, action)

        handle = self._scheduler.schedule(at - self._clock(), fire)
        self.timers.append(handle)

    async def _run_step(self, step: str, action: Callable[[], Awaitable[object]]) -> None:
        if self.phase.terminal:
            logger.debug("meetup %s ignoring %s, it has ended", self.id, step)
            return
        if step in self._steps_done:
            return
        self._steps_done.add(step)
        logger.debug("meetup %s %s", self.id, step)
        await action()

    def _advance(self, target: Phase) -> bool:
        if self.phase.terminal or target.rank <= self.phase.rank:
            return False
        logger.info("meetup %s %s -> %s", self.id, self.phase.value, target.value)
        self.phase = target
        return True

    async def provision(self) -> bool:
        """Create the workspace and post the channel message there.

        Failures are logged and leave the meetup as it was; calling this
        again retries.

        Returns:
            bool: True if a workspace was created by this call.
        """
        if self.phase.terminal or self.workspace is not None or self._provisioning:
            return False
        self._provisioning = True
        try:
            workspace = await self._notifier.provision_workspace(self.workspace_name)
        except ProvisionError as exc:
            logger.warning("meetup %s could not provision its workspace: %s", self.id, exc)
            return False
        finally:
            self._provisioning = False
        if self.phase.terminal:
            await self._notifier.teardown_workspace(workspace)
            return False
        self.workspace = workspace
        self._advance(Phase.PROVISIONED)
        logger.debug("meetup %s created workspace %s", self.id, self.workspace_name)
        if workspace.text is not None:
            await self._send_slot(CHANNEL_SLOT, workspace.text)
        return True

    async def _present_members(self) -> Set[int]:
        if self.workspace is None or self.workspace.voice is None:
            return set()
        return await self._notifier.voice_members(self.workspace.voice)

    async def _notify_absent(self, content: Rendered) -> Set[int]:
        present = await self._present_members()
        absent = [m for m in self.participants.values() if m.id not in present]
        await asyncio.gather(*(self._send(Recipient(chat_id=m.id), content) for m in absent))
        return present

    async def _remind(self) -> None:
        await self._notify_absent(self._reminder_message())

    async def _start(self) -> None:
        if not self._advance(Phase.STARTED):
            return
        self.timers.append(
            self._scheduler.schedule_repeating(self._lifecycle.occupancy_period, self._check_occupancy)
        )
        jobs = [self._notify_absent(self._started_message(mention_voice=True))]
        if self.workspace is not None and self.workspace.text is not None:
            jobs.append(self._send(self.workspace.text, self._started_message(mention_voice=False)))
        await asyncio.gather(*jobs)

    async def _check_absence(self) -> None:
        present = await self._notify_absent(self._absent_message())
        capacity = self.info.capacity
        if capacity is not None and capacity <= len(present):
            return
        content = self._still_join_message(len(present))
        await asyncio.gather(
            *(
                self._send(Recipient(chat_id=m.id), content)
                for m in self.maybe_participants.values()
                if m.id not in present
            )
        )

    async def _check_occupancy(self) -> None:
        if self.phase is not Phase.STARTED or self.workspace is None or self.workspace.voice is None:
            return
        occupancy = await self._notifier.voice_occupancy(self.workspace.voice)
        logger.debug("meetup %s voice occupancy %d", self.id, occupancy)
        if occupancy == 0:
            logger.info("meetup %s over because nobody is in voice", self.id)
            await self.over()

    async def _expire(self) -> None:
        logger.info("meetup %s reached its maximum duration", self.id)
        await self.over()

    async def cancel(self) -> bool:
        """Owner cancellation; allowed from any non-terminal phase."""
        if self.phase.terminal:
            return False
        await self._finish(Phase.CANCELLED, self._cancelled_message())
        return True

    async def over(self) -> bool:
        """Natural end; only a started meetup can be over."""
        if self.phase is not Phase.STARTED:
            return False
        await self._finish(Phase.OVER, self._over_message())
        return True

    async def _finish(self, phase: Phase, final: Rendered) -> None:
        # Everything up to the first await makes the meetup unreachable.
        self.phase = phase
        self._final = final
        self._release()
        logger.info("meetup %s %s", self.id, phase.value)
        await self._replace_all_messages(final)
        workspace, self.workspace = self.workspace, None
        if workspace is not None:
            await self._notifier.teardown_workspace(workspace)

    def _release(self) -> None:
        self._scheduler.cancel_all(self.timers)
        self.timers.clear()
        self._interactions.remove_all(self.tokens)
        self.tokens.clear()
        self._personal.clear()
        logger.debug("meetup %s released its timers and buttons", self.id)
        self._on_removed(self)

    async def _replace_all_messages(self, final: Rendered) -> None:
        """Participants get a fresh DM so they are notified; other slots are edited in place."""
        jobs = []
        for slot, ref in self.messages.items():
            if slot.kind is SlotKind.PARTICIPANT:
                jobs.append(self._delete(ref))
            else:
                jobs.append(self._edit(ref, final))
        for member in self.participants.values():
            if member.id != self.owner.id:
                jobs.append(self._send(Recipient(chat_id=member.id), final))
        self.messages.clear()
        await asyncio.gather(*jobs)

"""In-memory stand-ins for the transport and the scheduler."""
from __future__ import annotations

import asyncio
import inspect
import itertools
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

from meetbot.errors import DeliveryError, ProvisionError, StaleEditTarget
from meetbot.models import MessageRef, Recipient, Rendered, Workspace

WORKSPACE_CHAT = -1000


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeScheduler:
    """Scheduler driven by a FakeClock; nothing runs until the test advances time."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.jobs: Dict[str, list] = {}
        self.callbacks: Dict[str, object] = {}
        self._ids = itertools.count()

    def _add(self, due: datetime, callback, period: Optional[timedelta]) -> str:
        handle = f"job-{next(self._ids)}"
        self.jobs[handle] = [due, callback, period]
        self.callbacks[handle] = callback
        return handle

    def schedule(self, delay: timedelta, callback) -> str:
        return self._add(self.clock() + max(delay, timedelta(0)), callback, None)

    def schedule_repeating(self, period: timedelta, callback) -> str:
        return self._add(self.clock() + period, callback, period)

    def cancel(self, handle: str) -> None:
        self.jobs.pop(handle, None)

    def cancel_all(self, handles) -> None:
        for handle in list(handles):
            self.cancel(handle)

    def repeating(self) -> List[str]:
        return [h for h, job in self.jobs.items() if job[2] is not None]

    async def _run(self, handle: str) -> None:
        due, callback, period = self.jobs[handle]
        if period is None:
            del self.jobs[handle]
        else:
            self.jobs[handle][0] = due + period
        result = callback()
        if inspect.isawaitable(result):
            await result

    async def advance(self, delta: timedelta) -> None:
        """Move the clock forward, running every job that falls due on the way."""
        target = self.clock() + delta
        while True:
            due = [(job[0], h) for h, job in self.jobs.items() if job[0] <= target]
            if not due:
                break
            when, handle = min(due)
            self.clock.now = max(self.clock.now, when)
            await self._run(handle)
        self.clock.now = target

    async def run_pending(self) -> None:
        await self.advance(timedelta(0))


class FakeNotifier:
    """Records every message operation and keeps the latest content per message."""

    def __init__(self) -> None:
        self.sent: List[Tuple[Recipient, Rendered, MessageRef]] = []
        self.contents: Dict[MessageRef, Rendered] = {}
        self.edits: List[Tuple[MessageRef, Rendered]] = []
        self.deleted: List[MessageRef] = []
        self.created: List[Workspace] = []
        self.torn_down: List[Workspace] = []
        self.voice: Set[int] = set()
        self.fail_provision = False
        self.unreachable: Set[int] = set()
        self._ids = itertools.count(1)
        self._threads = itertools.count(100)

    async def send_message(self, recipient: Recipient, content: Rendered) -> MessageRef:
        if recipient.chat_id in self.unreachable:
            raise DeliveryError(f"cannot reach {recipient.chat_id}")
        ref = MessageRef(chat_id=recipient.chat_id, message_id=next(self._ids))
        self.sent.append((recipient, content, ref))
        self.contents[ref] = content
        return ref

    async def edit_message(self, ref: MessageRef, content: Rendered) -> None:
        if ref not in self.contents:
            raise StaleEditTarget(f"message {ref.message_id} is gone")
        self.contents[ref] = content
        self.edits.append((ref, content))

    async def delete_message(self, ref: MessageRef) -> None:
        if ref not in self.contents:
            raise StaleEditTarget(f"message {ref.message_id} is gone")
        del self.contents[ref]
        self.deleted.append(ref)

    async def provision_workspace(self, name: str) -> Workspace:
        if self.fail_provision:
            raise ProvisionError("quota exceeded")
        thread = Recipient(chat_id=WORKSPACE_CHAT, thread_id=next(self._threads))
        workspace = Workspace(category=name, text=thread, voice=f"voice:{name}")
        self.created.append(workspace)
        return workspace

    async def teardown_workspace(self, workspace: Workspace) -> None:
        self.torn_down.append(workspace)

    async def voice_members(self, voice) -> Set[int]:
        return set(self.voice)

    async def voice_occupancy(self, voice) -> int:
        return len(self.voice)

    def sent_to(self, chat_id: int, thread_id: Optional[int] = None) -> List[Rendered]:
        return [
            content
            for recipient, content, _ in self.sent
            if recipient.chat_id == chat_id and (thread_id is None or recipient.thread_id == thread_id)
        ]

    def refs_to(self, chat_id: int) -> List[MessageRef]:
        return [ref for recipient, _, ref in self.sent if recipient.chat_id == chat_id]


class GatedNotifier(FakeNotifier):
    """Holds sends to chosen chats until ``release`` is called."""

    def __init__(self, held: Set[int]):
        super().__init__()
        self.held = held
        self.gate = asyncio.Event()

    async def send_message(self, recipient: Recipient, content: Rendered) -> MessageRef:
        if recipient.chat_id in self.held:
            await self.gate.wait()
        return await super().send_message(recipient, content)

    def release(self) -> None:
        self.gate.set()

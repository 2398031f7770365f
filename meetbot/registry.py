"""Live collection of meetups."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .config import LifecycleConfig
from .interactions import InteractionRegistry
from .meetup import Meetup
from .models import MeetupInfo, Recipient
from .notifier import Notifier
from .scheduler import TimerScheduler
from .utils import Clock

logger = logging.getLogger(__name__)


class MeetupRegistry:
    """Creates meetups and keeps them until they remove themselves.

    Ids come from the registry's own counter, so they are unique for the
    registry's lifetime and never reused.
    """

    def __init__(
        self,
        notifier: Notifier,
        scheduler: TimerScheduler,
        interactions: InteractionRegistry,
        lifecycle: LifecycleConfig,
        clock: Clock,
        start_id: int = 0,
    ):
        self._notifier = notifier
        self._scheduler = scheduler
        self._interactions = interactions
        self._lifecycle = lifecycle
        self._clock = clock
        self._next_id = start_id
        self._meetups: Dict[int, Meetup] = {}

    async def create(self, info: MeetupInfo, origin: Recipient) -> Meetup:
        """Create a meetup announced in ``origin`` and open it before returning."""
        meetup_id = self._next_id
        self._next_id += 1
        meetup = Meetup(
            meetup_id,
            info,
            origin=origin,
            notifier=self._notifier,
            scheduler=self._scheduler,
            interactions=self._interactions,
            lifecycle=self._lifecycle,
            on_removed=self.remove,
            clock=self._clock,
        )
        self._meetups[meetup_id] = meetup
        await meetup.open()
        return meetup

    def remove(self, meetup: Meetup) -> None:
        if self._meetups.pop(meetup.id, None) is not None:
            logger.debug("removed meetup %s from list", meetup.id)

    def find(self, meetup_id: int) -> Optional[Meetup]:
        return self._meetups.get(meetup_id)

    def list(self) -> List[Meetup]:
        return list(self._meetups.values())

    def __len__(self) -> int:
        return len(self._meetups)

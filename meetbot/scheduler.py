"""Timer scheduling for meetup lifecycle steps using APScheduler."""
from __future__ import annotations

import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, Protocol, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Union[Awaitable[Any], Any]]


class TimerScheduler(Protocol):
    """What a meetup needs from a scheduler."""

    def schedule(self, delay: timedelta, callback: TimerCallback) -> str: ...

    def schedule_repeating(self, period: timedelta, callback: TimerCallback) -> str: ...

    def cancel(self, handle: str) -> None: ...

    def cancel_all(self, handles: Iterable[str]) -> None: ...


class BotScheduler:
    """Wrapper around AsyncIOScheduler dispatching one-shot and repeating callbacks.

    Every callback is run as a coroutine on the event loop, never inline with
    the call that scheduled it, so plain functions do not end up in a thread
    pool. Handles are APScheduler job ids; the scheduler knows nothing about
    who owns them.
    """
    def __init__(self, timezone):
        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self._tz = timezone

    def start(self) -> None:
        """Start the underlying scheduler if not already running."""
        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self) -> None:
        """Stop the scheduler without waiting for running jobs."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def schedule(self, delay: timedelta, callback: TimerCallback) -> str:
        """Run ``callback`` once after ``delay``; zero or negative delays run as soon as possible."""
        run_at = self.now() + max(delay, timedelta(0))
        job = self.scheduler.add_job(
            _as_coroutine(callback),
            trigger=DateTrigger(run_date=run_at),
            misfire_grace_time=None,
        )
        logger.debug("scheduled job %s at %s", job.id, run_at)
        return job.id

    def schedule_repeating(self, period: timedelta, callback: TimerCallback) -> str:
        """Run ``callback`` every ``period``, first one period from now, until cancelled."""
        job = self.scheduler.add_job(
            _as_coroutine(callback),
            trigger=IntervalTrigger(seconds=period.total_seconds()),
            coalesce=True,
            max_instances=1,
            misfire_grace_time=None,
        )
        logger.debug("scheduled repeating job %s every %s", job.id, period)
        return job.id

    def cancel(self, handle: str) -> None:
        """Remove a job; already fired or unknown handles are ignored."""
        try:
            self.scheduler.remove_job(handle)
        except JobLookupError:
            return
        logger.debug("cancelled job %s", handle)

    def cancel_all(self, handles: Iterable[str]) -> None:
        for handle in list(handles):
            self.cancel(handle)


def _as_coroutine(callback: TimerCallback) -> Callable[[], Awaitable[None]]:
    async def run() -> None:
        result = callback()
        if inspect.isawaitable(result):
            await result
    return run

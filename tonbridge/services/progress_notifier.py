"""Interim status messages while a slow strategy dispatch is outstanding."""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from tonbridge.logging_config import get_logger
from tonbridge.services.scheduler import Scheduler, TimerHandle

logger = get_logger("progress_notifier")

PROGRESS_SCHEDULE: tuple[tuple[float, str], ...] = (
    (30.0, "⏳ Still working on your strategy... analyzing current market conditions."),
    (60.0, "🔍 Deep analysis takes a little time. Your personalized strategy is on its way!"),
    (120.0, "🙏 Thanks for your patience, I'm still crunching the numbers for you."),
    (
        300.0,
        "⚠️ This is taking much longer than expected and something may be wrong. "
        "I'll send your strategy as soon as it's ready, or you can try again later.",
    ),
)

TickCallback = Callable[[str], Any]


@dataclass(eq=False)
class ProgressHandle:
    key: Optional[str] = None
    cancelled: bool = False
    sent: int = 0
    timers: list[TimerHandle] = field(default_factory=list)
    tasks: set[asyncio.Task] = field(default_factory=set)


class ProgressNotifier:
    def __init__(self, scheduler: Scheduler, schedule: tuple[tuple[float, str], ...] = PROGRESS_SCHEDULE):
        self._scheduler = scheduler
        self._schedule = schedule
        self._active: dict[str, ProgressHandle] = {}

    def start(self, on_tick: TickCallback, key: Optional[str] = None) -> ProgressHandle:
        if key is not None and key in self._active:
            self.cancel(self._active[key])

        handle = ProgressHandle(key=key)
        for delay, text in self._schedule:
            handle.timers.append(self._scheduler.call_later(delay, self._fire, handle, text, on_tick))

        if key is not None:
            self._active[key] = handle
        return handle

    def cancel(self, handle: ProgressHandle) -> None:
        handle.cancelled = True
        for timer in handle.timers:
            timer.cancel()
        handle.timers.clear()
        for task in list(handle.tasks):
            task.cancel()
        if handle.key is not None and self._active.get(handle.key) is handle:
            del self._active[handle.key]

    def active_count(self) -> int:
        return len(self._active)

    def _fire(self, handle: ProgressHandle, text: str, on_tick: TickCallback) -> None:
        # Cancellation may land between the timer firing and this callback running.
        if handle.cancelled:
            return

        handle.sent += 1
        logger.info("Progress tick", extra={"context": {"key": handle.key, "tick": handle.sent}})
        try:
            result = on_tick(text)
        except Exception as exc:
            logger.error("Progress tick failed", extra={"context": {"key": handle.key, "error": str(exc)}})
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            handle.tasks.add(task)
            task.add_done_callback(lambda t: self._tick_done(handle, t))

    def _tick_done(self, handle: ProgressHandle, task: asyncio.Task) -> None:
        handle.tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Progress tick failed", extra={"context": {"key": handle.key, "error": str(exc)}})

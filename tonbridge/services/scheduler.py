"""Timer abstraction shared by the state store and the progress notifier."""

import asyncio
import time
from typing import Any, Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class AsyncioScheduler:
    """Schedules callbacks on the running event loop; time is the loop's monotonic clock."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def now(self) -> float:
        try:
            return self._get_loop().time()
        except RuntimeError:
            # No running loop: the default loop clock is time.monotonic().
            return time.monotonic()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self._get_loop().call_later(max(delay, 0.0), callback, *args)

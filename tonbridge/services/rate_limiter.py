import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from tonbridge.logging_config import get_logger

logger = get_logger("rate_limiter")

DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_MAX_REQUESTS = 5

RATE_LIMIT_MESSAGE = (
    "⏱️ Please wait a moment before asking another question. "
    "You can ask up to {max_requests} questions per minute."
)


@dataclass
class RateWindow:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    admitted: bool
    retry_after_seconds: Optional[int] = None


class RateLimiter:
    """Per-user fixed window that restarts once reset_at has passed."""

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}

    def check_and_admit(self, user_id: str) -> RateLimitDecision:
        now = self._clock()
        key = str(user_id)

        window = self._windows.get(key)
        if window is None or now >= window.reset_at:
            window = RateWindow(count=0, reset_at=now + self.window_seconds)
            self._windows[key] = window

        if window.count >= self.max_requests:
            retry_after = math.ceil(window.reset_at - now)
            return RateLimitDecision(admitted=False, retry_after_seconds=retry_after)

        window.count += 1
        return RateLimitDecision(admitted=True)

    def sweep(self) -> int:
        """Drop windows that expired more than one full window ago."""
        now = self._clock()
        expired = [
            key for key, window in self._windows.items() if now >= window.reset_at + self.window_seconds
        ]
        for key in expired:
            del self._windows[key]

        if expired:
            logger.info(
                "Rate limit cleanup completed",
                extra={"context": {"cleaned_records": len(expired), "active_records": len(self._windows)}},
            )
        return len(expired)

    def active_count(self) -> int:
        return len(self._windows)

    def format_rejection(self, decision: RateLimitDecision) -> str:
        message = RATE_LIMIT_MESSAGE.format(max_requests=self.max_requests)
        return f"{message}\n⏰ Try again in {decision.retry_after_seconds} seconds."

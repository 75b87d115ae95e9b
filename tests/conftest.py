from typing import Any, Callable
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from tonbridge.services.dispatcher import BackendDispatcher, Endpoint, EndpointRole
from tonbridge.services.orchestrator import ConversationOrchestrator
from tonbridge.services.progress_notifier import ProgressNotifier
from tonbridge.services.rate_limiter import RateLimiter
from tonbridge.services.state_store import ConversationStateStore
from tonbridge.services.voice_service import VoiceService
from tonbridge.services.wallet_service import WalletBalance

BASIC_URL = "https://n8n.test/webhook/basic-id"
STRATEGY_URL = "https://n8n.test/webhook/strategy-id"
TON_ADDRESS = "EQD4FPq-PRDieyQKkizFTRtSDyucUIqrj0v_zXJmqaDp6_0t"
ETH_ADDRESS = "0x52908400098527886E0F7030069857D2E4169EE7"


class FakeTimer:
    def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: tuple):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Virtual clock: timers fire only when the test advances time."""

    def __init__(self, start: float = 1000.0):
        self.current = start
        self._timers: list[FakeTimer] = []
        self._seq = 0

    def now(self) -> float:
        return self.current

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeTimer:
        timer = FakeTimer(self.current + delay, self._seq, callback, args)
        self._seq += 1
        self._timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        target = self.current + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.current = timer.when
            timer.callback(*timer.args)
        self.current = target

    def pending(self) -> list[FakeTimer]:
        return [t for t in self._timers if not t.cancelled]


def make_response(status_code: int, url: str = BASIC_URL, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", url), **kwargs)


class RecordingTransport:
    """Backend transport double that records every call."""

    def __init__(self, response: Any = None, error: Exception | None = None, on_call=None):
        self.response = response
        self.error = error
        self.on_call = on_call
        self.calls: list[tuple[str, dict, float]] = []

    async def __call__(self, url: str, payload: dict, timeout: float) -> httpx.Response:
        self.calls.append((url, payload, timeout))
        if self.on_call is not None:
            await self.on_call()
        if self.error is not None:
            raise self.error
        if isinstance(self.response, httpx.Response):
            return self.response
        return make_response(200, url=url, json=self.response)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def endpoints():
    return {
        EndpointRole.BASIC: Endpoint(url=BASIC_URL, timeout_seconds=120.0),
        EndpointRole.STRATEGY: Endpoint(url=STRATEGY_URL, timeout_seconds=300.0),
    }


@pytest.fixture
def transport():
    return RecordingTransport(response={"output": "Perpetual futures are derivatives without expiry."})


@pytest.fixture
def wallet_service():
    service = Mock()
    service.lookup_balance = AsyncMock(
        return_value=WalletBalance(
            success=True,
            currency_code="TON",
            balance_amount=12.5,
            address=TON_ADDRESS,
            raw={"balance": "12500000000"},
        )
    )
    return service


@pytest.fixture
def deliver():
    return AsyncMock(return_value={"ok": True})


@pytest.fixture
def orchestrator(scheduler, endpoints, transport, wallet_service, deliver):
    return ConversationOrchestrator(
        rate_limiter=RateLimiter(window_seconds=60, max_requests=5, clock=scheduler.now),
        state_store=ConversationStateStore(scheduler, ttl_seconds=600),
        dispatcher=BackendDispatcher(endpoints, transport=transport),
        progress_notifier=ProgressNotifier(scheduler),
        wallet_service=wallet_service,
        voice_service=VoiceService("assistant-123", "https://vapi.test/call?assistant=assistant-123"),
        deliver=deliver,
    )

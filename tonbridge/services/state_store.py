from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from tonbridge.logging_config import get_logger
from tonbridge.services.scheduler import Scheduler, TimerHandle

logger = get_logger("state_store")

DEFAULT_TTL_SECONDS = 600.0


class ConversationContext(str, Enum):
    NONE = "none"
    AWAITING_STRATEGY_CONFIRMATION = "awaiting_strategy_confirmation"


@dataclass(frozen=True)
class ConversationState:
    user_id: str
    context: ConversationContext = ConversationContext.NONE
    payload: Optional[dict[str, Any]] = None
    created_at: Optional[float] = None


class ConversationStateStore:
    """In-memory per-user conversation context with a short TTL."""

    def __init__(self, scheduler: Scheduler, ttl_seconds: float = DEFAULT_TTL_SECONDS):
        self._scheduler = scheduler
        self.ttl_seconds = ttl_seconds
        self._states: dict[str, ConversationState] = {}
        self._timers: dict[str, TimerHandle] = {}

    def get(self, user_id: str) -> ConversationState:
        key = str(user_id)
        state = self._states.get(key)
        if state is None:
            return ConversationState(user_id=key)
        if self._is_expired(state):
            self._drop(key)
            return ConversationState(user_id=key)
        return state

    def set(
        self,
        user_id: str,
        context: ConversationContext,
        payload: Optional[dict[str, Any]] = None,
    ) -> ConversationState:
        key = str(user_id)
        created_at = self._scheduler.now()
        state = ConversationState(user_id=key, context=context, payload=payload, created_at=created_at)

        self._cancel_timer(key)
        self._states[key] = state
        self._timers[key] = self._scheduler.call_later(self.ttl_seconds, self._expire, key, created_at)

        logger.debug(
            "Conversation state set",
            extra={"context": {"user_id": key, "state": context.value, "active_states": len(self._states)}},
        )
        return state

    def clear(self, user_id: str) -> None:
        key = str(user_id)
        if key in self._states:
            logger.debug("Conversation state cleared", extra={"context": {"user_id": key}})
        self._drop(key)

    def active_count(self) -> int:
        return len(self._states)

    def _expire(self, key: str, created_at: float) -> None:
        state = self._states.get(key)
        # A newer set() under the same key carries a different created_at and must survive.
        if state is None or state.created_at != created_at:
            return
        if self._is_expired(state):
            self._states.pop(key, None)
            self._timers.pop(key, None)
            logger.debug("Conversation state expired", extra={"context": {"user_id": key}})

    def _is_expired(self, state: ConversationState) -> bool:
        if state.created_at is None:
            return False
        return self._scheduler.now() - state.created_at >= self.ttl_seconds

    def _drop(self, key: str) -> None:
        self._cancel_timer(key)
        self._states.pop(key, None)

    def _cancel_timer(self, key: str) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

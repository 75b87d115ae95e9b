"""
Conversation orchestrator: one inbound Telegram message in, one answer out.

Turn: classify -> rate limit (skipped for /start) -> intent branch -> deliver.
Every branch produces a reply; an unexpected error in a branch clears the
user's conversation state and answers with MSG_APOLOGY instead.
"""

import time
from typing import Any, Awaitable, Callable, Optional

from tonbridge.logging_config import LoggerAdapter, get_logger, preview
from tonbridge.services.dispatcher import BackendDispatcher, EndpointRole
from tonbridge.services.intent_service import Intent, IntentKind, classify
from tonbridge.services.progress_notifier import ProgressNotifier
from tonbridge.services.rate_limiter import RateLimiter
from tonbridge.services.state_store import ConversationContext, ConversationStateStore
from tonbridge.services.voice_service import (
    VOICE_TROUBLESHOOTING_MESSAGE,
    VoiceService,
    format_voice_session_message,
)
from tonbridge.services.wallet_service import WalletService, format_wallet_failure, format_wallet_response

logger = get_logger("orchestrator")

Deliver = Callable[[str, str], Awaitable[Any]]

MSG_GREETING = (
    "🤖 Hello {name}! I'm TONNY, your crypto strategy assistant.\n\n"
    "Ask me anything about crypto markets, DeFi, or investment strategies!\n\n"
    'Example: "What are perpetual futures?"\n\n'
    "💳 Share a TON wallet address for a personalized analysis, "
    'or type "call me" to talk to me by voice.'
)
MSG_APOLOGY = "Sorry, I encountered an error processing your request. Please try again in a moment."
MSG_NO_WORRIES = "👍 No worries! Feel free to ask me any crypto question, or share another wallet address anytime."
MSG_VOICE_FAILED = (
    "❌ Sorry, I couldn't set up a voice call right now. "
    "Please try again later, or keep chatting with me here!"
)
MSG_TEXT_ONLY = "💬 I can only read text messages for now. Please type your question!"
MSG_STRATEGY_PREFIX = "🎯 **Your Personalized Strategy:**\n\n"
MSG_STRATEGY_FAILED_PREFIX = "⚠️ I couldn't finish your strategy analysis. "
CROSS_SELL_SUFFIX = (
    "\n\n💡 *Tip: share your TON wallet address for a personalized strategy, "
    'or type "call me" to talk to me by voice!*'
)
GENERIC_VOICE_CONTEXT = "general crypto discussion"


def wallet_context_text(payload: Optional[dict]) -> str:
    if not payload:
        return GENERIC_VOICE_CONTEXT
    return (
        f"User shared a {payload.get('chainType')} wallet {payload.get('address')} "
        f"holding {payload.get('balance')} {payload.get('currency')}"
    )


class ConversationOrchestrator:
    def __init__(
        self,
        *,
        rate_limiter: RateLimiter,
        state_store: ConversationStateStore,
        dispatcher: BackendDispatcher,
        progress_notifier: ProgressNotifier,
        wallet_service: WalletService,
        voice_service: VoiceService,
        deliver: Deliver,
    ):
        self.rate_limiter = rate_limiter
        self.state_store = state_store
        self.dispatcher = dispatcher
        self.progress_notifier = progress_notifier
        self.wallet_service = wallet_service
        self.voice_service = voice_service
        self._deliver_fn = deliver

    async def handle_message(
        self,
        chat_id: str,
        user_id: str,
        text: Optional[str],
        user_name: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> str:
        """Process one turn and return the reply that was sent (or attempted)."""
        user_key = str(user_id)
        log = LoggerAdapter(logger, {"user_id": user_key, "request_id": request_id})
        start = time.monotonic()

        intent = classify(text)

        if intent.kind == IntentKind.START_COMMAND:
            log.info("Start command received")
            self.state_store.clear(user_key)
            reply = MSG_GREETING.format(name=user_name or "User")
            await self._deliver(chat_id, reply, log)
            return reply

        decision = self.rate_limiter.check_and_admit(user_key)
        if not decision.admitted:
            log.warning("Rate limit exceeded", context={"retry_after_seconds": decision.retry_after_seconds})
            reply = self.rate_limiter.format_rejection(decision)
            await self._deliver(chat_id, reply, log)
            return reply

        if not intent.text:
            reply = MSG_TEXT_ONLY
            await self._deliver(chat_id, reply, log)
            return reply

        log.info("Processing message", context={"intent": intent.kind.value, "message_length": len(intent.text)})
        try:
            reply = await self._route(intent, chat_id, user_key, request_id, log)
        except Exception:
            log.error("Error in handle_message", context={"intent": intent.kind.value}, exc_info=True)
            self.state_store.clear(user_key)
            reply = MSG_APOLOGY

        await self._deliver(chat_id, reply, log)
        log.info(
            "Message processing completed",
            context={
                "intent": intent.kind.value,
                "response_length": len(reply),
                "total_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return reply

    async def _route(
        self,
        intent: Intent,
        chat_id: str,
        user_key: str,
        request_id: Optional[str],
        log: LoggerAdapter,
    ) -> str:
        if intent.kind == IntentKind.WALLET:
            return await self._handle_wallet(intent, user_key, log)
        if intent.kind == IntentKind.AFFIRMATIVE:
            return await self._handle_affirmative(intent, chat_id, user_key, request_id, log)
        if intent.kind == IntentKind.NEGATIVE:
            self.state_store.clear(user_key)
            return MSG_NO_WORRIES
        if intent.kind == IntentKind.VOICE_REQUEST:
            return await self._handle_voice_request(user_key, log)
        if intent.kind == IntentKind.VOICE_TROUBLESHOOTING:
            self.state_store.clear(user_key)
            return VOICE_TROUBLESHOOTING_MESSAGE
        return await self._handle_basic(intent, user_key, request_id)

    async def _handle_wallet(self, intent: Intent, user_key: str, log: LoggerAdapter) -> str:
        log.info(
            "Wallet address detected",
            context={"chain_type": intent.chain_type.value, "address": preview(intent.address)},
        )
        try:
            balance = await self.wallet_service.lookup_balance(intent.address, intent.chain_type)
        except Exception as exc:
            log.error("Error processing wallet", context={"error": str(exc)})
            balance = None

        if balance is None or not balance.success:
            self.state_store.clear(user_key)
            return format_wallet_failure(intent.chain_type)

        self.state_store.set(user_key, ConversationContext.AWAITING_STRATEGY_CONFIRMATION, balance.to_payload())
        return format_wallet_response(balance)

    async def _handle_affirmative(
        self,
        intent: Intent,
        chat_id: str,
        user_key: str,
        request_id: Optional[str],
        log: LoggerAdapter,
    ) -> str:
        state = self.state_store.get(user_key)
        if state.context != ConversationContext.AWAITING_STRATEGY_CONFIRMATION or not state.payload:
            return await self._handle_basic(intent, user_key, request_id)

        extra = {"walletData": state.payload}
        if request_id:
            extra["requestId"] = request_id

        handle = self.progress_notifier.start(lambda tick: self._deliver(chat_id, tick, log), key=user_key)
        try:
            outcome = await self.dispatcher.dispatch(EndpointRole.STRATEGY, intent.text, user_key, extra=extra)
        finally:
            self.progress_notifier.cancel(handle)
            self.state_store.clear(user_key)

        log.info("Strategy dispatch settled", context={"ok": outcome.ok, "progress_ticks": handle.sent})
        if outcome.ok:
            return MSG_STRATEGY_PREFIX + outcome.display_text
        return MSG_STRATEGY_FAILED_PREFIX + outcome.display_text

    async def _handle_voice_request(self, user_key: str, log: LoggerAdapter) -> str:
        payload = self.state_store.get(user_key).payload
        try:
            session = await self.voice_service.create_session(user_key, wallet_context_text(payload))
            return format_voice_session_message(session, has_wallet_context=bool(payload))
        except Exception as exc:
            log.error("Error creating voice session", context={"error": str(exc)})
            return MSG_VOICE_FAILED
        finally:
            self.state_store.clear(user_key)

    async def _handle_basic(self, intent: Intent, user_key: str, request_id: Optional[str]) -> str:
        self.state_store.clear(user_key)
        extra = {"requestId": request_id} if request_id else None
        outcome = await self.dispatcher.dispatch(EndpointRole.BASIC, intent.text, user_key, extra=extra)
        if outcome.ok:
            return outcome.display_text + CROSS_SELL_SUFFIX
        return outcome.display_text

    async def _deliver(self, chat_id: str, text: str, log: LoggerAdapter) -> bool:
        try:
            await self._deliver_fn(chat_id, text)
            return True
        except Exception as exc:
            # The webhook was already acknowledged; nothing more to tell the user.
            log.error("Message delivery failed", context={"chat_id": chat_id, "error": str(exc)})
            return False

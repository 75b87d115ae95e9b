"""Process-wide service instances, built once from settings."""

from typing import Optional

from tonbridge.config import Settings, settings
from tonbridge.services.dispatcher import BackendDispatcher, Endpoint, EndpointRole
from tonbridge.services.orchestrator import ConversationOrchestrator
from tonbridge.services.progress_notifier import ProgressNotifier
from tonbridge.services.rate_limiter import RateLimiter
from tonbridge.services.scheduler import AsyncioScheduler
from tonbridge.services.state_store import ConversationStateStore
from tonbridge.services.telegram_service import TelegramService
from tonbridge.services.voice_service import VoiceService
from tonbridge.services.wallet_service import WalletService

_orchestrator: Optional[ConversationOrchestrator] = None
_telegram: Optional[TelegramService] = None


def build_endpoints(config: Settings) -> dict[EndpointRole, Endpoint]:
    return {
        EndpointRole.BASIC: Endpoint(url=config.n8n_webhook_url, timeout_seconds=config.basic_timeout_seconds),
        EndpointRole.STRATEGY: Endpoint(url=config.strategy_url, timeout_seconds=config.strategy_timeout_seconds),
    }


def build_orchestrator(config: Settings, telegram: TelegramService) -> ConversationOrchestrator:
    scheduler = AsyncioScheduler()
    return ConversationOrchestrator(
        rate_limiter=RateLimiter(
            window_seconds=config.user_rate_limit_window_seconds,
            max_requests=config.user_rate_limit_max_requests,
            clock=scheduler.now,
        ),
        state_store=ConversationStateStore(scheduler, ttl_seconds=config.conversation_ttl_seconds),
        dispatcher=BackendDispatcher(build_endpoints(config)),
        progress_notifier=ProgressNotifier(scheduler),
        wallet_service=WalletService(config.ton_api_endpoint, config.wallet_lookup_timeout_seconds),
        voice_service=VoiceService(config.vapi_assistant_id, config.vapi_web_call_url),
        deliver=telegram.deliver_message,
    )


def get_telegram_service() -> TelegramService:
    global _telegram
    if _telegram is None:
        _telegram = TelegramService(settings.telegram_bot_token)
    return _telegram


def get_orchestrator() -> ConversationOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator(settings, get_telegram_service())
    return _orchestrator

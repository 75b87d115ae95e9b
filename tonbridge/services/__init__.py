from tonbridge.services.dispatcher import BackendDispatcher, Endpoint, EndpointRole
from tonbridge.services.intent_service import ChainType, Intent, IntentKind, classify
from tonbridge.services.orchestrator import ConversationOrchestrator
from tonbridge.services.outcome import DispatchOutcome, FailureKind
from tonbridge.services.progress_notifier import ProgressNotifier
from tonbridge.services.rate_limiter import RateLimiter
from tonbridge.services.state_store import ConversationContext, ConversationStateStore

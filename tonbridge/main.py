import asyncio
import os
from datetime import datetime, timezone

from fastapi import FastAPI

from tonbridge import __version__
from tonbridge.config import settings
from tonbridge.dependencies import get_orchestrator
from tonbridge.logging_config import get_logger, setup_logging
from tonbridge.routers import telegram_webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="TON AI Telegram Bot Bridge",
    description="Routes Telegram messages to the TONNY backend workflows",
    version=__version__,
)

app.include_router(telegram_webhook.router)

sweeper_logger = get_logger("sweeper")
_sweeper_task: asyncio.Task | None = None


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_sweeper_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return _is_env_enabled(os.environ.get("SWEEPER_ENABLED"), default=True)


async def _sweeper_loop() -> None:
    interval_seconds = max(settings.rate_limit_cleanup_interval_seconds, 1.0)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            orchestrator = get_orchestrator()
            removed_windows = orchestrator.rate_limiter.sweep()
            removed_sessions = orchestrator.voice_service.cleanup_old_sessions()
            sweeper_logger.info(
                "Sweep completed",
                extra={
                    "context": {
                        "removed_rate_windows": removed_windows,
                        "removed_voice_sessions": removed_sessions,
                        "active_rate_windows": orchestrator.rate_limiter.active_count(),
                        "active_states": orchestrator.state_store.active_count(),
                        "active_progress": orchestrator.progress_notifier.active_count(),
                    }
                },
            )
        except asyncio.CancelledError:
            break
        except Exception as exc:
            sweeper_logger.error(
                "Sweeper loop failed",
                extra={"context": {"error": str(exc)}},
            )


@app.on_event("startup")
async def start_sweeper() -> None:
    global _sweeper_task
    sweeper_logger.info(
        "Server started",
        extra={
            "context": {
                "basic_configured": bool(settings.n8n_webhook_url),
                "strategy_configured": bool(settings.strategy_url),
                "voice_configured": bool(settings.vapi_assistant_id and settings.vapi_web_call_url),
            }
        },
    )
    if not _is_sweeper_enabled():
        return
    if _sweeper_task is None or _sweeper_task.done():
        _sweeper_task = asyncio.create_task(_sweeper_loop())
        sweeper_logger.info("Sweeper started")


@app.on_event("shutdown")
async def stop_sweeper() -> None:
    global _sweeper_task
    if _sweeper_task is None:
        return
    _sweeper_task.cancel()
    try:
        await _sweeper_task
    except asyncio.CancelledError:
        pass
    _sweeper_task = None


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.service_name,
    }

import json
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from tonbridge.config import settings
from tonbridge.dependencies import get_orchestrator, get_telegram_service
from tonbridge.logging_config import get_logger
from tonbridge.schemas.telegram import SetupResponse, TelegramUpdate
from tonbridge.services.orchestrator import ConversationOrchestrator
from tonbridge.services.telegram_service import TelegramDeliveryError, TelegramService

logger = get_logger("telegram_webhook")

router = APIRouter()


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """
    Parse Telegram update with tolerant decoding to avoid utf-8 crashes.
    Returns dict or None.
    """
    try:
        return await request.json()
    except Exception as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            decoded = raw.decode(enc, errors="replace")
            return json.loads(decoded)
        except ValueError:
            continue

    logger.error("Failed to decode Telegram webhook payload after fallbacks")
    return None


@router.post("/webhook/telegram")
async def handle_telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """
    Acknowledge the update right away and process the message after the response is sent.
    """
    request_id = str(uuid.uuid4())
    body = await parse_telegram_update(request)
    if not isinstance(body, dict) or not body.get("message"):
        logger.warning("Invalid webhook request format", extra={"context": {"request_id": request_id}})
        return PlainTextResponse("Invalid request format", status_code=400)

    try:
        update = TelegramUpdate(**body)
    except ValidationError as e:
        logger.warning(
            "Invalid webhook message payload",
            extra={"context": {"request_id": request_id, "errors": e.error_count()}},
        )
        return PlainTextResponse("Invalid request format", status_code=400)

    try:
        message = update.message
        user = message.from_user
        user_id = str(user.id) if user else str(message.chat.id)
        user_name = user.display_name if user else "User"

        logger.info(
            "Message received from user",
            extra={
                "context": {
                    "request_id": request_id,
                    "user_id": user_id,
                    "chat_id": message.chat.id,
                    "has_text": bool(message.text),
                    "message_length": len(message.text or ""),
                }
            },
        )

        background_tasks.add_task(
            orchestrator.handle_message,
            str(message.chat.id),
            user_id,
            message.text,
            user_name,
            request_id,
        )
    except Exception as e:
        logger.error(
            "Webhook processing error",
            extra={"context": {"request_id": request_id, "error": str(e)}},
            exc_info=True,
        )
        return PlainTextResponse("Internal server error", status_code=500)

    return PlainTextResponse("OK")


@router.get("/setup", response_model=SetupResponse)
async def setup_webhook(telegram: TelegramService = Depends(get_telegram_service)):
    """Register {PUBLIC_URL}/webhook/telegram with Telegram."""
    if not settings.telegram_bot_token:
        return JSONResponse(status_code=400, content={"success": False, "error": "TELEGRAM_BOT_TOKEN not configured"})
    if not settings.public_url:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "PUBLIC_URL not configured. Set this to your public webhook URL",
            },
        )

    webhook_url = f"{settings.public_url.rstrip('/')}/webhook/telegram"
    logger.info("Setting webhook", extra={"context": {"webhook_url": webhook_url}})
    try:
        result = await telegram.set_webhook(webhook_url)
    except TelegramDeliveryError as e:
        logger.error("Failed to register webhook", extra={"context": {"webhook_url": webhook_url, "error": str(e)}})
        status_code = 400 if e.status_code and e.status_code < 500 else 500
        return JSONResponse(status_code=status_code, content={"success": False, "error": e.description})

    logger.info("Webhook registered successfully", extra={"context": {"webhook_url": webhook_url}})
    return SetupResponse(success=True, webhook=webhook_url, telegram_response=result)

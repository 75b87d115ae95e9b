import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx

from tonbridge.logging_config import get_logger
from tonbridge.services.outcome import DispatchOutcome, FailureKind
from tonbridge.services.response_normalizer import normalize_response

logger = get_logger("dispatcher")

SOURCE = "telegram"

Transport = Callable[[str, dict, float], Awaitable[httpx.Response]]


class EndpointRole(str, Enum):
    BASIC = "basic"
    STRATEGY = "strategy"


ROLE_INTENTS = {
    EndpointRole.BASIC: "basic_question",
    EndpointRole.STRATEGY: "strategy_request",
}


@dataclass(frozen=True)
class Endpoint:
    url: Optional[str]
    timeout_seconds: float


async def post_json(url: str, payload: dict, timeout: float) -> httpx.Response:
    async with httpx.AsyncClient(timeout=timeout) as client:
        return await client.post(url, json=payload, headers={"Content-Type": "application/json"})


def _hide_path(url: str) -> str:
    # Webhook ids in the last path segment act as credentials.
    head, _, _ = url.rstrip("/").rpartition("/")
    return f"{head}/***" if head else "***"


def classify_failure(exc: Exception) -> FailureKind:
    if isinstance(exc, httpx.TimeoutException):
        return FailureKind.TIMEOUT
    if isinstance(exc, httpx.ConnectError):
        return FailureKind.CONNECTION_REFUSED
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status >= 500:
            return FailureKind.SERVER_ERROR
        if status == 429:
            return FailureKind.RATE_LIMITED
        if status == 400:
            return FailureKind.BAD_REQUEST
    return FailureKind.UNKNOWN


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class BackendDispatcher:
    """Sends a message to one backend role and turns any result into a DispatchOutcome."""

    def __init__(self, endpoints: dict[EndpointRole, Endpoint], transport: Transport = post_json):
        self._endpoints = endpoints
        self._transport = transport

    def build_payload(
        self,
        role: EndpointRole,
        message: str,
        user_id: str,
        extra: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "message": message,
            "userId": user_id,
            "source": SOURCE,
            "intent": ROLE_INTENTS[role],
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "requestId": str(uuid.uuid4()),
        }
        if extra:
            payload.update(extra)
        return payload

    async def dispatch(
        self,
        role: EndpointRole,
        message: str,
        user_id: str,
        extra: Optional[dict[str, Any]] = None,
    ) -> DispatchOutcome:
        endpoint = self._endpoints.get(role)
        payload = self.build_payload(role, message, user_id, extra)
        log_context = {"role": role.value, "user_id": user_id, "request_id": payload["requestId"]}

        if endpoint is None or not endpoint.url:
            logger.error("Backend endpoint not configured", extra={"context": log_context})
            return DispatchOutcome.failure(FailureKind.CONFIGURATION)

        logger.info(
            "Forwarding to backend",
            extra={
                "context": {
                    **log_context,
                    "message_length": len(message or ""),
                    "url": _hide_path(endpoint.url),
                    "timeout_seconds": endpoint.timeout_seconds,
                }
            },
        )

        start = time.monotonic()
        try:
            response = await self._transport(endpoint.url, payload, endpoint.timeout_seconds)
            response.raise_for_status()
        except Exception as exc:
            kind = classify_failure(exc)
            status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            logger.error(
                "Backend dispatch failed",
                extra={
                    "context": {
                        **log_context,
                        "failure_kind": kind.value,
                        "status": status,
                        "error": str(exc),
                        "elapsed_ms": round((time.monotonic() - start) * 1000, 2),
                    }
                },
            )
            return DispatchOutcome.failure(kind)

        body = _parse_body(response)
        text = normalize_response(body)
        logger.info(
            "Backend response received",
            extra={
                "context": {
                    **log_context,
                    "status": response.status_code,
                    "response_length": len(text),
                    "elapsed_ms": round((time.monotonic() - start) * 1000, 2),
                }
            },
        )
        return DispatchOutcome.success(text)

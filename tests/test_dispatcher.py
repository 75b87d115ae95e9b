import asyncio
import uuid
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from tests.conftest import BASIC_URL, STRATEGY_URL, RecordingTransport, make_response
from tonbridge.services.dispatcher import (
    BackendDispatcher,
    Endpoint,
    EndpointRole,
    _hide_path,
    classify_failure,
    post_json,
)
from tonbridge.services.outcome import FAILURE_MESSAGES, FailureKind


class TestBuildPayload:
    def test_payload_fields(self, endpoints):
        dispatcher = BackendDispatcher(endpoints, transport=RecordingTransport())
        payload = dispatcher.build_payload(EndpointRole.BASIC, "What is TON?", "42")

        assert payload["message"] == "What is TON?"
        assert payload["userId"] == "42"
        assert payload["source"] == "telegram"
        assert payload["intent"] == "basic_question"
        assert datetime.fromisoformat(payload["timestamp"]).tzinfo is not None
        uuid.UUID(payload["requestId"])

    def test_strategy_intent_and_extra_fields(self, endpoints):
        dispatcher = BackendDispatcher(endpoints, transport=RecordingTransport())
        wallet = {"address": "EQ", "balance": 1.0}
        payload = dispatcher.build_payload(
            EndpointRole.STRATEGY, "yes", "42", extra={"walletData": wallet, "requestId": "req-1"}
        )

        assert payload["intent"] == "strategy_request"
        assert payload["walletData"] == wallet
        assert payload["requestId"] == "req-1"


class TestDispatch:
    def test_success_normalizes_body(self, endpoints):
        transport = RecordingTransport(response={"results": [{"toolCallId": "t1", "result": "Hold TON."}]})
        dispatcher = BackendDispatcher(endpoints, transport=transport)

        outcome = asyncio.run(dispatcher.dispatch(EndpointRole.BASIC, "q", "42"))

        assert outcome.ok is True
        assert outcome.text == "Hold TON."

    def test_uses_role_url_and_timeout(self, endpoints):
        transport = RecordingTransport(response={"output": "ok answer"})
        dispatcher = BackendDispatcher(endpoints, transport=transport)

        asyncio.run(dispatcher.dispatch(EndpointRole.BASIC, "q", "42"))
        asyncio.run(dispatcher.dispatch(EndpointRole.STRATEGY, "yes", "42"))

        assert [(url, timeout) for url, _, timeout in transport.calls] == [
            (BASIC_URL, 120.0),
            (STRATEGY_URL, 300.0),
        ]

    def test_text_body_returned_verbatim(self, endpoints):
        transport = RecordingTransport(response=make_response(200, text="Plain answer from workflow"))
        dispatcher = BackendDispatcher(endpoints, transport=transport)

        outcome = asyncio.run(dispatcher.dispatch(EndpointRole.BASIC, "q", "42"))

        assert outcome.text == "Plain answer from workflow"

    def test_missing_url_fails_without_network_call(self):
        transport = RecordingTransport(response={"output": "never"})
        dispatcher = BackendDispatcher(
            {EndpointRole.BASIC: Endpoint(url=None, timeout_seconds=120.0)}, transport=transport
        )

        basic = asyncio.run(dispatcher.dispatch(EndpointRole.BASIC, "q", "42"))
        strategy = asyncio.run(dispatcher.dispatch(EndpointRole.STRATEGY, "q", "42"))

        assert basic.kind == FailureKind.CONFIGURATION
        assert strategy.kind == FailureKind.CONFIGURATION
        assert transport.calls == []

    @pytest.mark.parametrize(
        "error, expected",
        [
            (httpx.ReadTimeout("timed out"), FailureKind.TIMEOUT),
            (httpx.ConnectTimeout("timed out"), FailureKind.TIMEOUT),
            (httpx.ConnectError("connection refused"), FailureKind.CONNECTION_REFUSED),
            (RuntimeError("boom"), FailureKind.UNKNOWN),
        ],
    )
    def test_transport_errors(self, endpoints, error, expected):
        dispatcher = BackendDispatcher(endpoints, transport=RecordingTransport(error=error))

        outcome = asyncio.run(dispatcher.dispatch(EndpointRole.BASIC, "q", "42"))

        assert outcome.ok is False
        assert outcome.kind == expected
        assert outcome.user_message == FAILURE_MESSAGES[expected]

    @pytest.mark.parametrize(
        "status, expected",
        [
            (500, FailureKind.SERVER_ERROR),
            (503, FailureKind.SERVER_ERROR),
            (429, FailureKind.RATE_LIMITED),
            (400, FailureKind.BAD_REQUEST),
            (404, FailureKind.UNKNOWN),
        ],
    )
    def test_http_status_errors(self, endpoints, status, expected):
        transport = RecordingTransport(response=make_response(status, json={"error": "nope"}))
        dispatcher = BackendDispatcher(endpoints, transport=transport)

        outcome = asyncio.run(dispatcher.dispatch(EndpointRole.BASIC, "q", "42"))

        assert outcome.kind == expected
        assert outcome.display_text == FAILURE_MESSAGES[expected]


class TestClassifyFailure:
    def test_value_error_is_unknown(self):
        assert classify_failure(ValueError("bad json")) == FailureKind.UNKNOWN


class TestPostJson:
    @patch("tonbridge.services.dispatcher.httpx.AsyncClient")
    def test_posts_json_with_timeout(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client.post = AsyncMock(return_value=make_response(200, json={"output": "x"}))

        response = asyncio.run(post_json(BASIC_URL, {"message": "hi"}, 12.0))

        assert response.status_code == 200
        mock_client_class.assert_called_once_with(timeout=12.0)
        call_args = mock_client.post.call_args
        assert call_args[0][0] == BASIC_URL
        assert call_args[1]["json"] == {"message": "hi"}


class TestHidePath:
    def test_hides_webhook_id(self):
        assert _hide_path("https://n8n.test/webhook/secret-id") == "https://n8n.test/webhook/***"

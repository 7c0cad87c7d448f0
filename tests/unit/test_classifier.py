"""ErrorClassifier 유닛 테스트"""

import asyncio

import httpx
import pytest

from faceguard_client.core.exceptions import (
    NetworkTimeoutException,
    OperationCancelledException,
    RemoteServiceException,
)
from faceguard_client.engine.classifier import (
    NETWORK_MESSAGE,
    TIMEOUT_MESSAGE,
    classify,
    extract_error_message,
    message_from_body,
    to_error_info,
)
from faceguard_client.engine.result import OutcomeKind


class TestClassify:
    """실패 → OutcomeKind 매핑"""

    def test_no_error_is_success(self):
        result = classify(None)
        assert result.kind == OutcomeKind.SUCCESS
        assert result.retryable is False

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_5xx_is_retryable_server_error(self, status):
        result = classify(RemoteServiceException(status, f"HTTP {status}"))
        assert result.kind == OutcomeKind.SERVER_ERROR
        assert result.retryable is True
        assert result.status_code == status

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 422, 429])
    def test_4xx_is_not_retried(self, status):
        result = classify(RemoteServiceException(status, f"HTTP {status}"))
        assert result.kind == OutcomeKind.CLIENT_ERROR
        assert result.retryable is False

    def test_unexpected_status_is_client_error(self):
        """4xx/5xx 밖의 상태도 재시도하지 않음"""
        result = classify(RemoteServiceException(302, "HTTP 302"))
        assert result.kind == OutcomeKind.CLIENT_ERROR
        assert result.retryable is False

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ReadTimeout("read timed out"),
            httpx.ConnectTimeout("connect timed out"),
            asyncio.TimeoutError(),
            NetworkTimeoutException(operation="identify", timeout_ms=30000),
        ],
    )
    def test_timeouts(self, error):
        result = classify(error)
        assert result.kind == OutcomeKind.TIMEOUT
        assert result.retryable is True

    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectError("connection refused"), ConnectionResetError(), ValueError("weird")],
    )
    def test_no_response_is_network(self, error):
        result = classify(error)
        assert result.kind == OutcomeKind.NETWORK
        assert result.retryable is True

    def test_cancelled(self):
        result = classify(OperationCancelledException("reconocimiento/identificar"))
        assert result.kind == OutcomeKind.CANCELLED
        assert result.retryable is False

    def test_httpx_status_error(self):
        request = httpx.Request("GET", "https://api.test/api/v1/usuarios/")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("unavailable", request=request, response=response)

        result = classify(error)

        assert result.kind == OutcomeKind.SERVER_ERROR
        assert result.status_code == 503


class TestErrorMessages:
    """UI 메시지 추출"""

    def test_detail_from_body(self):
        error = RemoteServiceException(422, "HTTP 422", details={"body": {"detail": "El email es invalido"}})
        assert extract_error_message(error) == "El email es invalido"

    def test_errors_list_joined(self):
        assert message_from_body({"errors": ["nombre requerido", "email requerido"]}) == (
            "nombre requerido, email requerido"
        )

    def test_body_without_message(self):
        assert message_from_body({"success": False}) is None
        assert message_from_body("plain text") is None

    def test_status_default_message(self):
        assert extract_error_message(RemoteServiceException(404, "HTTP 404")) == "Resource not found."

    def test_unknown_status_message(self):
        assert extract_error_message(RemoteServiceException(418, "HTTP 418")) == "Server error (418)"

    def test_exception_message_used_when_meaningful(self):
        error = RemoteServiceException(409, "Usuario ya existe")
        assert extract_error_message(error) == "Usuario ya existe"

    def test_network_and_timeout_messages(self):
        assert extract_error_message(httpx.ConnectError("refused")) == NETWORK_MESSAGE
        assert extract_error_message(httpx.ReadTimeout("slow")) == TIMEOUT_MESSAGE

    def test_to_error_info(self):
        info = to_error_info(RemoteServiceException(503, "HTTP 503"))
        assert info.kind == OutcomeKind.SERVER_ERROR
        assert info.retryable is True
        assert info.status_code == 503
        assert info.message == "Service temporarily unavailable."

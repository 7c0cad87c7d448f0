"""Error Classifier - Failure taxonomy and retry recommendation

모든 실패를 정확히 하나의 OutcomeKind로 매핑하는 순수(total) 함수입니다.
RetryExecutor, OfflineQueue, 컨트롤러가 같은 분류를 공유합니다.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from faceguard_client.core.exceptions import (
    NetworkTimeoutException,
    OperationCancelledException,
    RemoteServiceException,
)

from .result import ErrorInfo, OutcomeKind


@dataclass(frozen=True)
class Classification:
    """분류 결과"""

    kind: OutcomeKind
    retryable: bool
    status_code: Optional[int] = None


# 상태 코드별 기본 메시지 (서버 본문에 메시지가 없을 때)
STATUS_MESSAGES: dict[int, str] = {
    400: "Invalid data sent to the server.",
    401: "Unauthorized. Check your credentials.",
    403: "Access denied.",
    404: "Resource not found.",
    422: "Invalid input data.",
    429: "Too many requests. Try again later.",
    500: "Internal server error.",
    502: "Gateway error. The server is unavailable.",
    503: "Service temporarily unavailable.",
    504: "Server timeout.",
}

NETWORK_MESSAGE = "Connection error. Check your internet connection."
TIMEOUT_MESSAGE = "Request timed out. Try again."
CANCELLED_MESSAGE = "Operation cancelled."


def classify(error: Optional[BaseException]) -> Classification:
    """실패 원인 → (kind, retryable)

    규칙 (순서대로):
        1. 에러 없음 → SUCCESS
        2. 명시적 취소 → CANCELLED (재시도 안 함)
        3. 데드라인 경과 → TIMEOUT (재시도)
        4. 5xx → SERVER_ERROR (재시도)
        5. 4xx 및 기타 예상 밖 상태 → CLIENT_ERROR (재시도 안 함)
        6. 서버 응답 없음/연결 수준 오류 및 그 외 → NETWORK (재시도)
    """
    if error is None:
        return Classification(OutcomeKind.SUCCESS, retryable=False)

    if isinstance(error, (OperationCancelledException, asyncio.CancelledError)):
        return Classification(OutcomeKind.CANCELLED, retryable=False)

    # httpx.TimeoutException은 TransportError 하위이므로 먼저 검사
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError, NetworkTimeoutException)):
        return Classification(OutcomeKind.TIMEOUT, retryable=True)

    status = _status_of(error)
    if status is not None:
        if 500 <= status <= 599:
            return Classification(OutcomeKind.SERVER_ERROR, retryable=True, status_code=status)
        return Classification(OutcomeKind.CLIENT_ERROR, retryable=False, status_code=status)

    return Classification(OutcomeKind.NETWORK, retryable=True)


def _status_of(error: BaseException) -> Optional[int]:
    if isinstance(error, RemoteServiceException):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def extract_error_message(error: Optional[BaseException]) -> str:
    """사용자에게 보여줄 안정적인 메시지

    서버 본문(detail → message → errors) 우선, 없으면 상태 코드별 기본 메시지.
    """
    if error is None:
        return ""

    classification = classify(error)
    if classification.kind == OutcomeKind.CANCELLED:
        return CANCELLED_MESSAGE
    if classification.kind == OutcomeKind.TIMEOUT:
        return TIMEOUT_MESSAGE
    if classification.kind == OutcomeKind.NETWORK:
        return NETWORK_MESSAGE

    status = classification.status_code or 0
    body = error.details.get("body") if isinstance(error, RemoteServiceException) else None
    message = message_from_body(body)
    if message:
        return message
    if isinstance(error, RemoteServiceException) and error.message and not error.message.startswith("HTTP "):
        return error.message
    return STATUS_MESSAGES.get(status, f"Server error ({status})")


def message_from_body(body: Any) -> Optional[str]:
    """구조화된 에러 본문 {detail|message|errors}에서 메시지 추출"""
    if not isinstance(body, dict):
        return None
    message = body.get("detail") or body.get("message") or body.get("errors")
    if not message:
        return None
    if isinstance(message, list):
        return ", ".join(
            json.dumps(part, ensure_ascii=False) if isinstance(part, (dict, list)) else str(part)
            for part in message
        )
    if isinstance(message, dict):
        return json.dumps(message, ensure_ascii=False)
    return str(message)


def to_error_info(error: BaseException) -> ErrorInfo:
    """UI 경계로 넘길 {kind, message} 쌍"""
    classification = classify(error)
    return ErrorInfo(
        kind=classification.kind,
        message=extract_error_message(error),
        retryable=classification.retryable,
        status_code=classification.status_code,
    )

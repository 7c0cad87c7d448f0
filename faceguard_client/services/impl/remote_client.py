"""원격 서비스 HTTP 클라이언트 (httpx)

- 요청마다 클라이언트를 만들면 TLS/커넥션 오버헤드가 커지므로 프로세스 단위로 재사용합니다.
- 앱 종료 시 close()로 정리합니다.
- Operation → HTTP 요청 매핑만 담당하며 재시도는 하지 않습니다 (RetryExecutor 담당).
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from faceguard_client.core.config import Settings, settings as default_settings
from faceguard_client.core.logging import logger, sanitize_for_log
from faceguard_client.core.exceptions import RemoteServiceException
from faceguard_client.engine.classifier import message_from_body
from faceguard_client.schemas.operation_schema import ContentType, Operation


def build_async_client(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """기본값이 적용된 `httpx.AsyncClient` 생성

    Args:
        settings: 설정 (없으면 전역 settings)
        transport: 테스트용 전송 계층 (httpx.MockTransport 등)
    """
    settings = settings or default_settings
    return httpx.AsyncClient(
        base_url=settings.api_base_url + "/",
        timeout=httpx.Timeout(settings.request_timeout_s),
        headers={
            "User-Agent": settings.user_agent,
            "Accept": "application/json",
        },
        follow_redirects=True,
        transport=transport,
    )


class RemoteServiceClient:
    """Transport 구현 - Operation을 HTTP 요청으로 보냄"""

    IDEMPOTENCY_HEADER = "Idempotency-Key"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings or default_settings
        self._lock = asyncio.Lock()
        self._client: Optional[httpx.AsyncClient] = client

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._lock:
            if self._client is None:
                self._client = build_async_client(self._settings)
            return self._client

    async def send(self, operation: Operation) -> Any:
        """
        작업 전송

        Returns:
            JSON 응답 (본문이 없으면 None)

        Raises:
            RemoteServiceException: 서버가 4xx/5xx로 응답
            httpx.TimeoutException: 데드라인 경과
            httpx.RequestError: 연결 수준 오류 (응답 없음)
        """
        client = await self._ensure_client()
        method = operation.http_method
        logger.info(f"[HTTP_CLIENT] {method} {operation.key}")

        response = await client.request(method, operation.key, **self._request_kwargs(operation))

        if response.status_code >= 400:
            body = self._json_or_none(response)
            message = message_from_body(body) or f"HTTP {response.status_code}"
            logger.warning(
                f"[HTTP_CLIENT] {method} {operation.key} -> {response.status_code}: {sanitize_for_log(message)}"
            )
            raise RemoteServiceException(
                response.status_code,
                message,
                details={"status_code": response.status_code, "body": body, "key": operation.key},
            )

        logger.info(f"[HTTP_CLIENT] {method} {operation.key} -> {response.status_code}")
        if not response.content:
            return None
        return self._json_or_none(response)

    def _request_kwargs(self, operation: Operation) -> dict[str, Any]:
        headers: dict[str, str] = {}
        if operation.idempotency_key:
            headers[self.IDEMPOTENCY_HEADER] = operation.idempotency_key

        kwargs: dict[str, Any] = {"headers": headers}
        if operation.is_read or operation.http_method == "DELETE":
            kwargs["params"] = operation.params
            return kwargs

        if operation.content_type == ContentType.MULTIPART and operation.payload:
            kwargs["data"] = operation.params
            kwargs["files"] = {operation.payload_field: ("image.jpg", operation.payload, "image/jpeg")}
        elif operation.content_type == ContentType.JSON:
            headers["Content-Type"] = "application/json"
            kwargs["content"] = operation.payload
            kwargs["params"] = operation.params
        elif operation.params:
            kwargs["data"] = operation.params
        return kwargs

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def close(self) -> None:
        async with self._lock:
            if self._client is None:
                return
            try:
                await self._client.aclose()
            except Exception as e:
                logger.warning(f"[HTTP_CLIENT] close failed: {type(e).__name__}: {e}")
            self._client = None

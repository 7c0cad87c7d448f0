"""Retry Executor - Bounded retries with capped exponential backoff

재시도 정책은 여기에서 한 번만 정의됩니다:
- NETWORK / TIMEOUT / SERVER_ERROR: 예산 내에서 투명하게 재시도
- CLIENT_ERROR / CANCELLED: 즉시 반환
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from time import perf_counter
from typing import Any, Awaitable, Callable, Optional, Protocol

from faceguard_client.core.config import settings
from faceguard_client.core.exceptions import OperationCancelledException
from faceguard_client.core.logging import logger
from faceguard_client.schemas.operation_schema import Operation
from faceguard_client.utils.hash_utils import new_idempotency_key

from .cancellation import CancelToken, run_cancellable
from .classifier import classify, to_error_info
from .result import OperationResult


class Transport(Protocol):
    """원격 서비스 경계 - Operation을 보내고 성공 페이로드를 돌려줌

    실패는 예외로 표현합니다 (RemoteServiceException, httpx.RequestError 등).
    """

    async def send(self, operation: Operation) -> Any:
        ...


@dataclass(frozen=True)
class RetryPlan:
    """재시도 계획

    attempt는 지금까지 수행한 재시도 횟수이며 max_attempts를 넘지 않습니다.
    next_delay_ms = min(base_delay_ms * 2**attempt, cap_ms)
    """

    attempt: int = 0
    max_attempts: int = 3
    base_delay_ms: int = 1000
    cap_ms: int = 10000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_ms < 0 or self.cap_ms < 0:
            raise ValueError("delays must be >= 0")
        if not 0 <= self.attempt <= self.max_attempts:
            raise ValueError("attempt out of range")

    @property
    def next_delay_ms(self) -> int:
        return min(self.base_delay_ms * (2 ** self.attempt), self.cap_ms)

    @property
    def exhausted(self) -> bool:
        """다음 재시도를 할 수 없는가? (시도 횟수 = attempt + 1)"""
        return self.attempt + 1 >= self.max_attempts

    def advance(self) -> "RetryPlan":
        return replace(self, attempt=self.attempt + 1)


SleepFn = Callable[[float], Awaitable[Any]]


class RetryExecutor:
    """단일 비동기 작업을 재시도로 감싸는 실행기

    재시도되는 write는 모두 같은 idempotency_key를 가집니다.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        cap_ms: Optional[int] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        """
        Args:
            transport: 원격 서비스 전송 계층 (send 메서드 구현)
            max_attempts: 기본 최대 시도 횟수 (없으면 settings)
            base_delay_ms: 기본 백오프 시작 지연
            cap_ms: 백오프 상한
            sleep: 백오프 대기 함수 (테스트에서 주입)
        """
        if transport is None:
            raise ValueError("transport must not be None")
        self.transport = transport
        self.max_attempts = max_attempts or settings.retry_max_attempts
        self.base_delay_ms = base_delay_ms if base_delay_ms is not None else settings.retry_base_delay_ms
        self.cap_ms = cap_ms if cap_ms is not None else settings.retry_cap_ms
        self._sleep = sleep

    async def execute(
        self,
        operation: Operation,
        *,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        cap_ms: Optional[int] = None,
        cancel_token: Optional[CancelToken] = None,
        attempt_timeout_s: Optional[float] = None,
    ) -> OperationResult:
        """작업 실행 (재시도 포함)

        Args:
            operation: 원격 작업 기술자
            max_attempts: 최대 시도 횟수
            base_delay_ms: 백오프 시작 지연 (밀리초)
            cap_ms: 백오프 상한 (밀리초)
            cancel_token: 협조적 취소 토큰
            attempt_timeout_s: 시도당 타임아웃 (초)

        Returns:
            OperationResult: 성공/실패/취소 결과 (원격 실패로 예외를 던지지 않음)
        """
        plan = RetryPlan(
            attempt=0,
            max_attempts=max_attempts or self.max_attempts,
            base_delay_ms=self.base_delay_ms if base_delay_ms is None else base_delay_ms,
            cap_ms=self.cap_ms if cap_ms is None else cap_ms,
        )
        operation = self._with_idempotency_key(operation)
        started = perf_counter()
        attempts = 0

        while True:
            if cancel_token is not None and cancel_token.cancelled:
                logger.info(f"[RETRY] cancelled before attempt: key='{operation.key}'")
                return OperationResult.cancelled(attempts)

            attempts += 1
            try:
                value = await run_cancellable(self._attempt(operation, attempt_timeout_s), cancel_token, operation.key)
                elapsed_ms = (perf_counter() - started) * 1000
                if attempts > 1:
                    logger.info(f"[RETRY] succeeded: key='{operation.key}', attempts={attempts}")
                return OperationResult.success(value, attempts, elapsed_ms)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = e

            classification = classify(error)
            info = to_error_info(error)
            if not classification.retryable or plan.exhausted:
                logger.warning(
                    f"[RETRY] giving up: key='{operation.key}', kind={classification.kind.value}, "
                    f"attempts={attempts}/{plan.max_attempts}, error={type(error).__name__}"
                )
                return OperationResult.failure(info, attempts, (perf_counter() - started) * 1000)

            delay_ms = plan.next_delay_ms
            logger.info(
                f"[RETRY] {classification.kind.value} on key='{operation.key}', "
                f"attempt {attempts}/{plan.max_attempts}, retrying in {delay_ms}ms"
            )
            try:
                await run_cancellable(self._sleep(delay_ms / 1000), cancel_token, operation.key)
            except OperationCancelledException:
                logger.info(f"[RETRY] backoff aborted: key='{operation.key}'")
                return OperationResult.cancelled(attempts)
            plan = plan.advance()

    async def _attempt(self, operation: Operation, timeout_s: Optional[float]) -> Any:
        if timeout_s is None:
            return await self.transport.send(operation)
        return await asyncio.wait_for(self.transport.send(operation), timeout=timeout_s)

    @staticmethod
    def _with_idempotency_key(operation: Operation) -> Operation:
        """write는 첫 시도 전에 멱등성 키를 고정"""
        if operation.is_read or operation.idempotency_key:
            return operation
        return operation.model_copy(update={"idempotency_key": new_idempotency_key()})

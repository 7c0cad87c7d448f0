"""Operation Orchestrator - Cache-first execution pipeline

Coordinates a remote operation:
1. Cache lookup (read operations with a TTL only)
2. RetryExecutor execution
3. Cache population (reads) / prefix invalidation (successful writes)
"""

from typing import TYPE_CHECKING, Any, Optional

from faceguard_client.core.logging import logger
from faceguard_client.core.exceptions import InvalidOperationException
from faceguard_client.schemas.operation_schema import Operation
from faceguard_client.utils.hash_utils import generate_cache_key, resource_prefix

from .cancellation import CancelToken
from .result import OperationResult
from .retry import RetryExecutor

if TYPE_CHECKING:
    from faceguard_client.services.impl.cache_service import ResponseCache


class OperationOrchestrator:
    """원격 작업 오케스트레이터

    Cache → RetryExecutor 파이프라인을 관리합니다.
    캐시에 쓰는 곳은 완료된 read와 write 후 무효화뿐입니다 (단일 writer).
    """

    def __init__(self, executor: RetryExecutor, cache: Optional["ResponseCache"] = None, cache_enabled: bool = True):
        """
        Args:
            executor: 재시도 실행기
            cache: 응답 캐시 (없으면 캐시 없이 실행)
            cache_enabled: 설정으로 캐시를 끌 수 있음
        """
        if executor is None:
            raise ValueError("executor must not be None")
        self.executor = executor
        self.cache = cache if cache_enabled else None

    async def execute(
        self,
        operation: Operation,
        *,
        cache_ttl_ms: Optional[int] = None,
        force_refresh: bool = False,
        cancel_token: Optional[CancelToken] = None,
        max_attempts: Optional[int] = None,
    ) -> OperationResult:
        """통합 실행

        Args:
            operation: 원격 작업
            cache_ttl_ms: read 결과 캐시 TTL (None이면 캐시 사용 안 함)
            force_refresh: 캐시 조회를 건너뛰고 네트워크로 (결과는 저장)
            cancel_token: 협조적 취소 토큰
            max_attempts: 시도 횟수 재정의

        Returns:
            OperationResult: 표준 결과
        """
        if cache_ttl_ms is not None and not operation.is_read:
            raise InvalidOperationException("only read operations may populate the cache",
                                            details={"key": operation.key})

        cache_key = generate_cache_key(operation.key, operation.params)
        use_cache = self.cache is not None and cache_ttl_ms is not None

        if use_cache and not force_refresh:
            cached = await self._try_cache(cache_key)
            if cached is not None:
                logger.debug(f"[ORCHESTRATOR] served from cache: key='{cache_key}'")
                return OperationResult.from_cache(cached)

        result = await self.executor.execute(operation, cancel_token=cancel_token, max_attempts=max_attempts)
        if not result.is_success:
            return result

        # 원격 작업은 이미 완료됨: 캐시 실패가 결과를 뒤집지 않음
        if use_cache:
            await self._save_to_cache(cache_key, result.value, cache_ttl_ms)
        elif not operation.is_read and self.cache is not None:
            await self._invalidate(resource_prefix(operation.key))

        return result

    async def _try_cache(self, cache_key: str) -> Optional[Any]:
        """캐시 조회 (저장소 오류는 캐시 미스로 취급)"""
        try:
            return await self.cache.get(cache_key)
        except Exception as e:
            logger.warning(f"[ORCHESTRATOR] cache lookup failed: {type(e).__name__}: {e}")
            return None

    async def _save_to_cache(self, cache_key: str, value: Any, ttl_ms: int) -> None:
        try:
            await self.cache.put(cache_key, value, ttl_ms)
        except Exception as e:
            logger.warning(f"[ORCHESTRATOR] failed to save to cache: {type(e).__name__}: {e}")

    async def _invalidate(self, prefix: str) -> None:
        try:
            removed = await self.cache.invalidate_prefix(prefix)
            logger.debug(f"[ORCHESTRATOR] invalidated prefix='{prefix}' entries={removed}")
        except Exception as e:
            logger.warning(f"[ORCHESTRATOR] cache invalidation failed for prefix='{prefix}': {type(e).__name__}: {e}")

"""클라이언트 구성 - 명시적으로 생성/주입되는 인스턴스 묶음

앱 시작 시 1개를 만들고 종료 시 close()합니다:

    async with ClientContainer() as container:
        result = await container.recognition.statistics()
"""
from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

from faceguard_client.core.config import Settings, settings as default_settings
from faceguard_client.core.logging import logger
from faceguard_client.controllers.capture_session import CaptureSessionMachine, ImageSource
from faceguard_client.controllers.paged_search import ListingSource, PagedSearchController
from faceguard_client.engine.orchestrator import OperationOrchestrator
from faceguard_client.engine.retry import RetryExecutor, Transport
from faceguard_client.services.impl.cache_service import ResponseCache
from faceguard_client.services.impl.offline_queue import OfflineQueue
from faceguard_client.services.impl.recognition_service import RecognitionService
from faceguard_client.services.impl.remote_client import RemoteServiceClient
from faceguard_client.services.impl.storage import KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore
from faceguard_client.services.impl.user_service import UserService


class ClientContainer:
    """전송 계층 → 재시도 → 캐시 → 큐 → 서비스 조립"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        transport: Optional[Transport] = None,
    ):
        """
        Args:
            settings: 설정 (없으면 전역 settings)
            store: 영속 저장소 (없으면 redis_url 유무로 Redis/메모리 선택)
            transport: 전송 계층 (없으면 httpx 기반 RemoteServiceClient)
        """
        self.settings = settings or default_settings

        if store is not None:
            self.store = store
        elif self.settings.redis_url:
            self.store = RedisKeyValueStore(self.settings.redis_url, namespace=self.settings.storage_namespace)
        else:
            self.store = MemoryKeyValueStore()

        self.http_client: Optional[RemoteServiceClient] = None
        if transport is None:
            self.http_client = RemoteServiceClient(self.settings)
            transport = self.http_client
        self.transport = transport

        self.executor = RetryExecutor(
            transport,
            max_attempts=self.settings.retry_max_attempts,
            base_delay_ms=self.settings.retry_base_delay_ms,
            cap_ms=self.settings.retry_cap_ms,
        )
        self.cache = ResponseCache(
            self.store,
            namespace=self.settings.cache_namespace,
            version=self.settings.cache_version,
        )
        self.orchestrator = OperationOrchestrator(
            self.executor,
            cache=self.cache,
            cache_enabled=self.settings.cache_enabled,
        )
        self.queue = OfflineQueue(
            self.store,
            self.orchestrator,
            max_retries=self.settings.queue_max_retries,
            storage_key=self.settings.queue_storage_key,
        )
        self.recognition = RecognitionService(self.orchestrator, self.settings)
        self.users = UserService(self.orchestrator, self.queue, self.settings)
        self._sweep_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------ #
    # 화면별 컨트롤러
    # ------------------------------------------------------------------ #

    def paged_search(
        self,
        source: ListingSource,
        initial_criteria: Optional[Mapping[str, Any]] = None,
    ) -> PagedSearchController:
        return PagedSearchController(
            self.orchestrator,
            source,
            debounce_ms=self.settings.search_debounce_ms,
            cache_ttl_ms=self.settings.list_cache_ttl_ms,
            initial_criteria=initial_criteria,
        )

    def capture_session(
        self,
        image_source: Optional[ImageSource] = None,
        algorithm: str = "hybrid",
    ) -> CaptureSessionMachine:
        return CaptureSessionMachine(
            self.orchestrator,
            self.recognition.identify_operation_builder(algorithm),
            image_source,
        )

    # ------------------------------------------------------------------ #
    # 수명 주기
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """저장된 오프라인 큐 복원 + 캐시 주기 회수 시작"""
        logger.info("Starting client...")
        await self.queue.load()
        interval = self.settings.cache_sweep_interval_s
        if self.orchestrator.cache is not None and interval > 0 and self._sweep_task is None:
            self._sweep_task = asyncio.ensure_future(self._sweep_periodically(interval))
        logger.info("Client started")

    async def _sweep_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.sweep_cache()

    async def sweep_cache(self) -> int:
        """만료 캐시 항목 회수 (저장소 오류는 다음 주기로 미룸)"""
        try:
            removed = await self.cache.sweep()
        except Exception as e:
            logger.warning(f"[CACHE_SWEEP] sweep failed: {type(e).__name__}: {e}")
            return 0
        if removed:
            logger.info(f"[CACHE_SWEEP] removed {removed} expired entries")
        return removed

    async def close(self) -> None:
        logger.info("Shutting down client...")
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            await asyncio.gather(self._sweep_task, return_exceptions=True)
            self._sweep_task = None
        if self.http_client is not None:
            await self.http_client.close()
        if isinstance(self.store, RedisKeyValueStore):
            await self.store.close()

    async def __aenter__(self) -> "ClientContainer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

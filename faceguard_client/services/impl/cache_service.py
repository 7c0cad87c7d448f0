"""응답 캐시 서비스 - TTL 기반 캐싱 로직만 담당

- 지연 만료: get이 만료 항목을 발견하면 즉시 제거 (stale 응답 금지)
- 저장소가 주어지면 write-through로 기록해 재시작 후에도 캐시를 재사용
"""
import time
from typing import Any, Callable, Optional

from pydantic import ValidationError

from faceguard_client.core.config import settings
from faceguard_client.core.logging import logger
from faceguard_client.core.exceptions import StorageSerializationException
from faceguard_client.schemas.operation_schema import CacheEntry
from faceguard_client.utils.hash_utils import resource_prefix

from .storage import KeyValueStore


class ResponseCache:
    """키 → 값 캐시 (항목별 만료)"""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        *,
        namespace: Optional[str] = None,
        version: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            store: 영속 저장소 (없으면 메모리 전용)
            namespace: 저장소 키 접두어
            version: 캐시 버전 (다르면 만료로 취급)
            clock: 현재 시각 함수 (초)
        """
        self.store = store
        self.namespace = namespace if namespace is not None else settings.cache_namespace
        self.version = version or settings.cache_version
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[Any]:
        """
        유효한 캐시 값 조회

        Args:
            key: 캐시 키

        Returns:
            값 또는 None (미스/만료)
        """
        entry = self._entries.get(key)
        if entry is None and self.store is not None:
            entry = await self._load(key)
            if entry is not None:
                self._entries[key] = entry

        if entry is None:
            logger.debug(f"Cache miss for key: {key}")
            return None

        if not entry.is_valid(self._clock(), self.version):
            logger.info(f"Cache expired for key: {key}")
            await self.invalidate(key)
            return None

        logger.debug(f"Cache hit for key: {key}")
        return entry.value

    async def put(self, key: str, value: Any, ttl_ms: int) -> None:
        """
        값 캐싱

        Args:
            key: 캐시 키
            value: JSON 직렬화 가능한 값 (None 불가)
            ttl_ms: 유효 기간 (밀리초, 양수)
        """
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        if value is None:
            logger.warning(f"Refusing to cache None for key: {key}")
            return

        now = self._clock()
        entry = CacheEntry(value=value, stored_at=now, expires_at=now + ttl_ms / 1000, version=self.version)

        if self.store is not None:
            try:
                serialized = entry.model_dump_json()
            except (TypeError, ValueError) as e:
                logger.error(f"Failed to serialize cache data: {e}")
                raise StorageSerializationException(operation="serialize", reason=str(e), details={"key": key})
            await self.store.set(self._storage_key(key), serialized)

        self._entries[key] = entry
        logger.info(f"Cache set for key: {key}, TTL: {ttl_ms}ms")

    async def invalidate(self, key: str) -> None:
        """단일 키 삭제"""
        self._entries.pop(key, None)
        if self.store is not None:
            await self.store.remove(self._storage_key(key))

    async def invalidate_prefix(self, prefix: str) -> int:
        """
        같은 리소스 접두어를 공유하는 모든 키 삭제 (write 후 무효화)

        메모리에 있는 키를 먼저 지운 뒤 저장소를 훑습니다.
        저장소 목록 조회가 실패해도 이 프로세스가 stale 응답을 돌려주지 않게 합니다.

        Returns:
            삭제된 키 수
        """
        keys = {k for k in self._entries if resource_prefix(k) == prefix}
        for key in keys:
            await self.invalidate(key)

        if self.store is not None:
            for stored in await self.store.list_keys(self.namespace):
                key = stored[len(self.namespace):]
                if key not in keys and resource_prefix(key) == prefix:
                    await self.invalidate(key)
                    keys.add(key)

        if keys:
            logger.info(f"Cache invalidated {len(keys)} key(s) for prefix: {prefix}")
        return len(keys)

    async def invalidate_all(self) -> None:
        """캐시 네임스페이스 전체 삭제 (큐 등 다른 데이터는 유지)"""
        self._entries.clear()
        if self.store is not None:
            for stored in await self.store.list_keys(self.namespace):
                await self.store.remove(stored)
        logger.info("Cache cleared")

    async def sweep(self) -> int:
        """
        만료 항목 일괄 회수 (선택적 주기 작업)

        Returns:
            회수된 항목 수
        """
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_valid(now, self.version)]
        if self.store is not None:
            for stored in await self.store.list_keys(self.namespace):
                key = stored[len(self.namespace):]
                if key in self._entries:
                    continue
                entry = await self._load(key)
                if entry is None or not entry.is_valid(now, self.version):
                    expired.append(key)

        for key in expired:
            await self.invalidate(key)
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def _storage_key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def _load(self, key: str) -> Optional[CacheEntry]:
        raw = await self.store.get(self._storage_key(key))
        if not raw:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError as e:
            # 손상된 항목은 미스로 취급하고 제거
            logger.warning(f"Failed to deserialize cache for key {key}: {e.error_count()} error(s)")
            await self.store.remove(self._storage_key(key))
            return None

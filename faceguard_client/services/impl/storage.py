"""영속 키-값 저장소 - OfflineQueue/ResponseCache의 내구성 담당

- RedisKeyValueStore: redis.asyncio 기반 (네임스페이스로 격리)
- MemoryKeyValueStore: 프로세스 메모리 (테스트/오프라인 개발용)
"""
from typing import Optional, Protocol

from redis.asyncio import Redis

from faceguard_client.core.logging import logger
from faceguard_client.core.exceptions import StorageConnectionException


class KeyValueStore(Protocol):
    """저장소 경계 프로토콜 (get/set/remove/clear/list_keys)"""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...

    async def clear(self) -> None:
        ...

    async def list_keys(self, prefix: str = "") -> list[str]:
        ...


class MemoryKeyValueStore:
    """메모리 저장소

    같은 인스턴스를 새 OfflineQueue에 넘기면 프로세스 재시작을 흉내낼 수 있습니다.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)

    async def clear(self) -> None:
        self.data.clear()

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self.data if k.startswith(prefix))


class RedisKeyValueStore:
    """Redis 저장소

    모든 키 앞에 namespace를 붙여 같은 Redis를 쓰는 다른 앱과 섞이지 않게 합니다.
    """

    def __init__(self, redis_url: str, namespace: str = "faceguard:", client: Optional[Redis] = None):
        """
        Args:
            redis_url: Redis 연결 URL
            namespace: 키 접두어
            client: 미리 만든 클라이언트 (테스트 주입용)
        """
        if not redis_url and client is None:
            raise ValueError("redis_url must not be empty")
        self.namespace = namespace
        self.redis_client = client or Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    def _k(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def ping(self) -> bool:
        """연결 확인"""
        try:
            await self.redis_client.ping()
            logger.info("Redis connection established")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise StorageConnectionException(reason="Redis connection failed", details={"error": str(e)})

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.redis_client.get(self._k(key))
        except Exception as e:
            logger.error(f"Storage read error: {e}")
            raise StorageConnectionException(reason="read failed", details={"key": key, "error": str(e)})

    async def set(self, key: str, value: str) -> None:
        try:
            await self.redis_client.set(self._k(key), value)
        except Exception as e:
            logger.error(f"Storage write error: {e}")
            raise StorageConnectionException(reason="write failed", details={"key": key, "error": str(e)})

    async def remove(self, key: str) -> None:
        try:
            await self.redis_client.delete(self._k(key))
        except Exception as e:
            logger.error(f"Storage delete error: {e}")
            raise StorageConnectionException(reason="delete failed", details={"key": key, "error": str(e)})

    async def clear(self) -> None:
        """네임스페이스 안의 키만 삭제"""
        keys = await self.list_keys()
        if not keys:
            return
        try:
            await self.redis_client.delete(*[self._k(k) for k in keys])
        except Exception as e:
            logger.error(f"Storage clear error: {e}")
            raise StorageConnectionException(reason="clear failed", details={"error": str(e)})

    async def list_keys(self, prefix: str = "") -> list[str]:
        try:
            keys = [key async for key in self.redis_client.scan_iter(match=f"{self._k(prefix)}*")]
        except Exception as e:
            logger.error(f"Storage scan error: {e}")
            raise StorageConnectionException(reason="scan failed", details={"error": str(e)})
        return sorted(k[len(self.namespace):] for k in keys)

    async def close(self) -> None:
        try:
            await self.redis_client.aclose()
        except Exception as e:
            logger.warning(f"Redis close failed: {type(e).__name__}: {e}")

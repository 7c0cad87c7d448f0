"""원격 서비스 어댑터 - export only."""

from .impl import (
    MemoryKeyValueStore,
    OfflineQueue,
    RecognitionService,
    RedisKeyValueStore,
    RemoteServiceClient,
    ResponseCache,
    UserService,
)

__all__ = [
    "ResponseCache",
    "OfflineQueue",
    "RemoteServiceClient",
    "RecognitionService",
    "UserService",
    "MemoryKeyValueStore",
    "RedisKeyValueStore",
]

"""Services implementation package."""

from .cache_service import ResponseCache
from .offline_queue import OfflineQueue, ReplayReport, SyncInfo
from .recognition_service import RecognitionService
from .remote_client import RemoteServiceClient, build_async_client
from .storage import KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore
from .user_service import UserService

__all__ = [
    "ResponseCache",
    "OfflineQueue",
    "ReplayReport",
    "SyncInfo",
    "RecognitionService",
    "RemoteServiceClient",
    "build_async_client",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "RedisKeyValueStore",
    "UserService",
]

"""Pydantic 스키마 - export only."""

from .operation_schema import (
    CacheEntry,
    ContentType,
    Operation,
    OperationKind,
    QueueItem,
    QueueItemStatus,
    QueueSnapshot,
)
from .recognition_schema import AlertLevel, PaginationInfo, SecurityAlert, extract_security_alert

__all__ = [
    "Operation",
    "OperationKind",
    "ContentType",
    "QueueItem",
    "QueueItemStatus",
    "QueueSnapshot",
    "CacheEntry",
    "AlertLevel",
    "SecurityAlert",
    "PaginationInfo",
    "extract_security_alert",
]

"""커스텀 예외 정의 (Structured Exception Hierarchy)"""
from typing import Any, Optional


# 기본 예외 클래스
class FaceGuardClientException(Exception):
    """기본 예외 클래스 - 모든 커스텀 예외의 부모"""
    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# 원격 서비스 관련 예외
class RemoteServiceException(FaceGuardClientException):
    """서버가 오류 상태 코드로 응답한 경우

    status_code는 ErrorClassifier가 SERVER_ERROR/CLIENT_ERROR를 가르는 기준입니다.
    """
    def __init__(self, status_code: int, message: str, details: Optional[dict[str, Any]] = None):
        self.status_code = status_code
        super().__init__(message, f"HTTP_{status_code}", details or {"status_code": status_code})


class NetworkTimeoutException(FaceGuardClientException):
    """네트워크 타임아웃 예외"""
    def __init__(self, operation: str, timeout_ms: int, details: Optional[dict[str, Any]] = None):
        message = f"Network timeout during '{operation}' after {timeout_ms}ms"
        super().__init__(message, "NETWORK_TIMEOUT",
                         details or {"operation": operation, "timeout_ms": timeout_ms})


class OperationCancelledException(FaceGuardClientException):
    """호출자가 CancelToken으로 작업을 취소한 경우"""
    def __init__(self, operation: str, details: Optional[dict[str, Any]] = None):
        message = f"Operation '{operation}' was cancelled"
        super().__init__(message, "CANCELLED", details or {"operation": operation})


# 저장소 관련 예외
class StorageException(FaceGuardClientException):
    """영속 저장소 관련 예외"""
    def __init__(self, message: str, error_code: str = "STORAGE_ERROR", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code or "STORAGE_ERROR", details)


class StorageConnectionException(StorageException):
    """저장소 연결/입출력 실패"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Storage operation failed: {reason}"
        super().__init__(message, "STORAGE_CONNECTION_ERROR", details or {"reason": reason})


class StorageSerializationException(StorageException):
    """저장 데이터 직렬화/역직렬화 오류"""
    def __init__(self, operation: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Storage {operation} failed: {reason}"
        super().__init__(message, "STORAGE_SERIALIZATION_ERROR",
                         details or {"operation": operation, "reason": reason})


# 오프라인 큐 관련 예외
class QueueItemNotFoundException(FaceGuardClientException):
    """큐/데드레터에 해당 ID가 없음"""
    def __init__(self, item_id: str, details: Optional[dict[str, Any]] = None):
        message = f"Queue item not found: {item_id}"
        super().__init__(message, "QUEUE_ITEM_NOT_FOUND", details or {"item_id": item_id})


# 유효성 검증 관련 예외
class ValidationException(FaceGuardClientException):
    """유효성 검증 예외"""
    def __init__(self, field: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Validation failed for '{field}': {reason}"
        super().__init__(message, "VALIDATION_ERROR",
                         details or {"field": field, "reason": reason})


class InvalidOperationException(ValidationException):
    """Operation 기술자가 해당 용도에 맞지 않음 (예: write를 캐시에 저장)"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__("operation", reason, details)

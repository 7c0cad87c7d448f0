"""Operation Result - Standardized Result Format

Provides a standardized result for every remote operation, whether it was
served from the cache or from the network.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class OutcomeKind(str, Enum):
    """작업 결과 분류 (에러 분류 체계)"""

    SUCCESS = "success"
    NETWORK = "network"  # 서버 응답 없음 / 연결 오류
    TIMEOUT = "timeout"  # 데드라인 경과
    SERVER_ERROR = "server_error"  # 5xx
    CLIENT_ERROR = "client_error"  # 4xx (재시도 무의미)
    CANCELLED = "cancelled"  # 호출자 취소


RETRYABLE_KINDS = frozenset({OutcomeKind.NETWORK, OutcomeKind.TIMEOUT, OutcomeKind.SERVER_ERROR})


@dataclass(frozen=True)
class ErrorInfo:
    """UI 경계로 전달되는 안정적인 {kind, message} 쌍

    kind가 재시도 가능한 종류일 때만 재시도 버튼을 노출합니다.
    """

    kind: OutcomeKind
    message: str
    retryable: bool = False
    status_code: Optional[int] = None


@dataclass
class OperationResult:
    """원격 작업 결과 표준 포맷

    Attributes:
        status: 결과 분류
        value: 성공 시 응답 페이로드
        attempts: 실제 네트워크 시도 횟수 (캐시 히트는 0)
        source: "network" | "cache"
        error: 실패 시 UI용 에러 정보
        elapsed_ms: 소요 시간 (밀리초)
    """

    status: OutcomeKind
    value: Any = None
    attempts: int = 0
    source: Optional[str] = None
    error: Optional[ErrorInfo] = None
    elapsed_ms: Optional[float] = None

    @property
    def is_success(self) -> bool:
        return self.status == OutcomeKind.SUCCESS

    @property
    def is_retryable(self) -> bool:
        return self.status in RETRYABLE_KINDS

    @property
    def status_code(self) -> Optional[int]:
        return self.error.status_code if self.error else None

    @classmethod
    def success(cls, value: Any, attempts: int, elapsed_ms: Optional[float] = None) -> "OperationResult":
        return cls(
            status=OutcomeKind.SUCCESS,
            value=value,
            attempts=attempts,
            source="network",
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def from_cache(cls, value: Any) -> "OperationResult":
        return cls(status=OutcomeKind.SUCCESS, value=value, attempts=0, source="cache", elapsed_ms=0.0)

    @classmethod
    def failure(cls, error: ErrorInfo, attempts: int, elapsed_ms: Optional[float] = None) -> "OperationResult":
        return cls(
            status=error.kind,
            attempts=attempts,
            source="network",
            error=error,
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def cancelled(cls, attempts: int, message: str = "Operation cancelled.") -> "OperationResult":
        return cls(
            status=OutcomeKind.CANCELLED,
            attempts=attempts,
            error=ErrorInfo(kind=OutcomeKind.CANCELLED, message=message, retryable=False),
        )

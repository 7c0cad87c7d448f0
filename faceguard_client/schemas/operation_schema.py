"""Pydantic 스키마 정의 - 원격 작업 기술자와 영속 큐/캐시 레코드"""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class OperationKind(str, Enum):
    """작업 종류 - read만 캐시에 저장될 수 있음"""

    READ = "read"
    WRITE = "write"


class ContentType(str, Enum):
    """요청 본문 형식"""

    NONE = "none"
    JSON = "json"
    MULTIPART = "multipart"


class Operation(BaseModel):
    """원격 호출 기술자

    key는 논리적 리소스(캐시/중복 제거 기준)이며 HTTP 어댑터에서는 상대 경로로 쓰입니다.
    idempotency_key는 재시도된 write를 서버가 중복으로 인식하게 합니다.
    """

    # bytes는 base64로 직렬화해야 영속 저장소 JSON 왕복이 안전함
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64", frozen=True)

    kind: OperationKind
    key: str = Field(..., min_length=1, max_length=2048, description="리소스 키 (예: usuarios/12)")
    payload: bytes = Field(b"", description="요청 본문 (이미지 또는 JSON 바이트)")
    idempotency_key: Optional[str] = Field(None, max_length=128)
    method: Optional[str] = Field(None, description="HTTP 메서드 (없으면 read=GET, write=POST)")
    params: dict[str, str] = Field(default_factory=dict, description="쿼리 또는 폼 필드")
    content_type: ContentType = ContentType.NONE
    payload_field: str = Field("imagen", description="multipart 파일 파트 이름")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        v = v.strip().lstrip("/")
        if not v:
            raise ValueError("operation key must not be blank")
        return v

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        upper = v.upper()
        if upper not in {"GET", "POST", "PUT", "PATCH", "DELETE"}:
            raise ValueError(f"unsupported method: {v}")
        return upper

    @model_validator(mode="after")
    def validate_read_has_no_body(self) -> "Operation":
        if self.kind == OperationKind.READ and self.payload:
            raise ValueError("read operations must not carry a payload")
        return self

    @property
    def is_read(self) -> bool:
        return self.kind == OperationKind.READ

    @property
    def http_method(self) -> str:
        if self.method:
            return self.method
        return "GET" if self.is_read else "POST"

    @classmethod
    def read(cls, key: str, params: Optional[dict[str, Any]] = None) -> "Operation":
        """조회 작업 생성 (None 값 파라미터는 제외)"""
        return cls(kind=OperationKind.READ, key=key, params=_stringify(params))

    @classmethod
    def write(
        cls,
        key: str,
        *,
        payload: bytes = b"",
        params: Optional[dict[str, Any]] = None,
        method: Optional[str] = None,
        content_type: ContentType = ContentType.NONE,
        idempotency_key: Optional[str] = None,
        payload_field: str = "imagen",
    ) -> "Operation":
        """변경 작업 생성"""
        return cls(
            kind=OperationKind.WRITE,
            key=key,
            payload=payload,
            params=_stringify(params),
            method=method,
            content_type=content_type,
            idempotency_key=idempotency_key,
            payload_field=payload_field,
        )


def _stringify(params: Optional[dict[str, Any]]) -> dict[str, str]:
    """URLSearchParams와 같은 규칙: None 제외, bool은 소문자"""
    out: dict[str, str] = {}
    for name, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            out[name] = "true" if value else "false"
        else:
            out[name] = str(value)
    return out


class QueueItemStatus(str, Enum):
    """오프라인 큐 항목 상태"""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DEAD_LETTERED = "dead_lettered"


class QueueItem(BaseModel):
    """오프라인 큐 항목 (OfflineQueue가 전적으로 소유)"""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    id: str
    operation: Operation
    enqueued_at: float = Field(..., description="epoch seconds")
    retries: int = Field(0, ge=0)
    status: QueueItemStatus = QueueItemStatus.PENDING
    last_error: Optional[str] = None


class QueueSnapshot(BaseModel):
    """저장소에 기록되는 큐 전체 문서"""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    pending: list[QueueItem] = Field(default_factory=list)
    dead_letters: list[QueueItem] = Field(default_factory=list)
    last_replay_at: Optional[float] = None
    last_successful_replay_at: Optional[float] = None


class CacheEntry(BaseModel):
    """캐시 항목 - now < expires_at 일 때만 유효"""

    value: Any
    stored_at: float
    expires_at: float
    version: str = "1.0"

    @model_validator(mode="after")
    def validate_expiry_after_store(self) -> "CacheEntry":
        if self.expires_at <= self.stored_at:
            raise ValueError("expires_at must be greater than stored_at")
        return self

    def is_valid(self, now: float, version: str) -> bool:
        return now < self.expires_at and self.version == version

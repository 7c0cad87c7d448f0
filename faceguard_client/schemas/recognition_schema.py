"""Pydantic 스키마 정의 - 인식/목록 응답 중 클라이언트가 해석하는 부분만"""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class AlertLevel(str, Enum):
    """보안 알림 등급"""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class SecurityAlert(BaseModel):
    """보안 알림 (요주의 인물 탐지)

    서버는 alert_level/level 두 가지 이름을 모두 사용하므로 둘 다 허용합니다.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    level: AlertLevel = Field(AlertLevel.HIGH, validation_alias="alert_level")
    alert_id: Optional[str] = None
    alert_type: Optional[str] = None
    person_name: Optional[str] = None
    person_lastname: Optional[str] = None
    requisition_type: Optional[str] = None
    message: Optional[str] = None


def extract_security_alert(payload: Any) -> Optional[SecurityAlert]:
    """인식 응답에서 보안 알림을 추출

    확인 위치: alert / alerta_seguridad (최상위 또는 data 하위)

    Returns:
        SecurityAlert 또는 None (알림 없음)
    """
    if not isinstance(payload, dict):
        return None

    candidates: list[Any] = [payload.get("alert"), payload.get("alerta_seguridad")]
    data = payload.get("data")
    if isinstance(data, dict):
        candidates.extend([data.get("alert"), data.get("alerta_seguridad")])

    for raw in candidates:
        if not isinstance(raw, dict):
            continue
        try:
            return SecurityAlert.model_validate(raw)
        except ValidationError:
            # 형식이 어긋나도 알림 자체는 무시하지 않음 (기본 등급 HIGH)
            message = raw.get("message")
            return SecurityAlert(message=str(message) if message else None)
    return None


class PaginationInfo(BaseModel):
    """페이지 정보 (서버 스페인어 필드명 매핑)"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total: int = Field(0, ge=0)
    page: int = Field(1, ge=1, validation_alias="pagina")
    page_size: int = Field(20, ge=1, validation_alias="items_por_pagina")
    total_pages: int = Field(0, ge=0, validation_alias="total_paginas")

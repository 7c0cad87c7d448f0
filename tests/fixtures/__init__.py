"""테스트 자산(데이터) 레이어

규칙:
- 로직 없음 (단순 dict/list/primitive 생성)
- 엔진/네트워크 의존 없음
"""

from .payloads import (
    IDENTIFY_NO_MATCH,
    IDENTIFY_WITH_HIGH_ALERT,
    VALIDATION_ERROR_BODY,
    history_page,
    user_page,
)

__all__ = [
    "IDENTIFY_WITH_HIGH_ALERT",
    "IDENTIFY_NO_MATCH",
    "VALIDATION_ERROR_BODY",
    "history_page",
    "user_page",
]

"""해싱 유틸리티"""
import hashlib
import json
import uuid
from typing import Any, Mapping, Optional


def hash_string(text: str) -> str:
    """
    문자열을 MD5 해시로 변환

    Args:
        text: 해시할 문자열

    Returns:
        MD5 해시 문자열
    """
    return hashlib.md5(text.encode()).hexdigest()


def normalize_criteria(criteria: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """필터 조건 정규화 - 빈 값 제거, 문자열은 공백 정리"""
    out: dict[str, Any] = {}
    for name, value in (criteria or {}).items():
        if value is None:
            continue
        if isinstance(value, str):
            value = " ".join(value.split())
            if not value:
                continue
        out[name] = value
    return out


def generate_filter_fingerprint(criteria: Optional[Mapping[str, Any]]) -> str:
    """
    필터/검색 조건으로 fingerprint 생성

    같은 조건이면 키 순서와 공백 차이에 상관없이 같은 값을 돌려줍니다.

    Args:
        criteria: 필터 조건 (검색어 포함)

    Returns:
        "filter:<md5>" 형식의 fingerprint
    """
    normalized = normalize_criteria(criteria)
    encoded = json.dumps(normalized, sort_keys=True, ensure_ascii=False, default=str)
    return f"filter:{hash_string(encoded)}"


def generate_cache_key(key: str, params: Optional[Mapping[str, str]] = None) -> str:
    """
    리소스 키 + 파라미터로 캐시 키 생성

    리소스 접두어(resource_prefix)가 앞에 그대로 남아야 write 후 접두어 무효화가 가능합니다.
    """
    if not params:
        return key
    encoded = json.dumps(dict(params), sort_keys=True, ensure_ascii=False)
    return f"{key}?{hash_string(encoded)}"


def resource_prefix(key: str) -> str:
    """리소스 키의 첫 경로 세그먼트 (예: "usuarios/12/imagenes" → "usuarios")"""
    head = key.lstrip("/").split("?", 1)[0]
    return head.split("/", 1)[0]


def new_idempotency_key() -> str:
    """사용자 행위 1회당 1개 발급되는 멱등성 키"""
    return uuid.uuid4().hex

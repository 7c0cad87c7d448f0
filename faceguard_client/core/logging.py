"""로깅 설정 - 클라이언트 라이브러리용 named logger

호스트 앱이 자체 로깅을 구성한다면 FACEGUARD_LOG_TO_STDOUT=false로 두고
루트 핸들러로 전파시킵니다. 서버 에러 본문/사용자 입력은 sanitize_for_log를 거쳐서만 남깁니다.
"""
import logging
import os
import re
import sys
from typing import Optional, TextIO

from faceguard_client.core.config import settings


LOGGER_NAME = "faceguard_client"

# Production 환경에서는 DEBUG 로그 비활성화
IS_PRODUCTION = os.getenv("ENVIRONMENT", "development") == "production"

# 자격 증명 키워드가 보이면 문자열 전체를 가림
SECRET_KEYWORDS = ("password", "token", "api_key", "secret", "authorization")

# 개인 정보는 부분 마스킹 (a***@uni.edu)
_EMAIL_PATTERN = re.compile(r"\b([A-Za-z0-9])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")


def _resolve_level(level: Optional[str]) -> int:
    name = (level or settings.log_level).upper()
    if IS_PRODUCTION and name == "DEBUG":
        name = "INFO"
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> logging.Logger:
    """로거 초기화 및 설정

    Args:
        level: 로그 레벨 (없으면 settings.log_level)
        stream: 출력 스트림 (없으면 stdout)
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_resolve_level(level))

    if not settings.log_to_stdout:
        # 라이브러리 모드: 출력은 호스트 앱 핸들러에 맡김
        logger.propagate = True
        return logger

    if IS_PRODUCTION:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    if not logger.handlers:
        console_handler = logging.StreamHandler(stream or sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
    logger.propagate = False

    return logger


logger = setup_logging()


def sanitize_for_log(value: Optional[str], max_length: int = 100) -> str:
    """민감 정보 제거 후 로깅용 문자열 반환

    서버 에러 본문이나 요청 키처럼 외부에서 온 문자열에 사용합니다.
    - 자격 증명 키워드 포함: 전체를 '***'로
    - 이메일 주소: 첫 글자와 도메인만 남김
    - 줄바꿈 제거 (로그 한 줄 유지)
    """
    if not value:
        return "[empty]"

    lowered = value.lower()
    if any(keyword in lowered for keyword in SECRET_KEYWORDS):
        return "***"

    result = _EMAIL_PATTERN.sub(r"\1***@\2", value)
    result = " ".join(result.split())

    if len(result) > max_length:
        result = result[:max_length] + "..."

    return result

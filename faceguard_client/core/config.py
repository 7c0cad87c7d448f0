"""설정 관리 - 환경 변수 로드 및 검증"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """클라이언트 설정"""

    model_config = SettingsConfigDict(
        env_prefix="FACEGUARD_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # 원격 서비스
    api_base_url: str = "https://fr-ml-api-production.up.railway.app/api/v1"
    request_timeout_s: float = 30.0  # 인식 요청은 30초까지 허용
    user_agent: str = "faceguard-client/1.0"

    # 재시도 정책 (RetryExecutor 기본값)
    retry_max_attempts: int = 3
    retry_base_delay_ms: int = 1000
    retry_cap_ms: int = 10000

    # 오프라인 큐
    queue_max_retries: int = 3
    queue_storage_key: str = "offline_queue"

    # 응답 캐시
    cache_enabled: bool = True
    cache_version: str = "1.0"
    cache_namespace: str = "cache:"
    list_cache_ttl_ms: int = 30000  # 목록 조회는 짧게 (pull-to-refresh/뒤로가기 대응)
    statistics_cache_ttl_ms: int = 5 * 60 * 1000
    user_statistics_cache_ttl_ms: int = 10 * 60 * 1000
    model_info_cache_ttl_ms: int = 15 * 60 * 1000
    cache_sweep_interval_s: float = 300.0  # 만료 항목 주기 회수 (0이면 끔)

    # 목록/검색
    page_size: int = 20
    search_debounce_ms: int = 400

    # 학생 ID 직접 조회가 불가할 때의 선형 스캔 상한 (degraded mode)
    student_scan_enabled: bool = True
    student_scan_max_pages: int = 20

    # 영속 저장소 (비어 있으면 메모리 저장소)
    redis_url: str = ""
    storage_namespace: str = "faceguard:"

    # 로깅
    log_level: str = "INFO"
    log_to_stdout: bool = True  # false면 호스트 앱 핸들러로 전파

    @field_validator("request_timeout_s")
    @classmethod
    def validate_request_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout_s must be positive")
        return v

    @field_validator("retry_max_attempts", "queue_max_retries")
    @classmethod
    def validate_attempt_budgets(cls, v: int) -> int:
        if v < 1:
            raise ValueError("attempt budgets must be >= 1")
        return v

    @field_validator(
        "retry_base_delay_ms",
        "retry_cap_ms",
        "list_cache_ttl_ms",
        "statistics_cache_ttl_ms",
        "user_statistics_cache_ttl_ms",
        "model_info_cache_ttl_ms",
    )
    @classmethod
    def validate_positive_ms(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("durations must be positive")
        return v

    @field_validator("search_debounce_ms")
    @classmethod
    def validate_debounce(cls, v: int) -> int:
        if v < 0:
            raise ValueError("search_debounce_ms must be >= 0")
        return v

    @field_validator("cache_sweep_interval_s")
    @classmethod
    def validate_sweep_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("cache_sweep_interval_s must be >= 0")
        return v

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        # 서버 MAX_PAGE_SIZE = 100
        if not 1 <= v <= 100:
            raise ValueError("page_size must be between 1 and 100")
        return v

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_base_url must start with http:// or https://")
        return v.rstrip("/")


settings = Settings()

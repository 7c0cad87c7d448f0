"""인식 서비스 - 인식 요청/이력/알림/통계 조회

엔드포인트 형태는 이 모듈에만 있으며 코어는 Operation 추상만 봅니다.
"""
from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any, Mapping, Optional

from faceguard_client.core.config import Settings, settings as default_settings
from faceguard_client.controllers.paged_search import PageSlice
from faceguard_client.engine.result import OperationResult
from faceguard_client.schemas.operation_schema import ContentType, Operation
from faceguard_client.schemas.recognition_schema import AlertLevel, PaginationInfo

if TYPE_CHECKING:
    from faceguard_client.controllers.capture_session import OperationBuilder
    from faceguard_client.engine.orchestrator import OperationOrchestrator


ALGORITHMS = ("eigenfaces", "lbp", "hybrid")


def build_identify_operation(
    image: bytes,
    idempotency_key: str,
    *,
    algorithm: str = "hybrid",
    include_details: bool = True,
) -> Operation:
    """
    인물 식별 요청 (multipart: 이미지 + 알고리즘)

    Args:
        image: 촬영 이미지 바이트
        idempotency_key: 사용자 촬영 1회당 1개
        algorithm: eigenfaces | lbp | hybrid
        include_details: 기술 상세 포함 여부
    """
    if algorithm not in ALGORITHMS:
        raise ValueError(f"unknown algorithm: {algorithm}")
    return Operation.write(
        "reconocimiento/identificar",
        payload=image,
        params={"algoritmo": algorithm, "incluir_detalles": include_details},
        content_type=ContentType.MULTIPART,
        idempotency_key=idempotency_key,
    )


class RecognitionHistorySource:
    """인식 이력 목록 조회 경계"""

    FILTER_KEYS = ("usuario_id", "reconocido", "alerta_generada", "confianza_minima")

    def __init__(self, page_size: int = 20):
        self.page_size = page_size

    def build_operation(self, criteria: Mapping[str, Any], page: int) -> Operation:
        params: dict[str, Any] = {"pagina": page, "items_por_pagina": self.page_size}
        params.update({k: v for k, v in criteria.items() if k in self.FILTER_KEYS})
        return Operation.read("reconocimiento/historial", params)

    def parse_page(self, payload: Any) -> PageSlice:
        data = payload["data"]
        info = PaginationInfo.model_validate(data["paginacion"])
        return PageSlice(
            items=tuple(data.get("reconocimientos") or ()),
            page=info.page,
            total_pages=info.total_pages,
            total=info.total,
        )


class RecognitionService:
    """인식 관련 원격 작업"""

    def __init__(self, orchestrator: "OperationOrchestrator", settings: Optional[Settings] = None):
        self.orchestrator = orchestrator
        self.settings = settings or default_settings

    def identify_operation_builder(
        self,
        algorithm: str = "hybrid",
        include_details: bool = True,
    ) -> "OperationBuilder":
        """CaptureSessionMachine에 주입할 (이미지, 키) → Operation 함수"""
        if algorithm not in ALGORITHMS:
            raise ValueError(f"unknown algorithm: {algorithm}")
        return partial(build_identify_operation, algorithm=algorithm, include_details=include_details)

    def history_source(self, page_size: Optional[int] = None) -> RecognitionHistorySource:
        return RecognitionHistorySource(page_size or self.settings.page_size)

    async def alerts_history(self, limit: int = 50, level: Optional[AlertLevel] = None) -> OperationResult:
        """보안 알림 이력 (목록 TTL로 캐시)"""
        params: dict[str, Any] = {"limite": limit}
        if level is not None:
            params["nivel"] = AlertLevel(level).value
        operation = Operation.read("reconocimiento/alertas/historial", params)
        return await self.orchestrator.execute(operation, cache_ttl_ms=self.settings.list_cache_ttl_ms)

    async def statistics(self, days: int = 30, force_refresh: bool = False) -> OperationResult:
        """인식 통계 (5분 캐시)"""
        if days <= 0:
            raise ValueError("days must be positive")
        operation = Operation.read("reconocimiento/estadisticas", {"dias": days})
        return await self.orchestrator.execute(
            operation,
            cache_ttl_ms=self.settings.statistics_cache_ttl_ms,
            force_refresh=force_refresh,
        )

    async def model_info(self, force_refresh: bool = False) -> OperationResult:
        """모델 정보 (15분 캐시)"""
        operation = Operation.read("reconocimiento/modelo/info")
        return await self.orchestrator.execute(
            operation,
            cache_ttl_ms=self.settings.model_info_cache_ttl_ms,
            force_refresh=force_refresh,
        )

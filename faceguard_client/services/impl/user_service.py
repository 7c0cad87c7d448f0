"""사용자 서비스 - 사용자 목록/조회/등록/수정/삭제 및 모델 학습

변경 작업은 OfflineQueue가 있으면 submit_or_enqueue를 거칩니다 (연결 문제 시 보관 후 재생).
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Optional

from faceguard_client.core.config import Settings, settings as default_settings
from faceguard_client.core.logging import logger, sanitize_for_log
from faceguard_client.controllers.paged_search import PageSlice
from faceguard_client.engine.result import ErrorInfo, OperationResult, OutcomeKind
from faceguard_client.schemas.operation_schema import ContentType, Operation
from faceguard_client.schemas.recognition_schema import PaginationInfo

if TYPE_CHECKING:
    from faceguard_client.engine.orchestrator import OperationOrchestrator
    from .offline_queue import OfflineQueue


# 직접 조회 엔드포인트가 없는 서버 버전의 응답 코드
DIRECT_LOOKUP_UNSUPPORTED = frozenset({404, 405, 501})

STUDENT_NOT_FOUND_MESSAGE = "No user registered with that student id."


class UserListingSource:
    """사용자 목록 조회 경계"""

    FILTER_KEYS = ("nombre", "apellido", "email", "requisitoriado", "activo")

    def __init__(self, page_size: int = 20):
        self.page_size = page_size

    def build_operation(self, criteria: Mapping[str, Any], page: int) -> Operation:
        params: dict[str, Any] = {
            "pagina": page,
            "items_por_pagina": self.page_size,
            "incluir_imagen": True,
        }
        # 검색창 입력은 이름 필터로 전달
        if criteria.get("search") and "nombre" not in criteria:
            params["nombre"] = criteria["search"]
        params.update({k: v for k, v in criteria.items() if k in self.FILTER_KEYS})
        return Operation.read("usuarios/", params)

    def parse_page(self, payload: Any) -> PageSlice:
        info = PaginationInfo.model_validate(payload)
        return PageSlice(
            items=tuple(payload.get("data") or ()),
            page=info.page,
            total_pages=info.total_pages,
            total=info.total,
        )


class UserService:
    """사용자 관련 원격 작업"""

    def __init__(
        self,
        orchestrator: "OperationOrchestrator",
        queue: Optional["OfflineQueue"] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            orchestrator: 캐시 + 재시도 실행 파이프라인
            queue: 오프라인 큐 (없으면 변경 작업을 바로 실행만 함)
            settings: 설정 (없으면 전역 settings)
        """
        self.orchestrator = orchestrator
        self.queue = queue
        self.settings = settings or default_settings

    def listing_source(self, page_size: Optional[int] = None) -> UserListingSource:
        return UserListingSource(page_size or self.settings.page_size)

    # ------------------------------------------------------------------ #
    # 조회
    # ------------------------------------------------------------------ #

    async def find_user_by_student_id(
        self,
        student_id: str,
        include_images: bool = True,
        include_recognitions: bool = False,
        fallback_scan: Optional[bool] = None,
    ) -> OperationResult:
        """
        학생 ID로 사용자 조회

        직접 조회 엔드포인트를 우선 사용합니다. 서버가 이를 지원하지 않고(404/405/501)
        fallback_scan이 켜져 있을 때만 목록 페이지를 최대 student_scan_max_pages까지 훑습니다.

        Args:
            student_id: 학생 ID
            include_images: 이미지 포함 여부
            include_recognitions: 인식 이력 포함 여부
            fallback_scan: 목록 스캔 허용 (None이면 settings.student_scan_enabled)
        """
        student_id = student_id.strip()
        if not student_id:
            raise ValueError("student_id must not be blank")

        operation = Operation.read(
            f"usuarios/estudiante/{student_id}",
            {"incluir_imagenes": include_images, "incluir_reconocimientos": include_recognitions},
        )
        result = await self.orchestrator.execute(operation)
        if result.is_success or result.status_code not in DIRECT_LOOKUP_UNSUPPORTED:
            return result

        if fallback_scan is None:
            fallback_scan = self.settings.student_scan_enabled
        if not fallback_scan:
            return result

        logger.warning(
            f"[USER_SERVICE] direct student lookup unavailable (HTTP {result.status_code}), "
            f"scanning up to {self.settings.student_scan_max_pages} page(s)"
        )
        return await self._scan_for_student(student_id)

    async def _scan_for_student(self, student_id: str) -> OperationResult:
        source = self.listing_source(100)
        attempts = 0
        scanned = 0
        page = 1
        while page <= self.settings.student_scan_max_pages:
            result = await self.orchestrator.execute(
                source.build_operation({}, page),
                cache_ttl_ms=self.settings.list_cache_ttl_ms,
            )
            attempts += result.attempts
            scanned += 1
            if not result.is_success:
                return result

            page_slice = source.parse_page(result.value)
            for user in page_slice.items:
                if isinstance(user, dict) and str(user.get("id_estudiante") or "") == student_id:
                    logger.info(f"[USER_SERVICE] student found by scan on page {page}")
                    return OperationResult.success({"success": True, "data": user}, attempts=attempts)

            if page >= page_slice.total_pages:
                break
            page += 1

        logger.info(f"[USER_SERVICE] student not found after scanning {scanned} page(s)")
        error = ErrorInfo(kind=OutcomeKind.CLIENT_ERROR, message=STUDENT_NOT_FOUND_MESSAGE, status_code=404)
        return OperationResult.failure(error, attempts=attempts)

    async def user_statistics(self, force_refresh: bool = False) -> OperationResult:
        """사용자 통계 요약 (10분 캐시)"""
        operation = Operation.read("usuarios/estadisticas/resumen")
        return await self.orchestrator.execute(
            operation,
            cache_ttl_ms=self.settings.user_statistics_cache_ttl_ms,
            force_refresh=force_refresh,
        )

    async def training_status(self) -> OperationResult:
        return await self.orchestrator.execute(Operation.read("usuarios/entrenamiento/estado"))

    # ------------------------------------------------------------------ #
    # 변경
    # ------------------------------------------------------------------ #

    async def create_user(
        self,
        nombre: str,
        apellido: str,
        email: str,
        student_id: Optional[str] = None,
        image: Optional[bytes] = None,
    ) -> tuple[OperationResult, Optional[str]]:
        """
        사용자 등록 (multipart: 폼 필드 + 선택적 얼굴 이미지)

        Returns:
            (실행 결과, 오프라인 큐에 보관되었으면 항목 ID)
        """
        operation = Operation.write(
            "usuarios/",
            payload=image or b"",
            params={"nombre": nombre, "apellido": apellido, "email": email, "id_estudiante": student_id},
            content_type=ContentType.MULTIPART,
            payload_field="imagenes",
        )
        return await self._submit(operation)

    async def update_user(self, user_id: int, changes: Mapping[str, Any]) -> tuple[OperationResult, Optional[str]]:
        """부분 수정 (None 값 필드는 전송하지 않음)"""
        if not changes:
            raise ValueError("changes must not be empty")
        operation = Operation.write(f"usuarios/{user_id}", params=dict(changes), method="PUT")
        return await self._submit(operation)

    async def delete_user(self, user_id: int, eliminar_definitivo: bool = False) -> tuple[OperationResult, Optional[str]]:
        operation = Operation.write(
            f"usuarios/{user_id}",
            params={"eliminar_definitivo": eliminar_definitivo},
            method="DELETE",
        )
        return await self._submit(operation)

    async def add_user_image(self, user_id: int, image: bytes) -> tuple[OperationResult, Optional[str]]:
        if not image:
            raise ValueError("image must not be empty")
        operation = Operation.write(
            f"usuarios/{user_id}/imagenes",
            payload=image,
            content_type=ContentType.MULTIPART,
            payload_field="imagenes",
        )
        return await self._submit(operation)

    async def train_model(self) -> OperationResult:
        """모델 재학습 요청 (오프라인 보관 대상 아님)"""
        return await self.orchestrator.execute(Operation.write("usuarios/entrenar-modelo"))

    async def _submit(self, operation: Operation) -> tuple[OperationResult, Optional[str]]:
        if self.queue is not None:
            result, item_id = await self.queue.submit_or_enqueue(operation)
        else:
            result, item_id = await self.orchestrator.execute(operation), None

        if not result.is_success and result.error is not None:
            logger.info(
                f"[USER_SERVICE] {operation.http_method} '{operation.key}' failed: "
                f"{result.status.value} - {sanitize_for_log(result.error.message)}"
            )
        return result, item_id

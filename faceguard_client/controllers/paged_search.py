"""Paged Search Controller - searchable, paginated, refreshable list

검색어/필터 변경과 스크롤 기반 페이지 로드 사이의 경쟁을 fingerprint로 정리합니다:
- 도착 순서가 아니라 fingerprint 기준으로 "마지막 writer가 이김"
- 다른 fingerprint의 페이지는 절대 섞이지 않음
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Mapping, Optional, Protocol

from pydantic import ValidationError

from faceguard_client.core.config import settings
from faceguard_client.core.logging import logger
from faceguard_client.engine.result import ErrorInfo, OutcomeKind
from faceguard_client.schemas.operation_schema import Operation
from faceguard_client.utils.hash_utils import generate_filter_fingerprint, normalize_criteria

from .state_stream import StateStream

if TYPE_CHECKING:
    from faceguard_client.engine.orchestrator import OperationOrchestrator


@dataclass(frozen=True)
class PageSlice:
    """서버가 돌려준 한 페이지"""

    items: tuple[Any, ...]
    page: int
    total_pages: int
    total: int = 0


class ListingSource(Protocol):
    """목록 조회 경계 - 조건/페이지 → Operation, 응답 → PageSlice"""

    def build_operation(self, criteria: Mapping[str, Any], page: int) -> Operation:
        ...

    def parse_page(self, payload: Any) -> PageSlice:
        ...


@dataclass(frozen=True)
class PageState:
    """목록 상태

    items는 모두 filter_fingerprint 아래에서 받은 항목입니다 (서버 순서 유지).
    """

    items: tuple[Any, ...] = ()
    page: int = 1
    total_pages: int = 0
    filter_fingerprint: str = ""
    criteria: dict[str, Any] = field(default_factory=dict)
    loading: bool = False
    refreshing: bool = False
    error: Optional[ErrorInfo] = None

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


class PagedSearchController:
    """검색/페이지네이션 목록 컨트롤러

    UI 의도: set_filter / load_next_page / refresh
    상태: stream (PageState)
    """

    def __init__(
        self,
        orchestrator: "OperationOrchestrator",
        source: ListingSource,
        *,
        debounce_ms: Optional[int] = None,
        cache_ttl_ms: Optional[int] = None,
        initial_criteria: Optional[Mapping[str, Any]] = None,
    ):
        """
        Args:
            orchestrator: 캐시 + 재시도 실행 파이프라인
            source: 목록 조회 경계
            debounce_ms: 입력 정지 대기 시간 (없으면 settings)
            cache_ttl_ms: 목록 캐시 TTL (없으면 settings의 짧은 TTL)
            initial_criteria: 초기 필터
        """
        self.orchestrator = orchestrator
        self.source = source
        self.debounce_s = (settings.search_debounce_ms if debounce_ms is None else debounce_ms) / 1000
        self.cache_ttl_ms = cache_ttl_ms or settings.list_cache_ttl_ms

        criteria = normalize_criteria(initial_criteria)
        self.stream: StateStream[PageState] = StateStream(
            PageState(filter_fingerprint=generate_filter_fingerprint(criteria), criteria=criteria)
        )
        # apply_filter마다 증가. 이전 세대의 응답은 같은 fingerprint여도 폐기
        self._generation = 0
        self._inflight: dict[int, int] = {}
        self._debounce_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> PageState:
        return self.stream.value

    def _emit(self, state: PageState) -> None:
        self.stream.emit(state)

    def _is_loading(self) -> bool:
        return self._inflight.get(self._generation, 0) > 0

    # ------------------------------------------------------------------ #
    # 필터 / 검색
    # ------------------------------------------------------------------ #

    def set_filter(self, criteria: Mapping[str, Any]) -> None:
        """필터/검색어 변경 (debounce)

        창 안에서 다시 호출되면 대기 중인 호출은 완전히 폐기됩니다.
        """
        self.cancel_pending_filter()
        normalized = normalize_criteria(criteria)
        self._debounce_task = self._track(asyncio.ensure_future(self._debounce(normalized)))

    def cancel_pending_filter(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
            logger.debug("[PAGED_SEARCH] pending filter discarded")
        self._debounce_task = None

    async def _debounce(self, criteria: dict[str, Any]) -> None:
        await asyncio.sleep(self.debounce_s)
        # 요청은 별도 태스크로 분리: 창이 지난 뒤의 키 입력은 이 요청을 취소하지 않음
        self._track(asyncio.ensure_future(self.apply_filter(criteria)))

    async def apply_filter(self, criteria: Mapping[str, Any]) -> None:
        """필터 즉시 적용 - 새 fingerprint로 상태를 비우고 1페이지 요청"""
        normalized = normalize_criteria(criteria)
        fingerprint = generate_filter_fingerprint(normalized)
        self._generation += 1
        logger.info(f"[PAGED_SEARCH] filter applied: fingerprint={fingerprint}")
        self._emit(PageState(filter_fingerprint=fingerprint, criteria=normalized, loading=True))
        await self._load(fingerprint, normalized, page=1, mode="reset")

    # ------------------------------------------------------------------ #
    # 페이지 로드 / 새로고침
    # ------------------------------------------------------------------ #

    async def load_next_page(self) -> bool:
        """다음 페이지 로드

        Returns:
            요청을 보냈으면 True, 거절(로드 중 또는 마지막 페이지)이면 False
        """
        current = self.state
        if self._is_loading():
            logger.debug("[PAGED_SEARCH] load_next_page refused: load in flight")
            return False
        if current.page >= current.total_pages:
            logger.debug("[PAGED_SEARCH] load_next_page refused: no more pages")
            return False

        await self._load(current.filter_fingerprint, current.criteria, page=current.page + 1, mode="append")
        return True

    async def refresh(self, force: bool = False) -> None:
        """현재 조건으로 1페이지 재요청

        성공하면 items를 통째로 교체하고, 실패하면 기존 items를 유지한 채 에러만 표시합니다.

        Args:
            force: True면 캐시를 건너뛰고 네트워크로
        """
        current = self.state
        self._emit(replace(current, refreshing=True))
        await self._load(current.filter_fingerprint, current.criteria, page=1, mode="replace", force=force)

    async def _load(
        self,
        fingerprint: str,
        criteria: Mapping[str, Any],
        *,
        page: int,
        mode: str,
        force: bool = False,
    ) -> None:
        generation = self._generation
        self._inflight[generation] = self._inflight.get(generation, 0) + 1
        if mode == "append":
            self._emit(replace(self.state, loading=True))
        try:
            operation = self.source.build_operation(criteria, page)
            result = await self.orchestrator.execute(operation, cache_ttl_ms=self.cache_ttl_ms, force_refresh=force)
        finally:
            remaining = self._inflight.get(generation, 1) - 1
            if remaining > 0:
                self._inflight[generation] = remaining
            else:
                self._inflight.pop(generation, None)

        current = self.state
        if generation != self._generation or current.filter_fingerprint != fingerprint:
            logger.info(f"[PAGED_SEARCH] stale page {page} discarded: fingerprint={fingerprint}")
            return

        loading = self._is_loading()
        if not result.is_success:
            self._emit(replace(current, loading=loading, refreshing=False, error=result.error))
            return

        try:
            page_slice = self.source.parse_page(result.value)
        except (ValidationError, ValueError, TypeError, KeyError) as e:
            logger.warning(f"[PAGED_SEARCH] malformed page response: {type(e).__name__}: {e}")
            error = ErrorInfo(kind=OutcomeKind.CLIENT_ERROR, message="Malformed response from server.")
            self._emit(replace(current, loading=loading, refreshing=False, error=error))
            return

        if mode == "append":
            if page != current.page + 1:
                logger.info(f"[PAGED_SEARCH] out-of-order page {page} discarded (current={current.page})")
                self._emit(replace(current, loading=loading))
                return
            items = current.items + tuple(page_slice.items)
        else:
            items = tuple(page_slice.items)

        self._emit(replace(
            current,
            items=items,
            page=page,
            total_pages=page_slice.total_pages,
            loading=loading,
            refreshing=False,
            error=None,
        ))

    # ------------------------------------------------------------------ #
    # 수명 주기
    # ------------------------------------------------------------------ #

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """대기 중인 debounce와 진행 중인 로드가 모두 끝날 때까지 대기"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """화면 종료 시 대기/진행 중 작업 정리"""
        self.cancel_pending_filter()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

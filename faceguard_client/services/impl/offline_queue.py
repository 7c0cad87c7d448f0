"""오프라인 큐 서비스 - 변경 작업의 영속 FIFO 큐

오프라인 중 발생한 write를 보관했다가 연결이 복구되면 RetryExecutor로 재생합니다.

- 모든 변경은 저장소에 먼저 기록된 뒤 메모리 상태가 교체됩니다.
- 재생은 FIFO + single-flight (동시 호출은 진행 중인 결과를 공유)
- 재시도 예산을 소진한 항목은 dead-letter로 이동 (삭제하지 않음)
"""
from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import ValidationError

from faceguard_client.core.config import settings
from faceguard_client.core.logging import logger, sanitize_for_log
from faceguard_client.core.exceptions import QueueItemNotFoundException, StorageSerializationException
from faceguard_client.engine.result import OperationResult, OutcomeKind
from faceguard_client.schemas.operation_schema import Operation, QueueItem, QueueItemStatus, QueueSnapshot
from faceguard_client.utils.hash_utils import new_idempotency_key

from .storage import KeyValueStore

if TYPE_CHECKING:
    from faceguard_client.engine.orchestrator import OperationOrchestrator


@dataclass
class ReplayReport:
    """재생 결과"""

    succeeded: list[str] = field(default_factory=list)
    dead_lettered: list[str] = field(default_factory=list)
    still_pending: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.dead_lettered) + len(self.still_pending)


@dataclass(frozen=True)
class SyncInfo:
    """동기화 상태 요약"""

    last_sync: Optional[float]
    last_successful_sync: Optional[float]
    pending_operations: int
    failed_operations: int


class OfflineQueue:
    """영속 오프라인 큐

    상태 머신 (항목별):
        PENDING → IN_FLIGHT → {성공: 제거 | PENDING(retries+1) | DEAD_LETTERED(retries == max_retries)}
    """

    def __init__(
        self,
        store: KeyValueStore,
        orchestrator: "OperationOrchestrator",
        *,
        max_retries: Optional[int] = None,
        storage_key: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        """
        Args:
            store: 영속 저장소
            orchestrator: 재생에 사용할 실행 파이프라인 (write 성공 시 캐시 무효화 포함)
            max_retries: dead-letter 전 최대 재생 실패 횟수
            storage_key: 저장소 키
            clock: 현재 시각 함수 (초)
            id_factory: 항목 ID 생성기
        """
        if store is None:
            raise ValueError("store must not be None")
        if orchestrator is None:
            raise ValueError("orchestrator must not be None")
        self.store = store
        self.orchestrator = orchestrator
        self.max_retries = max_retries or settings.queue_max_retries
        self.storage_key = storage_key or settings.queue_storage_key
        self._clock = clock
        self._id_factory = id_factory

        self._snapshot = QueueSnapshot()
        self._in_flight_id: Optional[str] = None
        self._lock = asyncio.Lock()
        self._replay_task: Optional[asyncio.Task] = None
        self._loaded = False

    # ------------------------------------------------------------------ #
    # 조회
    # ------------------------------------------------------------------ #

    def pending(self) -> list[QueueItem]:
        """대기 항목 (enqueue 순서)"""
        return [self._present(item) for item in self._snapshot.pending]

    def dead_letters(self) -> list[QueueItem]:
        """dead-letter 항목 (사용자 확인/수동 재시도용)"""
        return list(self._snapshot.dead_letters)

    @property
    def is_replaying(self) -> bool:
        return self._replay_task is not None and not self._replay_task.done()

    def sync_info(self) -> SyncInfo:
        return SyncInfo(
            last_sync=self._snapshot.last_replay_at,
            last_successful_sync=self._snapshot.last_successful_replay_at,
            pending_operations=len(self._snapshot.pending),
            failed_operations=len(self._snapshot.dead_letters),
        )

    def _present(self, item: QueueItem) -> QueueItem:
        if item.id == self._in_flight_id:
            return item.model_copy(update={"status": QueueItemStatus.IN_FLIGHT})
        return item

    # ------------------------------------------------------------------ #
    # 영속화
    # ------------------------------------------------------------------ #

    async def load(self) -> None:
        """저장소에서 큐 복원 (앱 시작 시 1회)"""
        async with self._lock:
            raw = await self.store.get(self.storage_key)
            if not raw:
                self._snapshot = QueueSnapshot()
            else:
                try:
                    snapshot = QueueSnapshot.model_validate_json(raw)
                except ValidationError as e:
                    logger.error(f"[OFFLINE_QUEUE] Failed to deserialize queue: {e.error_count()} error(s)")
                    raise StorageSerializationException(operation="load", reason="invalid queue document",
                                                        details={"key": self.storage_key})
                # 충돌 시점에 IN_FLIGHT였던 항목은 다시 대기 상태로
                snapshot.pending = [
                    item.model_copy(update={"status": QueueItemStatus.PENDING}) for item in snapshot.pending
                ]
                self._snapshot = snapshot
            self._loaded = True
            logger.info(
                f"[OFFLINE_QUEUE] loaded: pending={len(self._snapshot.pending)}, "
                f"dead_letters={len(self._snapshot.dead_letters)}"
            )

    async def _commit(self, snapshot: QueueSnapshot) -> None:
        """저장소에 먼저 기록한 뒤 메모리 상태 교체 (lock 안에서만 호출)"""
        await self.store.set(self.storage_key, snapshot.model_dump_json())
        self._snapshot = snapshot

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    # ------------------------------------------------------------------ #
    # 변경
    # ------------------------------------------------------------------ #

    async def enqueue(self, operation: Operation) -> str:
        """
        변경 작업 등록

        write에 멱등성 키가 없으면 여기서 고정해 모든 재생이 같은 키를 쓰게 합니다.

        Returns:
            QueueItem.id
        """
        await self._ensure_loaded()
        if not operation.is_read and not operation.idempotency_key:
            operation = operation.model_copy(update={"idempotency_key": new_idempotency_key()})

        item = QueueItem(id=self._id_factory(), operation=operation, enqueued_at=self._clock())
        async with self._lock:
            snapshot = self._snapshot.model_copy(update={"pending": [*self._snapshot.pending, item]})
            await self._commit(snapshot)
        logger.info(f"[OFFLINE_QUEUE] enqueued: id={item.id}, key='{operation.key}'")
        return item.id

    async def retry_dead_letter(self, item_id: str) -> None:
        """dead-letter 항목을 대기열 끝으로 되돌림 (retries 초기화)"""
        await self._ensure_loaded()
        async with self._lock:
            item = self._find(self._snapshot.dead_letters, item_id)
            revived = item.model_copy(update={"status": QueueItemStatus.PENDING, "retries": 0, "last_error": None})
            snapshot = self._snapshot.model_copy(update={
                "pending": [*self._snapshot.pending, revived],
                "dead_letters": [d for d in self._snapshot.dead_letters if d.id != item_id],
            })
            await self._commit(snapshot)
        logger.info(f"[OFFLINE_QUEUE] dead letter revived: id={item_id}")

    async def discard_dead_letter(self, item_id: str) -> None:
        """사용자가 확인 후 dead-letter 항목을 버림"""
        await self._ensure_loaded()
        async with self._lock:
            self._find(self._snapshot.dead_letters, item_id)
            snapshot = self._snapshot.model_copy(update={
                "dead_letters": [d for d in self._snapshot.dead_letters if d.id != item_id],
            })
            await self._commit(snapshot)
        logger.info(f"[OFFLINE_QUEUE] dead letter discarded: id={item_id}")

    @staticmethod
    def _find(items: list[QueueItem], item_id: str) -> QueueItem:
        for item in items:
            if item.id == item_id:
                return item
        raise QueueItemNotFoundException(item_id)

    # ------------------------------------------------------------------ #
    # 재생
    # ------------------------------------------------------------------ #

    async def replay(self) -> ReplayReport:
        """
        대기 항목 전체를 FIFO로 재생

        이미 재생 중이면 새로 시작하지 않고 진행 중인 결과를 돌려줍니다.
        개별 항목 실패는 이후 항목 재생을 중단시키지 않습니다.
        """
        if self._replay_task is not None and not self._replay_task.done():
            logger.info("[OFFLINE_QUEUE] replay already in progress, joining")
            return await asyncio.shield(self._replay_task)

        self._replay_task = asyncio.ensure_future(self._replay_all())
        return await asyncio.shield(self._replay_task)

    async def _replay_all(self) -> ReplayReport:
        await self._ensure_loaded()
        report = ReplayReport()
        item_ids = [item.id for item in self._snapshot.pending]
        logger.info(f"[OFFLINE_QUEUE] replay started: items={len(item_ids)}")

        for item_id in item_ids:
            item = next((i for i in self._snapshot.pending if i.id == item_id), None)
            if item is None:
                continue
            await self._replay_one(item, report)

        async with self._lock:
            now = self._clock()
            update: dict = {"last_replay_at": now}
            if item_ids and not report.dead_lettered and not report.still_pending:
                update["last_successful_replay_at"] = now
            await self._commit(self._snapshot.model_copy(update=update))

        logger.info(
            f"[OFFLINE_QUEUE] replay finished: succeeded={len(report.succeeded)}, "
            f"dead_lettered={len(report.dead_lettered)}, pending={len(report.still_pending)}"
        )
        return report

    async def _replay_one(self, item: QueueItem, report: ReplayReport) -> None:
        self._in_flight_id = item.id
        try:
            result: OperationResult = await self.orchestrator.execute(item.operation)
        except Exception as e:
            # 실행기 자체 오류도 해당 항목의 실패로만 취급
            logger.error(f"[OFFLINE_QUEUE] replay crashed for id={item.id}: {type(e).__name__}: {e}")
            result = None
        finally:
            self._in_flight_id = None

        async with self._lock:
            if result is not None and result.is_success:
                await self._commit(self._snapshot.model_copy(update={
                    "pending": [i for i in self._snapshot.pending if i.id != item.id],
                }))
                report.succeeded.append(item.id)
                logger.info(f"[OFFLINE_QUEUE] replayed: id={item.id}")
                return

            if result is not None and result.status == OutcomeKind.CANCELLED:
                report.still_pending.append(item.id)
                return

            retries = item.retries + 1
            last_error = sanitize_for_log(result.error.message) if result is not None and result.error else "replay crashed"
            non_retryable = result is not None and not result.is_retryable

            if non_retryable or retries >= self.max_retries:
                dead = item.model_copy(update={
                    "retries": retries,
                    "status": QueueItemStatus.DEAD_LETTERED,
                    "last_error": last_error,
                })
                await self._commit(self._snapshot.model_copy(update={
                    "pending": [i for i in self._snapshot.pending if i.id != item.id],
                    "dead_letters": [*self._snapshot.dead_letters, dead],
                }))
                report.dead_lettered.append(item.id)
                logger.warning(
                    f"[OFFLINE_QUEUE] dead-lettered: id={item.id}, retries={retries}, error={last_error}"
                )
                return

            bumped = item.model_copy(update={"retries": retries, "last_error": last_error})
            await self._commit(self._snapshot.model_copy(update={
                "pending": [bumped if i.id == item.id else i for i in self._snapshot.pending],
            }))
            report.still_pending.append(item.id)
            logger.info(f"[OFFLINE_QUEUE] will retry later: id={item.id}, retries={retries}/{self.max_retries}")

    # ------------------------------------------------------------------ #
    # 연결 상태 연동
    # ------------------------------------------------------------------ #

    def notify_connectivity(self, online: bool) -> Optional[asyncio.Task]:
        """연결 복구 시 재생 시작

        Returns:
            재생 태스크 (시작하지 않았으면 None)
        """
        if not online:
            return None
        if not self._snapshot.pending and self._loaded:
            return None
        logger.info("[OFFLINE_QUEUE] connectivity restored, scheduling replay")
        return asyncio.ensure_future(self.replay())

    async def submit_or_enqueue(self, operation: Operation) -> tuple[OperationResult, Optional[str]]:
        """
        즉시 실행하고, 연결 문제로 실패하면 큐에 보관

        Returns:
            (실행 결과, 큐 항목 ID 또는 None)
        """
        if not operation.is_read and not operation.idempotency_key:
            operation = operation.model_copy(update={"idempotency_key": new_idempotency_key()})

        result = await self.orchestrator.execute(operation)
        if result.status in (OutcomeKind.NETWORK, OutcomeKind.TIMEOUT):
            item_id = await self.enqueue(operation)
            return result, item_id
        return result, None

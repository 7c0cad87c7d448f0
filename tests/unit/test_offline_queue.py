"""오프라인 큐 유닛 테스트"""

import asyncio
from itertools import count

import httpx
import pytest

from faceguard_client.core.exceptions import QueueItemNotFoundException, RemoteServiceException, StorageSerializationException
from faceguard_client.engine.result import OutcomeKind
from faceguard_client.schemas.operation_schema import (
    ContentType,
    Operation,
    QueueItem,
    QueueItemStatus,
    QueueSnapshot,
)
from faceguard_client.services.impl.offline_queue import OfflineQueue
from faceguard_client.services.impl.storage import MemoryKeyValueStore


def _update(user_id: int) -> Operation:
    return Operation.write(f"usuarios/{user_id}", params={"nombre": f"User {user_id}"}, method="PUT")


@pytest.fixture
def make_queue(memory_store, orchestrator, clock):
    ids = count(1)

    def factory(store=None, max_retries=3):
        return OfflineQueue(
            store or memory_store,
            orchestrator,
            max_retries=max_retries,
            storage_key="offline_queue",
            clock=clock,
            id_factory=lambda: f"item-{next(ids)}",
        )

    return factory


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_enqueue_persists_before_returning(self, make_queue, memory_store):
        queue = make_queue()

        item_id = await queue.enqueue(_update(1))

        snapshot = QueueSnapshot.model_validate_json(memory_store.data["offline_queue"])
        assert [item.id for item in snapshot.pending] == [item_id]
        assert snapshot.pending[0].status == QueueItemStatus.PENDING

    @pytest.mark.asyncio
    async def test_enqueue_fixes_idempotency_key(self, make_queue):
        queue = make_queue()

        await queue.enqueue(_update(1))

        assert queue.pending()[0].operation.idempotency_key

    @pytest.mark.asyncio
    async def test_queue_survives_restart(self, make_queue, memory_store):
        """재시작 후 같은 항목/순서/이미지 바이트가 복원됨"""
        queue = make_queue()
        image = b"\xff\xd8\xff\xe0jpeg-bytes"
        first = await queue.enqueue(
            Operation.write("usuarios/3/imagenes", payload=image, content_type=ContentType.MULTIPART,
                            payload_field="imagenes")
        )
        second = await queue.enqueue(_update(4))

        restarted = make_queue(store=memory_store)
        await restarted.load()

        pending = restarted.pending()
        assert [item.id for item in pending] == [first, second]
        assert pending[0].operation.payload == image
        assert pending[0].operation.idempotency_key == queue.pending()[0].operation.idempotency_key

    @pytest.mark.asyncio
    async def test_in_flight_items_reset_on_load(self, make_queue):
        item = QueueItem(id="crashed", operation=_update(1), enqueued_at=1.0, status=QueueItemStatus.IN_FLIGHT)
        store = MemoryKeyValueStore({"offline_queue": QueueSnapshot(pending=[item]).model_dump_json()})
        queue = make_queue(store=store)

        await queue.load()

        assert queue.pending()[0].status == QueueItemStatus.PENDING

    @pytest.mark.asyncio
    async def test_corrupt_document_raises(self, make_queue):
        queue = make_queue(store=MemoryKeyValueStore({"offline_queue": "{broken"}))

        with pytest.raises(StorageSerializationException):
            await queue.load()


class TestReplay:
    @pytest.mark.asyncio
    async def test_client_error_is_dead_lettered_without_blocking_others(self, make_queue, transport, clock):
        """3개 중 2번째가 CLIENT_ERROR → 재시도 없이 dead-letter, 1·3번은 성공"""
        queue = make_queue()
        ids = [await queue.enqueue(_update(n)) for n in (1, 2, 3)]
        transport.responder = lambda op: (
            RemoteServiceException(422, "Email duplicado") if op.key == "usuarios/2" else {"success": True}
        )

        report = await queue.replay()

        assert report.succeeded == [ids[0], ids[2]]
        assert report.dead_lettered == [ids[1]]
        assert [op.key for op in transport.sent] == ["usuarios/1", "usuarios/2", "usuarios/3"]
        assert queue.pending() == []
        dead = queue.dead_letters()[0]
        assert dead.status == QueueItemStatus.DEAD_LETTERED
        assert dead.last_error == "Email duplicado"
        info = queue.sync_info()
        assert info.last_sync == clock.now
        assert info.last_successful_sync is None
        assert info.failed_operations == 1

    @pytest.mark.asyncio
    async def test_concurrent_replays_share_one_pass(self, make_queue, transport):
        queue = make_queue()
        await queue.enqueue(_update(1))
        await queue.enqueue(_update(2))

        first, second = await asyncio.gather(queue.replay(), queue.replay())

        assert first is second
        assert [op.key for op in transport.sent] == ["usuarios/1", "usuarios/2"]

    @pytest.mark.asyncio
    async def test_item_dead_lettered_after_max_retries(self, make_queue, transport):
        queue = make_queue(max_retries=2)
        item_id = await queue.enqueue(_update(1))
        transport.responder = lambda op: httpx.ConnectError("still offline")

        first = await queue.replay()
        assert first.still_pending == [item_id]
        assert queue.pending()[0].retries == 1

        second = await queue.replay()
        assert second.dead_lettered == [item_id]
        assert queue.pending() == []
        assert queue.dead_letters()[0].retries == 2
        # 재생마다 RetryExecutor의 전체 예산(3회)을 사용
        assert transport.calls == 6

    @pytest.mark.asyncio
    async def test_replay_uses_stored_idempotency_key(self, make_queue, transport):
        queue = make_queue()
        await queue.enqueue(_update(1))
        stored_key = queue.pending()[0].operation.idempotency_key

        await queue.replay()

        assert transport.sent[0].idempotency_key == stored_key

    @pytest.mark.asyncio
    async def test_successful_replay_records_sync_time(self, make_queue, clock):
        queue = make_queue()
        await queue.enqueue(_update(1))

        report = await queue.replay()

        assert report.attempted == 1
        assert queue.sync_info().last_successful_sync == clock.now

    @pytest.mark.asyncio
    async def test_replayed_write_invalidates_cache(self, make_queue, orchestrator, transport):
        listing = Operation.read("usuarios/", {"pagina": 1})
        await orchestrator.execute(listing, cache_ttl_ms=30_000)
        queue = make_queue()
        await queue.enqueue(_update(1))

        await queue.replay()
        after = await orchestrator.execute(listing, cache_ttl_ms=30_000)

        assert after.source == "network"


class TestDeadLetters:
    @pytest.mark.asyncio
    async def test_retry_dead_letter(self, make_queue, transport, clock):
        queue = make_queue(max_retries=1)
        item_id = await queue.enqueue(_update(1))
        transport.responder = lambda op: RemoteServiceException(409, "Conflicto")
        await queue.replay()

        await queue.retry_dead_letter(item_id)
        revived = queue.pending()[0]
        assert revived.retries == 0
        assert revived.last_error is None
        assert queue.dead_letters() == []

        transport.responder = lambda op: {"success": True}
        report = await queue.replay()
        assert report.succeeded == [item_id]

    @pytest.mark.asyncio
    async def test_discard_dead_letter(self, make_queue, transport):
        queue = make_queue()
        item_id = await queue.enqueue(_update(1))
        transport.responder = lambda op: RemoteServiceException(400, "Datos invalidos")
        await queue.replay()

        await queue.discard_dead_letter(item_id)

        assert queue.dead_letters() == []
        assert queue.sync_info().failed_operations == 0

    @pytest.mark.asyncio
    async def test_unknown_dead_letter(self, make_queue):
        queue = make_queue()
        with pytest.raises(QueueItemNotFoundException):
            await queue.discard_dead_letter("missing")


class TestConnectivity:
    @pytest.mark.asyncio
    async def test_submit_or_enqueue_keeps_offline_write(self, make_queue, transport):
        queue = make_queue()
        transport.script = [httpx.ConnectError("offline")] * 3

        result, item_id = await queue.submit_or_enqueue(_update(5))

        assert result.status == OutcomeKind.NETWORK
        assert item_id is not None
        queued = queue.pending()[0].operation
        assert queued.idempotency_key == transport.sent[0].idempotency_key

    @pytest.mark.asyncio
    async def test_submit_or_enqueue_does_not_keep_rejected_write(self, make_queue, transport):
        queue = make_queue()
        transport.script = [RemoteServiceException(422, "HTTP 422")]

        result, item_id = await queue.submit_or_enqueue(_update(5))

        assert result.status == OutcomeKind.CLIENT_ERROR
        assert item_id is None
        assert queue.pending() == []

    @pytest.mark.asyncio
    async def test_connectivity_restored_starts_replay(self, make_queue, transport):
        queue = make_queue()
        await queue.enqueue(_update(1))

        assert queue.notify_connectivity(False) is None
        task = queue.notify_connectivity(True)
        report = await task

        assert report.succeeded
        assert queue.pending() == []


class TestCacheStoreFailure:
    @pytest.mark.asyncio
    async def test_write_replayed_once_when_cache_store_fails(self, failing_store, failing_orchestrator, transport, clock):
        """서버가 받은 write는 캐시 무효화가 실패해도 성공으로 처리되고 다시 전송되지 않음"""
        queue = OfflineQueue(failing_store, failing_orchestrator, max_retries=3, storage_key="offline_queue", clock=clock)
        item_id = await queue.enqueue(_update(1))

        first = await queue.replay()
        second = await queue.replay()

        assert first.succeeded == [item_id]
        assert first.still_pending == []
        assert second.attempted == 0
        assert queue.pending() == []
        assert queue.dead_letters() == []
        assert transport.calls == 1
        assert failing_store.failures > 0

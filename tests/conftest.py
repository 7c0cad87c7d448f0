"""전역 테스트 설정

역할:
- 테스트 환경 구성
- 공통 Dummy/Fake 주입 (전송 계층, 시계, 백오프 대기)

금지:
- 실제 네트워크 호출
- 실제 Redis 연결
"""

from __future__ import annotations

import asyncio
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import pytest


# 프로젝트 루트를 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from faceguard_client.core.exceptions import StorageConnectionException  # noqa: E402
from faceguard_client.engine.orchestrator import OperationOrchestrator  # noqa: E402
from faceguard_client.engine.retry import RetryExecutor  # noqa: E402
from faceguard_client.schemas.operation_schema import Operation  # noqa: E402
from faceguard_client.services.impl.cache_service import ResponseCache  # noqa: E402
from faceguard_client.services.impl.storage import MemoryKeyValueStore  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def test_env() -> None:
    """테스트 환경 변수 설정 (세션 전역)"""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["FACEGUARD_LOG_LEVEL"] = "INFO"


@dataclass
class ScriptedTransport:
    """전송 계층 더미

    - script: 호출 순서대로 돌려줄 값 (예외 인스턴스면 raise)
    - responder: script가 바닥나면 Operation → 값/예외
    - gates: 호출 인덱스 → 응답 전에 기다릴 Event
    """

    script: list[Any] = field(default_factory=list)
    responder: Optional[Callable[[Operation], Any]] = None
    gates: dict[int, asyncio.Event] = field(default_factory=dict)
    sent: list[Operation] = field(default_factory=list)

    async def send(self, operation: Operation) -> Any:
        index = len(self.sent)
        self.sent.append(operation)

        gate = self.gates.get(index)
        if gate is not None:
            await gate.wait()

        if index < len(self.script):
            outcome = self.script[index]
        elif self.responder is not None:
            outcome = self.responder(operation)
        else:
            outcome = {"success": True}

        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @property
    def calls(self) -> int:
        return len(self.sent)


class FakeClock:
    """수동으로 진행하는 시계 (초)"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class SleepRecorder:
    """백오프 대기 더미 - 요청된 지연만 기록하고 즉시 반환"""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)

    @property
    def delays_ms(self) -> list[int]:
        return [round(d * 1000) for d in self.delays]


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def executor(transport, sleeper) -> RetryExecutor:
    return RetryExecutor(transport, max_attempts=3, base_delay_ms=1000, cap_ms=10000, sleep=sleeper)


@pytest.fixture
def cache(memory_store, clock) -> ResponseCache:
    return ResponseCache(memory_store, namespace="cache:", version="1.0", clock=clock)


@pytest.fixture
def orchestrator(executor, cache) -> OperationOrchestrator:
    return OperationOrchestrator(executor, cache=cache)


class FailingStore(MemoryKeyValueStore):
    """지정한 메서드/키 접두어에서 StorageConnectionException을 던지는 저장소

    기본값은 캐시 네임스페이스만 실패 (오프라인 큐 키는 정상 동작)
    """

    def __init__(self, failing: tuple[str, ...] = ("get", "set", "remove", "list_keys"), prefix: str = "cache:"):
        super().__init__()
        self.failing = set(failing)
        self.prefix = prefix
        self.failures = 0

    def _check(self, method: str, key: str) -> None:
        if method in self.failing and key.startswith(self.prefix):
            self.failures += 1
            raise StorageConnectionException(f"{method} unavailable")

    async def get(self, key: str) -> Optional[str]:
        self._check("get", key)
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        self._check("set", key)
        await super().set(key, value)

    async def remove(self, key: str) -> None:
        self._check("remove", key)
        await super().remove(key)

    async def list_keys(self, prefix: str = "") -> list[str]:
        self._check("list_keys", prefix)
        return await super().list_keys(prefix)


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def failing_orchestrator(executor, failing_store, clock) -> OperationOrchestrator:
    """캐시 저장소가 고장난 파이프라인"""
    cache = ResponseCache(failing_store, namespace="cache:", version="1.0", clock=clock)
    return OperationOrchestrator(executor, cache=cache)

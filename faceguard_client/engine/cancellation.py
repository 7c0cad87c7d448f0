"""Cancel Token - Cooperative cancellation

취소 요청은 플래그만 세우고, 다음 대기 지점(네트워크 I/O, 백오프)에서 관찰됩니다.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from faceguard_client.core.exceptions import OperationCancelledException


class CancelToken:
    """협조적 취소 토큰

    화면이 포커스를 잃으면 cancel()이 호출되고, RetryExecutor는 진행 중인 대기를 즉시 중단합니다.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, operation: str) -> None:
        if self.cancelled:
            raise OperationCancelledException(operation, details={"reason": self.reason})


async def run_cancellable(aw, token: Optional[CancelToken], operation: str):
    """awaitable과 토큰을 경쟁시켜 먼저 끝난 쪽을 따름

    작업이 이미 끝났다면 취소와 동시에 도착해도 결과를 유지합니다 (비선점).

    Raises:
        OperationCancelledException: 토큰이 먼저 취소된 경우
    """
    if token is None:
        return await aw

    if token.cancelled:
        if asyncio.iscoroutine(aw):
            aw.close()
        token.raise_if_cancelled(operation)
    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        # 취소된 시도의 실패는 결과에 반영하지 않음
        pass
    raise OperationCancelledException(operation, details={"reason": token.reason})

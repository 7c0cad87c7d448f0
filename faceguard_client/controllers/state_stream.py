"""State Stream - observable state for the presentation layer"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from faceguard_client.core.logging import logger

T = TypeVar("T")


class StateStream(Generic[T]):
    """현재 상태 + 구독자 알림

    구독 즉시 현재 상태를 한 번 전달합니다. 구독자 예외는 로깅만 하고 다른 구독자에게 전파하지 않습니다.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._listeners: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        self._notify_one(listener, self._value)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, value: T) -> None:
        self._value = value
        for listener in list(self._listeners):
            self._notify_one(listener, value)

    @staticmethod
    def _notify_one(listener: Callable[[T], None], value: T) -> None:
        try:
            listener(value)
        except Exception as e:
            logger.error(f"[STATE_STREAM] listener failed: {type(e).__name__}: {e}")

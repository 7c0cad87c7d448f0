"""Capture Session Machine - capture → submit → result/alert → reset

States:
    IDLE → CAPTURING → SUBMITTED → {RESULT | FAILED} → IDLE

cancel()는 어느 상태에서든 IDLE로 돌아가는 유일한 SUBMITTED 중단 경로입니다.
세션당 동시에 진행되는 Operation은 최대 1개입니다.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol

from faceguard_client.core.logging import logger
from faceguard_client.engine.cancellation import CancelToken
from faceguard_client.engine.classifier import to_error_info
from faceguard_client.engine.result import ErrorInfo, OperationResult, OutcomeKind
from faceguard_client.schemas.operation_schema import Operation
from faceguard_client.schemas.recognition_schema import SecurityAlert, extract_security_alert
from faceguard_client.utils.hash_utils import new_idempotency_key

from .state_stream import StateStream

if TYPE_CHECKING:
    from faceguard_client.engine.orchestrator import OperationOrchestrator


class ImageSource(Protocol):
    """카메라/갤러리 기능 경계"""

    async def request_permission(self) -> bool:
        ...

    async def capture(self) -> Optional[bytes]:
        """촬영/선택된 이미지 바이트 (사용자가 취소하면 None)"""
        ...


class CaptureState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    SUBMITTED = "submitted"
    RESULT = "result"
    FAILED = "failed"


@dataclass(frozen=True)
class CaptureSession:
    """세션 스냅샷 (UI 구독용)"""

    state: CaptureState = CaptureState.IDLE
    result: Any = None
    alert: Optional[SecurityAlert] = None
    alert_acknowledged: bool = False
    error: Optional[ErrorInfo] = None
    has_image: bool = False
    idempotency_key: Optional[str] = None
    attempts: int = 0

    @property
    def requires_acknowledgement(self) -> bool:
        return self.alert is not None and not self.alert_acknowledged

    @property
    def closed(self) -> bool:
        """결과가 나왔고 확인이 필요한 알림도 없음"""
        return self.state == CaptureState.RESULT and not self.requires_acknowledgement


PERMISSION_DENIED_MESSAGE = "Camera permission denied. Enable it in settings."

OperationBuilder = Callable[[bytes, str], Operation]


class CaptureSessionMachine:
    """촬영/인식 세션 상태 머신

    화면이 만들고 화면이 소유합니다. 포커스를 잃으면 cancel()을 호출하세요.
    """

    def __init__(
        self,
        orchestrator: "OperationOrchestrator",
        build_operation: OperationBuilder,
        image_source: Optional[ImageSource] = None,
    ):
        """
        Args:
            orchestrator: 재시도 실행 파이프라인
            build_operation: (이미지, 멱등성 키) → write Operation
            image_source: 카메라/갤러리 (없으면 image_ready로 이미지를 받음)
        """
        self.orchestrator = orchestrator
        self.build_operation = build_operation
        self.image_source = image_source
        self.stream: StateStream[CaptureSession] = StateStream(CaptureSession())

        self._image: Optional[bytes] = None
        self._token: Optional[CancelToken] = None
        self._generation = 0

    @property
    def session(self) -> CaptureSession:
        return self.stream.value

    @property
    def state(self) -> CaptureState:
        return self.stream.value.state

    def _emit(self, session: CaptureSession) -> None:
        logger.debug(f"[CAPTURE] state -> {session.state.value}")
        self.stream.emit(session)

    # ------------------------------------------------------------------ #
    # 전이
    # ------------------------------------------------------------------ #

    async def capture(self) -> bool:
        """IDLE → CAPTURING (이미지 소스가 있으면 촬영 후 바로 제출)

        Returns:
            시작했으면 True, 이미 진행 중이라 거절되면 False
        """
        if self.state != CaptureState.IDLE:
            logger.info(f"[CAPTURE] capture refused in state={self.state.value}")
            return False

        self._generation += 1
        generation = self._generation
        self._emit(CaptureSession(state=CaptureState.CAPTURING))

        if self.image_source is None:
            return True

        granted = await self.image_source.request_permission()
        if generation != self._generation:
            return True
        if not granted:
            error = ErrorInfo(kind=OutcomeKind.CLIENT_ERROR, message=PERMISSION_DENIED_MESSAGE)
            self._emit(CaptureSession(state=CaptureState.FAILED, error=error))
            return True

        image = await self.image_source.capture()
        if generation != self._generation:
            return True
        if not image:
            logger.info("[CAPTURE] picker dismissed")
            self._emit(CaptureSession())
            return True

        await self.image_ready(image)
        return True

    async def image_ready(self, image: bytes) -> bool:
        """CAPTURING → SUBMITTED (사용자 촬영 1회마다 새 멱등성 키)"""
        if self.state != CaptureState.CAPTURING:
            logger.info(f"[CAPTURE] image ignored in state={self.state.value}")
            return False
        if not image:
            raise ValueError("image must not be empty")

        self._image = image
        await self._submit(new_idempotency_key())
        return True

    async def retry_same_image(self) -> bool:
        """FAILED → SUBMITTED (같은 이미지, 같은 멱등성 키)"""
        session = self.session
        if session.state != CaptureState.FAILED or self._image is None or session.idempotency_key is None:
            logger.info("[CAPTURE] retry refused: nothing to resubmit")
            return False
        await self._submit(session.idempotency_key)
        return True

    def acknowledge_alert(self) -> None:
        """보안 알림 확인 - 확인 전까지 세션은 닫히지 않음"""
        session = self.session
        if session.alert is not None and not session.alert_acknowledged:
            logger.info("[CAPTURE] security alert acknowledged")
            self._emit(replace(session, alert_acknowledged=True))

    def reset(self) -> bool:
        """RESULT/FAILED → IDLE (확인되지 않은 알림이 있으면 거절)"""
        session = self.session
        if session.state not in (CaptureState.RESULT, CaptureState.FAILED):
            return False
        if session.requires_acknowledgement:
            logger.info("[CAPTURE] reset refused: alert not acknowledged")
            return False
        self._discard()
        self._emit(CaptureSession())
        return True

    def cancel(self) -> None:
        """어느 상태에서든 → IDLE

        진행 중인 대기를 중단하고 촬영 이미지를 폐기합니다. 늦게 도착한 결과는 무시됩니다.
        """
        if self._token is not None:
            self._token.cancel("screen lost focus")
        self._generation += 1
        self._discard()
        if self.state != CaptureState.IDLE:
            logger.info(f"[CAPTURE] cancelled from state={self.state.value}")
        self._emit(CaptureSession())

    # ------------------------------------------------------------------ #
    # 내부
    # ------------------------------------------------------------------ #

    def _discard(self) -> None:
        self._image = None
        self._token = None

    async def _submit(self, idempotency_key: str) -> None:
        generation = self._generation
        try:
            operation = self.build_operation(self._image, idempotency_key)
        except (TypeError, ValueError) as e:
            logger.error(f"[CAPTURE] could not build operation: {type(e).__name__}: {e}")
            error = ErrorInfo(kind=OutcomeKind.CLIENT_ERROR, message=str(e))
            self._emit(CaptureSession(state=CaptureState.FAILED, error=error, has_image=True,
                                      idempotency_key=idempotency_key))
            return

        token = CancelToken()
        self._token = token
        self._emit(CaptureSession(state=CaptureState.SUBMITTED, has_image=True, idempotency_key=idempotency_key))

        try:
            result = await self.orchestrator.execute(operation, cancel_token=token)
        except Exception as e:
            # SUBMITTED에 머무르지 않도록 FAILED로 전환
            logger.error(f"[CAPTURE] submit crashed: {type(e).__name__}: {e}")
            result = OperationResult.failure(to_error_info(e), attempts=1)

        if token.cancelled or generation != self._generation:
            logger.info("[CAPTURE] late result ignored after cancel")
            return
        self._token = None

        if result.is_success:
            alert = extract_security_alert(result.value)
            if alert is not None:
                logger.warning(f"[CAPTURE] security alert received: level={alert.level.value}")
            self._emit(CaptureSession(
                state=CaptureState.RESULT,
                result=result.value,
                alert=alert,
                has_image=True,
                idempotency_key=idempotency_key,
                attempts=result.attempts,
            ))
            return

        self._emit(CaptureSession(
            state=CaptureState.FAILED,
            error=result.error,
            has_image=True,
            idempotency_key=idempotency_key,
            attempts=result.attempts,
        ))

"""이벤트 정의 및 Event Bus (EDA 패턴)

모든 레이어가 순환 import 없이 이벤트를 발행할 수 있도록 지원합니다.
이벤트는 순수 데이터 객체로, 의존성이 없습니다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from termlink.common.logger import PipelineLogger
from termlink.core.dto.internal.errors import AppError
from termlink.core.dto.internal.state import ConnectionState


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """에러 이벤트 (순수 데이터)

    UI 계층이 구독해 토스트/배너 등으로 표시합니다.
    """

    error: AppError
    context: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, slots=True)
class FatalErrorEvent:
    """치명적 에러 이벤트 (재인증 필요, 로컬 저장소 손상 등)"""

    error: AppError
    context: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, slots=True)
class ConnectionStateEvent:
    """세션별 연결 상태 변화 (레지스트리가 발행)"""

    session_id: str
    state: ConnectionState
    timestamp: datetime = field(default_factory=datetime.now)


class EventBus:
    """전역 이벤트 버스 (의존성 없음)

    특징:
    - 완전한 비동기 처리
    - 타입 기반 핸들러 등록
    - 핸들러 실패는 로깅 후 다음 핸들러로 진행
    """

    _handlers: dict[type, list[Callable[[Any], Any]]] = {}

    @classmethod
    async def emit(cls, event: Any) -> None:
        """이벤트 발행 (비동기)

        Args:
            event: 발행할 이벤트 객체
        """
        event_type = type(event)
        handlers = cls._handlers.get(event_type, [])

        for handler in list(handlers):
            try:
                await handler(event)
            except Exception as e:
                logger = PipelineLogger.get_logger("event_bus", "common")
                logger.error(
                    f"Event handler failed: {e}",
                    exc_info=True,
                    extra={
                        "event_type": event_type.__name__,
                        "handler": getattr(handler, "__name__", repr(handler)),
                    },
                )

    @classmethod
    def on(cls, event_type: type, handler: Callable[[Any], Any]) -> None:
        """핸들러 등록

        Args:
            event_type: 이벤트 타입 (클래스)
            handler: 핸들러 함수 (async def)
        """
        cls._handlers.setdefault(event_type, []).append(handler)

    @classmethod
    def off(cls, event_type: type, handler: Callable[[Any], Any]) -> None:
        handlers = cls._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    @classmethod
    def clear(cls) -> None:
        """모든 핸들러 제거 (테스트용)"""
        cls._handlers.clear()


__all__ = ["ConnectionStateEvent", "ErrorEvent", "EventBus", "FatalErrorEvent"]

"""전역 에러 핸들러

처리 흐름:
- 예외 분류 (classify_exception)
- 종류별 레벨 로깅
- ErrorEvent 발행 (silent 가 아니면)
- 치명적 에러는 FatalErrorEvent 로 별도 발행
"""

from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from termlink.common.events import ErrorEvent, EventBus, FatalErrorEvent
from termlink.common.exceptions.exception_rule import classify_exception
from termlink.common.logger import PipelineLogger
from termlink.core.dto.internal.errors import (
    AppError,
    AuthError,
    NetworkError,
    ServerError,
    StorageError,
    UnknownError,
)
from termlink.core.dto.internal.resource import Error, Resource, Success

logger = PipelineLogger.get_logger("error_handler", "common")

T = TypeVar("T")

__all__ = ["ErrorHandler", "is_fatal_error"]


def is_fatal_error(error: AppError) -> bool:
    """앱 수준 처리가 필요한 에러 여부 (세션 만료, 로컬 저장소 실패)"""
    match error:
        case AuthError(code=401):
            return True
        case StorageError():
            return True
        case _:
            return False


class ErrorHandler:
    """예외 → AppError 변환 및 전역 배포

    Example:
        >>> handler = ErrorHandler()
        >>> error = await handler.handle(exc, context="load_profiles")
        >>> resource = await handler.run_catching(fetch, context="fetch")
    """

    async def handle(
        self,
        exc: BaseException,
        context: str | None = None,
        silent: bool = False,
    ) -> AppError:
        """예외를 분류하고 로깅/발행합니다.

        Args:
            exc: 처리할 예외 (AppErrorException 은 그대로 통과)
            context: 발생 위치 설명
            silent: True 이면 전역 ErrorEvent 를 발행하지 않음 (국소 처리용)

        Returns:
            분류된 AppError
        """
        error = classify_exception(exc)
        self._log(error, context, exc)

        if not silent:
            await EventBus.emit(ErrorEvent(error=error, context=context))

        if is_fatal_error(error):
            await EventBus.emit(FatalErrorEvent(error=error, context=context))

        return error

    async def run_catching(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str | None = None,
        silent: bool = False,
    ) -> Resource[T]:
        """operation 을 실행하고 결과를 Resource 로 돌려줍니다 (예외는 handle 경유)."""
        try:
            return Success(await operation())
        except Exception as exc:
            return Error(await self.handle(exc, context, silent))

    def _log(self, error: AppError, context: str | None, exc: BaseException) -> None:
        prefix = f"[{context}] " if context else ""
        message = f"{prefix}{error.user_message()}"
        extra = {"error_kind": type(error).__name__, "detail": error.message}

        match error:
            case NetworkError():
                logger.warning(message, exc_info=exc, extra=extra)
            case AuthError():
                logger.warning(message, extra=extra)
            case ServerError() | UnknownError():
                logger.error(message, exc_info=exc, extra=extra)
            case _:
                logger.debug(message, extra=extra)

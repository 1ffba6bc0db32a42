"""애플리케이션 에러 분류 체계 (닫힌 집합)

모든 비동기 연산의 실패는 UI 계층에 도달하기 전에 아래 변형 중 정확히 하나로
표현됩니다. 플랫폼 예외를 그대로 노출하지 않습니다.

- NetworkError      : 연결 없음 / 타임아웃 / 일반 I/O
- AuthError         : 401, 403
- ServerError       : 5xx
- ApiError          : 기타 상태 코드 + 백엔드 에러 응답
- TransportError    : 영속 연결(WebSocket) 종료/실패
- StorageError      : 로컬 저장소 실패
- NotFoundError     : 404, 사라진 리소스
- ValidationError   : 400/422, 잘못된 입력
- UnknownError      : 분류 불가 (catch-all)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from termlink.core.types import ErrorAction


@dataclass(slots=True, frozen=True, kw_only=True)
class AppError:
    """에러 변형 공통 베이스 (직접 생성하지 않음)"""

    message: str
    cause: BaseException | None = field(default=None, compare=False, repr=False)

    def user_message(self) -> str:
        """UI 표시용 고정 메시지"""
        match self:
            case NetworkError(is_no_connection=True):
                return "No internet connection"
            case NetworkError(is_timeout=True):
                return "Connection timed out"
            case NetworkError():
                return "Network error. Please check your connection"
            case AuthError(code=401):
                return "Invalid credentials"
            case AuthError(code=403):
                return "Access denied"
            case AuthError():
                return "Authentication failed"
            case ServerError():
                return "Server error. Please try again later"
            case ApiError():
                return self.message
            case TransportError(can_reconnect=True):
                return "Connection lost. Reconnecting..."
            case TransportError():
                return "Connection failed"
            case StorageError():
                return "Failed to access local data"
            case NotFoundError(resource_type=str() as resource_type):
                return f"{resource_type} not found"
            case NotFoundError():
                return "Resource not found"
            case ValidationError(field=str() as field_name):
                return f"Invalid {field_name}: {self.message}"
            case ValidationError():
                return self.message
            case UnknownError():
                return "Something went wrong"
            case _:
                raise TypeError(f"unhandled error kind: {type(self).__name__}")

    def is_recoverable(self) -> bool:
        """재시도로 회복 가능한지 여부"""
        match self:
            case NetworkError() | ServerError():
                return True
            case TransportError(can_reconnect=can_reconnect):
                return can_reconnect
            case (
                AuthError()
                | ApiError()
                | StorageError()
                | NotFoundError()
                | ValidationError()
                | UnknownError()
            ):
                return False
            case _:
                raise TypeError(f"unhandled error kind: {type(self).__name__}")

    def suggested_action(self) -> ErrorAction:
        """UI 어포던스용 제안 액션"""
        match self:
            case NetworkError() | ServerError():
                return ErrorAction.RETRY
            case AuthError():
                return ErrorAction.REAUTHENTICATE
            case TransportError(can_reconnect=True):
                return ErrorAction.RECONNECT
            case NotFoundError():
                return ErrorAction.GO_BACK
            case ValidationError():
                return ErrorAction.FIX_INPUT
            case ApiError() | TransportError() | StorageError() | UnknownError():
                return ErrorAction.DISMISS
            case _:
                raise TypeError(f"unhandled error kind: {type(self).__name__}")


@dataclass(slots=True, frozen=True, kw_only=True)
class NetworkError(AppError):
    message: str = "Network error"
    is_timeout: bool = False
    is_no_connection: bool = False


@dataclass(slots=True, frozen=True, kw_only=True)
class AuthError(AppError):
    message: str = "Authentication failed"
    code: int | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class ServerError(AppError):
    message: str = "Server error"
    code: int | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class ApiError(AppError):
    """백엔드가 돌려준 구체적인 에러 응답"""

    code: str | None = None
    details: dict[str, Any] | None = field(default=None, compare=False)


@dataclass(slots=True, frozen=True, kw_only=True)
class TransportError(AppError):
    """영속 연결 종료/실패. can_reconnect 가 재접속 어포던스를 결정합니다."""

    message: str = "WebSocket error"
    code: int | None = None
    can_reconnect: bool = True


@dataclass(slots=True, frozen=True, kw_only=True)
class StorageError(AppError):
    message: str = "Storage error"


@dataclass(slots=True, frozen=True, kw_only=True)
class NotFoundError(AppError):
    message: str = "Resource not found"
    resource_type: str | None = None
    resource_id: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class ValidationError(AppError):
    field: str | None = None
    constraints: tuple[str, ...] | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class UnknownError(AppError):
    message: str = "An unexpected error occurred"


class AppErrorException(Exception):
    """AppError 를 raise 할 수 있도록 감싸는 예외"""

    def __init__(self, error: AppError) -> None:
        super().__init__(error.message)
        self.error = error
        if error.cause is not None:
            self.__cause__ = error.cause


__all__ = [
    "AppError",
    "AppErrorException",
    "ApiError",
    "AuthError",
    "NetworkError",
    "NotFoundError",
    "ServerError",
    "StorageError",
    "TransportError",
    "UnknownError",
    "ValidationError",
]

from __future__ import annotations

from typing import Any, Final

from aiohttp import ClientConnectorDNSError
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from termlink.core.dto.internal.common import RuleDomain
from termlink.core.dto.internal.errors import (
    ApiError,
    AppError,
    AppErrorException,
    AuthError,
    NetworkError,
    NotFoundError,
    ServerError,
    StorageError,
    TransportError,
    UnknownError,
    ValidationError,
)
from termlink.core.types import DNS_EXCEPTIONS, TIMEOUT_EXCEPTIONS, RetryCondition

# 상태 코드 상수
HTTP_BAD_REQUEST: Final[int] = 400
HTTP_UNAUTHORIZED: Final[int] = 401
HTTP_FORBIDDEN: Final[int] = 403
HTTP_NOT_FOUND: Final[int] = 404
HTTP_UNPROCESSABLE: Final[int] = 422
HTTP_TOO_MANY_REQUESTS: Final[int] = 429


def _message_of(exc: BaseException, fallback: str) -> str:
    text = str(exc)
    return text if text else fallback


def _close_code_of(exc: ConnectionClosed) -> int | None:
    frame = exc.rcvd or exc.sent
    return frame.code if frame is not None else None


def status_of(exc: BaseException) -> int | None:
    """HTTP 유사 상태 코드 추출

    - aiohttp.ClientResponseError: .status
    - 일반 HTTP 클라이언트 예외: .status_code
    - websockets.InvalidStatus: .response.status_code
    """
    for candidate in (exc, getattr(exc, "response", None)):
        if candidate is None:
            continue
        for attr in ("status", "status_code"):
            value = getattr(candidate, attr, None)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
    return None


def _validation_from_pydantic(exc: BaseException) -> AppError:
    errors: list[dict[str, Any]] = exc.errors() if isinstance(exc, PydanticValidationError) else []
    first = errors[0] if errors else {}
    loc = first.get("loc") or ()
    return ValidationError(
        message=first.get("msg", "Invalid input"),
        field=".".join(str(part) for part in loc) or None,
        constraints=tuple(str(err.get("msg", "")) for err in errors) or None,
        cause=exc,
    )


# 1) 네트워크 규칙 (구체 -> 포괄)
# 주의: socket.gaierror 와 TimeoutError 는 OSError 의 하위 타입이므로 먼저 선언합니다.
RULES_NETWORK: list[RuleDomain] = [
    RuleDomain(
        exc=(*DNS_EXCEPTIONS, ClientConnectorDNSError),
        build=lambda e: NetworkError(
            message="Unable to resolve host", is_no_connection=True, cause=e
        ),
    ),
    RuleDomain(
        exc=TIMEOUT_EXCEPTIONS,
        build=lambda e: NetworkError(message="Connection timed out", is_timeout=True, cause=e),
    ),
    RuleDomain(
        exc=ConnectionClosed,
        build=lambda e: TransportError(
            message=_message_of(e, "Connection closed"),
            code=_close_code_of(e) if isinstance(e, ConnectionClosed) else None,
            can_reconnect=True,
            cause=e,
        ),
    ),
    RuleDomain(
        exc=(OSError, EOFError),
        build=lambda e: NetworkError(message=_message_of(e, "Network error"), cause=e),
    ),
]

# 2) 입력/저장소 규칙
RULES_URI: list[RuleDomain] = [
    RuleDomain(
        exc=InvalidURI,
        build=lambda e: ValidationError(message=_message_of(e, "Invalid URL"), field="url", cause=e),
        terminal=True,
    ),
]

RULES_INPUT: list[RuleDomain] = [
    *RULES_URI,
    RuleDomain(exc=PydanticValidationError, build=_validation_from_pydantic),
]

RULES_STORAGE: list[RuleDomain] = [
    RuleDomain(
        exc=RedisError,
        build=lambda e: StorageError(message=_message_of(e, "Storage error"), cause=e),
    ),
]

# 3) 핸드셰이크 거절 (상태 코드 없이 올라온 경우)
RULES_HANDSHAKE: list[RuleDomain] = [
    RuleDomain(
        exc=InvalidHandshake,
        build=lambda e: TransportError(
            message="WebSocket upgrade rejected; the session is likely inactive",
            can_reconnect=False,
            cause=e,
        ),
        terminal=True,
    ),
]


def classify_status(status: int, exc: BaseException | None = None) -> AppError:
    """상태 코드 → AppError"""
    detail = _message_of(exc, f"HTTP {status}") if exc is not None else f"HTTP {status}"
    if status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
        return AuthError(message=detail, code=status, cause=exc)
    if status == HTTP_NOT_FOUND:
        return NotFoundError(message=detail, cause=exc)
    if status in (HTTP_BAD_REQUEST, HTTP_UNPROCESSABLE):
        return ValidationError(message=detail, cause=exc)
    if 500 <= status < 600:
        return ServerError(message=detail, code=status, cause=exc)
    return ApiError(message=detail, code=str(status), cause=exc)


def _match(rules: list[RuleDomain], exc: BaseException) -> RuleDomain | None:
    for rule in rules:
        if isinstance(exc, rule.exc):
            return rule
    return None


def classify_exception(exc: BaseException) -> AppError:
    """예외 → AppError 분류기 (규칙 테이블 기반, 전역 함수)

    평가 순서:
        AppError 통과 → DNS → 타임아웃 → 연결 종료 → 일반 I/O
        → 상태 코드 → 입력 검증 → 저장소 → 핸드셰이크 → Unknown
    """
    if isinstance(exc, AppErrorException):
        return exc.error

    rule = _match(RULES_NETWORK, exc)
    if rule is not None:
        return rule.build(exc)

    status = status_of(exc)
    if status is not None:
        return classify_status(status, exc)

    rule = _match([*RULES_INPUT, *RULES_STORAGE, *RULES_HANDSHAKE], exc)
    if rule is not None:
        return rule.build(exc)

    return UnknownError(message=_message_of(exc, "An unexpected error occurred"), cause=exc)


def classify_transport_fault(exc: BaseException) -> tuple[AppError, bool]:
    """영속 연결 장애 분류 → (AppError, terminal)

    terminal (재접속 무의미):
        - 401/403: 인증 실패
        - 404: 세션 없음
        - 그 외 4xx 핸드셰이크 거절: 업그레이드 거절 (세션 비활성 추정)
        - 잘못된 URI
    transient: EOF, 타임아웃, I/O, 연결 종료, 5xx, 분류 불가
    """
    if isinstance(exc, AppErrorException):
        return exc.error, not exc.error.is_recoverable()

    status = status_of(exc)
    if status is not None and isinstance(exc, InvalidHandshake):
        if status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
            return (
                AuthError(
                    message=f"Authentication failed (HTTP {status})", code=status, cause=exc
                ),
                True,
            )
        if status == HTTP_NOT_FOUND:
            return (
                NotFoundError(
                    message="Terminal session not found (HTTP 404)",
                    resource_type="Terminal",
                    cause=exc,
                ),
                True,
            )
        if status < 500:
            return (
                TransportError(
                    message=f"WebSocket upgrade rejected (HTTP {status}); the session is likely inactive",
                    code=status,
                    can_reconnect=False,
                    cause=exc,
                ),
                True,
            )
        return ServerError(message=f"Server error (HTTP {status})", code=status, cause=exc), False

    rule = _match([*RULES_URI, *RULES_HANDSHAKE], exc)
    if rule is not None:
        return rule.build(exc), rule.terminal

    return classify_exception(exc), False


def default_condition_mapper(exc: BaseException) -> RetryCondition | None:
    """예외 → RetryCondition (재시도 판단용 거친 분류)"""
    if isinstance(exc, TIMEOUT_EXCEPTIONS):
        return RetryCondition.TIMEOUT
    if isinstance(exc, (*DNS_EXCEPTIONS, ClientConnectorDNSError, OSError, EOFError, ConnectionClosed)):
        return RetryCondition.NETWORK_ERROR

    status = status_of(exc)
    if status is None:
        return None
    if 500 <= status < 600:
        return RetryCondition.SERVER_ERROR
    if status == HTTP_TOO_MANY_REQUESTS:
        return RetryCondition.RATE_LIMITED
    if status == HTTP_UNAUTHORIZED:
        return RetryCondition.UNAUTHORIZED
    return None


__all__ = [
    "RULES_HANDSHAKE",
    "RULES_INPUT",
    "RULES_NETWORK",
    "RULES_STORAGE",
    "RULES_URI",
    "classify_exception",
    "classify_status",
    "classify_transport_fault",
    "default_condition_mapper",
    "status_of",
]

"""트라이/캐치 블록에서 사용할 예외 타입 정의 모듈.

광범위한 Exception 사용을 지양하고, 의도한 예외만 명시적으로 처리하기 위해 사용합니다.
"""

from __future__ import annotations

import asyncio
import socket
from enum import StrEnum
from typing import Any, Awaitable, Callable, Final, TypeAlias, TypeVar

import orjson
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

# ----------------------------------------------------------------------------
# Type Definitions & Enums
# ----------------------------------------------------------------------------
T = TypeVar("T")

AsyncWrappedCallable = Callable[..., Awaitable[Any]]


class ErrorAction(StrEnum):
    """에러 복구를 위한 UI 제안 액션 (비즈니스 로직에는 사용하지 않음)"""

    RETRY = "retry"
    RECONNECT = "reconnect"
    REAUTHENTICATE = "reauthenticate"
    GO_BACK = "go_back"
    FIX_INPUT = "fix_input"
    DISMISS = "dismiss"


class RetryCondition(StrEnum):
    """재시도 여부 판단용 거친 분류 (ErrorKind 와 별개)"""

    NETWORK_ERROR = "network_error"  # I/O 실패, 연결 없음
    SERVER_ERROR = "server_error"  # 5xx
    TIMEOUT = "timeout"  # 소켓 타임아웃
    RATE_LIMITED = "rate_limited"  # 429
    UNAUTHORIZED = "unauthorized"  # 401 (토큰 갱신용)


# ----------------------------------------------------------------------------
# Exception Constants
# ----------------------------------------------------------------------------

# 1. 이름 해석 실패 (네트워크 없음으로 간주)
DNS_EXCEPTIONS: Final[tuple[type[BaseException], ...]] = (socket.gaierror,)

# 2. 시간 초과
TIMEOUT_EXCEPTIONS: Final[tuple[type[BaseException], ...]] = (
    asyncio.TimeoutError,
    TimeoutError,
)

# 3. 네트워크/연결 관련 예외 (재시도 대상)
# - websockets.ConnectionClosed: 정상/비정상 종료
# - ConnectionError / OSError: 소켓 레벨 에러
# - EOFError: 핸드셰이크 도중 스트림 종료
CONNECTION_EXCEPTIONS: Final[tuple[type[BaseException], ...]] = (
    ConnectionClosed,
    *TIMEOUT_EXCEPTIONS,
    ConnectionError,
    OSError,
    EOFError,
)

# 4. 핸드셰이크/프로토콜 거절 (재시도 무의미)
HANDSHAKE_EXCEPTIONS: Final[tuple[type[BaseException], ...]] = (
    InvalidHandshake,
    InvalidURI,
)

# 5. 프로토콜/페이로드 관련 예외
PROTOCOL_EXCEPTIONS: Final[tuple[type[BaseException], ...]] = (
    ValueError,
    TypeError,
    orjson.JSONDecodeError,
)

ExceptionGroup: TypeAlias = type[BaseException] | tuple[type[BaseException], ...]
ConditionMapper: TypeAlias = Callable[[BaseException], RetryCondition | None]

from __future__ import annotations

from enum import StrEnum
from typing import Any, Awaitable, Callable, Final, TypeAlias, assert_never

# 공통 타입/별칭을 한곳에 모읍니다.
# - 코어 계층 어디서나 재사용 가능한 최소 단위만 정의합니다.

SessionId: TypeAlias = str
ProfileId: TypeAlias = str

# 정상 종료 코드 (RFC 6455)
NORMAL_CLOSURE: Final[int] = 1000
DEFAULT_OUTPUT_BUFFER_LIMIT: Final[int] = 100_000

Listener: TypeAlias = Callable[[Any], None]
AsyncOperation: TypeAlias = Callable[[], Awaitable[Any]]


class ConnectivityStatus(StrEnum):
    """OS 네트워크 스택 기준 연결성 상태.

    AVAILABLE 만 "연결됨"으로 간주합니다.
    """

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    LOSING = "losing"
    LOST = "lost"

    @property
    def is_connected(self) -> bool:
        return self is ConnectivityStatus.AVAILABLE


class CircuitState(StrEnum):
    """서킷브레이커 상태"""

    CLOSED = "closed"  # 정상: 모든 요청 허용
    OPEN = "open"  # 차단: 모든 요청 거부
    HALF_OPEN = "half_open"  # 테스트: 단 한 번의 시험 요청 허용


def connectivity_status_format(status: ConnectivityStatus) -> str:
    """상태 로깅 포맷터: Enum 분기 완전탐색 보장."""
    match status:
        case ConnectivityStatus.AVAILABLE:
            return "online"
        case ConnectivityStatus.UNAVAILABLE:
            return "offline"
        case ConnectivityStatus.LOSING:
            return "losing"
        case ConnectivityStatus.LOST:
            return "lost"
        case _:
            assert_never(status)

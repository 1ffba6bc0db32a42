"""영속 연결 상태 (닫힌 집합)

Disconnected → Connecting → Connected
                   ↘ Reconnecting ↗
                   ↘ Failed
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from termlink.core.dto.internal.errors import AppError
from termlink.core.types import SessionId


class _StateBase:
    __slots__ = ()

    @property
    def is_connected(self) -> bool:
        return isinstance(self, Connected)

    @property
    def is_connecting(self) -> bool:
        """Reconnecting 도 "연결 중"으로 간주합니다."""
        return isinstance(self, (Connecting, Reconnecting))


@dataclass(slots=True, frozen=True)
class Disconnected(_StateBase):
    pass


@dataclass(slots=True, frozen=True)
class Connecting(_StateBase):
    pass


@dataclass(slots=True, frozen=True)
class Connected(_StateBase):
    session_id: SessionId


@dataclass(slots=True, frozen=True)
class Reconnecting(_StateBase):
    attempt: int
    max_attempts: int
    next_retry_ms: int


@dataclass(slots=True, frozen=True)
class Failed(_StateBase):
    """실패 상태. can_retry 는 연결성 회복 시 자동 재시도 여부를 뜻합니다."""

    error: AppError
    can_retry: bool


ConnectionState: TypeAlias = Disconnected | Connecting | Connected | Reconnecting | Failed


__all__ = [
    "Connected",
    "Connecting",
    "ConnectionState",
    "Disconnected",
    "Failed",
    "Reconnecting",
]

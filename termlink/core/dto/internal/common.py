from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from termlink.config.settings import WebsocketSettings, websocket_settings
from termlink.core.dto.internal.errors import AppError
from termlink.core.types import DEFAULT_OUTPUT_BUFFER_LIMIT, ExceptionGroup, SessionId


@dataclass(slots=True, frozen=True, kw_only=True)
class ConnectionConfig:
    """원격 터미널 세션 접속 정보(내부 도메인 값 객체).

    - 자동 재접속이 가능한 동안 매니저가 보관하고, 명시적 disconnect 시 폐기합니다.
    - api_token 이 있으면 Bearer, 없으면 username/password 로 Basic 인증합니다.
    """

    base_url: str
    session_id: SessionId
    username: str = ""
    password: str = field(default="", repr=False)
    api_token: str | None = field(default=None, repr=False)


@dataclass(slots=True, frozen=True, kw_only=True)
class ConnectionPolicy:
    """웹소켓 연결/백오프/하트비트/워치독 정책(도메인)."""

    # 백오프 (밀리초)
    initial_delay_ms: int = 1_000
    max_delay_ms: int = 30_000
    backoff_multiplier: float = 2.0
    max_attempts: int = 10

    # 핸드셰이크
    open_timeout: float = 10.0
    terminal_path: str = "/api/terminals/{session_id}/ws"

    # 하트비트 (0 이하이면 비활성화)
    ping_interval: float = 30.0
    heartbeat_timeout: float = 10.0
    heartbeat_fail_limit: int = 3

    # 워치독 (0 이하이면 비활성화)
    receive_idle_timeout: float = 0.0

    output_buffer_limit: int = DEFAULT_OUTPUT_BUFFER_LIMIT

    @classmethod
    def from_settings(cls, settings: WebsocketSettings | None = None) -> ConnectionPolicy:
        s = settings or websocket_settings
        return cls(
            initial_delay_ms=s.reconnect_initial_delay_ms,
            max_delay_ms=s.reconnect_max_delay_ms,
            backoff_multiplier=s.reconnect_multiplier,
            max_attempts=s.reconnect_max_attempts,
            open_timeout=s.open_timeout,
            terminal_path=s.terminal_path,
            ping_interval=s.ping_interval,
            heartbeat_timeout=s.heartbeat_timeout,
            heartbeat_fail_limit=s.heartbeat_fail_limit,
            receive_idle_timeout=s.receive_idle_timeout,
            output_buffer_limit=s.output_buffer_limit,
        )


@dataclass(slots=True, frozen=True, eq=False, repr=False, match_args=False, kw_only=True)
class RuleDomain:
    """예외 분류 규칙(도메인)

    exc:      매칭할 예외 타입(단일 타입 또는 타입 튜플)
    build:    매칭된 예외로 AppError 를 만드는 함수
    terminal: 영속 연결 장애로 쓰일 때 재접속을 포기해야 하는지 여부
    """

    exc: ExceptionGroup
    build: Callable[[BaseException], AppError]
    terminal: bool = False

"""WebSocket 전송 계층

- 접속 URL/인증 헤더 도출
- websockets 기반 기본 opener
- ConnectionManager 가 의존하는 최소 Transport 프로토콜
"""

from __future__ import annotations

import base64
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol

import websockets

from termlink.common.logger import PipelineLogger
from termlink.core.dto.internal.common import ConnectionConfig
from termlink.core.types import NORMAL_CLOSURE, SessionId

logger = PipelineLogger.get_logger("transport", "connection")

DEFAULT_TERMINAL_PATH = "/api/terminals/{session_id}/ws"


class Transport(Protocol):
    """열린 양방향 텍스트 소켓

    async for 로 수신 프레임을 순회하며, 정상 종료 시 순회가 끝나고
    비정상 종료 시 예외가 발생합니다.
    """

    @property
    def close_code(self) -> int | None: ...

    @property
    def close_reason(self) -> str | None: ...

    async def send(self, message: str) -> None: ...

    async def ping(self) -> Awaitable[float]: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


TransportOpener = Callable[[str, dict[str, str], float], Awaitable[Transport]]


def build_ws_url(
    base_url: str,
    session_id: SessionId,
    path_template: str = DEFAULT_TERMINAL_PATH,
) -> str:
    """http(s) 기준 URL → ws(s) 세션 URL

    Example:
        >>> build_ws_url("https://host:8080/", "abc")
        'wss://host:8080/api/terminals/abc/ws'
    """
    url = base_url.strip()
    if url.startswith("https://"):
        url = "wss://" + url[len("https://") :]
    elif url.startswith("http://"):
        url = "ws://" + url[len("http://") :]
    return url.rstrip("/") + path_template.format(session_id=session_id)


def build_auth_header(config: ConnectionConfig) -> dict[str, str]:
    """Authorization 헤더 (토큰 우선, 없으면 Basic)"""
    if config.api_token:
        return {"Authorization": f"Bearer {config.api_token}"}
    credentials = f"{config.username}:{config.password}".encode("utf-8")
    return {"Authorization": f"Basic {base64.b64encode(credentials).decode('ascii')}"}


async def open_websocket(url: str, headers: dict[str, str], open_timeout: float) -> Transport:
    """websockets 클라이언트 연결 (하트비트는 ConnectionHealthMonitor 가 담당)"""
    logger.debug(f"웹소켓 핸드셰이크 시작: {url}")
    return await websockets.connect(
        url,
        additional_headers=headers,
        open_timeout=open_timeout if open_timeout > 0 else None,
        ping_interval=None,
    )


__all__ = [
    "DEFAULT_TERMINAL_PATH",
    "Transport",
    "TransportOpener",
    "build_auth_header",
    "build_ws_url",
    "open_websocket",
]

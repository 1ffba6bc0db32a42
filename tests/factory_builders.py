from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable

from websockets.datastructures import Headers
from websockets.exceptions import InvalidStatus
from websockets.http11 import Response

from termlink.common.exceptions.circuit_breaker import CircuitBreaker
from termlink.common.serde import to_text
from termlink.core.connection.connectivity import ManualConnectivity
from termlink.core.connection.manager import ConnectionManager
from termlink.core.dto.internal.common import ConnectionConfig, ConnectionPolicy
from termlink.core.types import NORMAL_CLOSURE

_END = object()


def build_policy(**overrides: Any) -> ConnectionPolicy:
    """테스트용 정책: 대기 0, 하트비트/워치독 비활성화"""
    values: dict[str, Any] = {
        "initial_delay_ms": 0,
        "max_delay_ms": 0,
        "backoff_multiplier": 2.0,
        "max_attempts": 3,
        "open_timeout": 1.0,
        "ping_interval": 0.0,
        "receive_idle_timeout": 0.0,
        "output_buffer_limit": 64,
    }
    values.update(overrides)
    return ConnectionPolicy(**values)


def build_config(**overrides: Any) -> ConnectionConfig:
    values: dict[str, Any] = {
        "base_url": "https://terminal.example.com:8443",
        "session_id": "s1",
        "username": "alice",
        "password": "secret",
    }
    values.update(overrides)
    return ConnectionConfig(**values)


def build_invalid_status(status: int) -> InvalidStatus:
    """HTTP 상태 코드로 거절된 웹소켓 핸드셰이크 예외"""
    return InvalidStatus(Response(status, "rejected", Headers(), b""))


class FakeTransport:
    """메모리 기반 Transport

    feed()/feed_json() 으로 수신 프레임을 넣고, drop() 으로 비정상 종료,
    finish() 로 정상 종료(순회 종료)를 흉내냅니다.
    """

    def __init__(self, *, answer_pings: bool = True) -> None:
        self.sent: list[str] = []
        self.closed_with: tuple[int, str] | None = None
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.ping_count = 0
        self.answer_pings = answer_pings
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    def feed(self, frame: str | bytes) -> None:
        self._inbox.put_nowait(frame)

    def feed_json(self, **payload: Any) -> None:
        self.feed(to_text(payload))

    def drop(self, exc: BaseException) -> None:
        self._inbox.put_nowait(exc)

    def finish(self, code: int | None = NORMAL_CLOSURE, reason: str | None = None) -> None:
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_END)

    async def send(self, message: str) -> None:
        if self.closed_with is not None:
            raise ConnectionError("transport already closed")
        self.sent.append(message)

    async def ping(self) -> Awaitable[float]:
        self.ping_count += 1
        pong: asyncio.Future[float] = asyncio.get_running_loop().create_future()
        if self.answer_pings:
            pong.set_result(0.0)
        return pong

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        self.closed_with = (code, reason)
        self._inbox.put_nowait(_END)

    def __aiter__(self) -> Any:
        return self._frames()

    async def _frames(self) -> Any:
        while True:
            item = await self._inbox.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class FakeOpener:
    """스크립트된 결과를 순서대로 돌려주는 TransportOpener

    outcomes 가 소진되면 fallback 예외를 던지거나 (지정 시) 새 FakeTransport 를 반환합니다.
    """

    def __init__(
        self,
        *outcomes: BaseException | FakeTransport,
        fallback: BaseException | None = None,
    ) -> None:
        self._outcomes: deque[BaseException | FakeTransport] = deque(outcomes)
        self._fallback = fallback
        self.calls: list[tuple[str, dict[str, str], float]] = []
        self.transports: list[FakeTransport] = []

    async def __call__(self, url: str, headers: dict[str, str], open_timeout: float) -> FakeTransport:
        self.calls.append((url, dict(headers), open_timeout))
        if self._outcomes:
            outcome = self._outcomes.popleft()
        elif self._fallback is not None:
            outcome = self._fallback
        else:
            outcome = FakeTransport()

        if isinstance(outcome, BaseException):
            raise outcome
        self.transports.append(outcome)
        return outcome

    @property
    def last_transport(self) -> FakeTransport:
        return self.transports[-1]


def build_manager(
    opener: FakeOpener,
    *,
    connectivity: ManualConnectivity | None = None,
    circuit_breaker: CircuitBreaker | None = None,
    **policy_overrides: Any,
) -> ConnectionManager:
    return ConnectionManager(
        policy=build_policy(**policy_overrides),
        connectivity=connectivity or ManualConnectivity(),
        opener=opener,
        circuit_breaker=circuit_breaker,
        name="test",
    )


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """predicate 가 참이 될 때까지 이벤트 루프를 양보하며 대기"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

"""네트워크 연결성 감시

ConnectionManager 는 ConnectivitySource 프로토콜에만 의존합니다.
- ProbeConnectivityMonitor: aiohttp HEAD 프로브로 도달성을 주기적으로 확인
- ManualConnectivity: 외부에서 상태를 직접 지정 (감시 비활성화, 테스트)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Protocol, TypeVar, runtime_checkable

import aiohttp

from termlink.common.broadcast import Broadcast
from termlink.common.logger import PipelineLogger
from termlink.config.settings import ConnectivitySettings, connectivity_settings
from termlink.core.types import ConnectivityStatus, connectivity_status_format

logger = PipelineLogger.get_logger("connectivity", "connection")

T = TypeVar("T")


@runtime_checkable
class ConnectivitySource(Protocol):
    """연결성 상태 공급자"""

    def current_status(self) -> ConnectivityStatus: ...

    def is_currently_connected(self) -> bool: ...

    def add_listener(
        self, listener: Callable[[ConnectivityStatus], None]
    ) -> Callable[[], None]: ...

    def subscribe(self) -> AsyncIterator[ConnectivityStatus]: ...


class _BroadcastingSource:
    """상태 보관 + 중복 제거 발행 공통부"""

    def __init__(self, initial: ConnectivityStatus) -> None:
        self._status = initial
        self._stream: Broadcast[ConnectivityStatus] = Broadcast(
            "connectivity", replay_latest=True
        )
        self._stream.publish(initial)

    def current_status(self) -> ConnectivityStatus:
        return self._status

    def is_currently_connected(self) -> bool:
        return self._status.is_connected

    def add_listener(
        self, listener: Callable[[ConnectivityStatus], None]
    ) -> Callable[[], None]:
        """리스너 등록 (현재 상태를 즉시 한 번 전달)"""
        return self._stream.add_listener(listener)

    def subscribe(self) -> AsyncIterator[ConnectivityStatus]:
        return self._stream.subscribe()

    def _update(self, status: ConnectivityStatus) -> None:
        if status is self._status:
            return
        previous, self._status = self._status, status
        logger.info(
            f"연결성 변경: {connectivity_status_format(previous)} → "
            f"{connectivity_status_format(status)}"
        )
        self._stream.publish(status)


class ManualConnectivity(_BroadcastingSource):
    """외부에서 상태를 지정하는 연결성 공급자"""

    def __init__(self, initial: ConnectivityStatus = ConnectivityStatus.AVAILABLE) -> None:
        super().__init__(initial)

    def set_status(self, status: ConnectivityStatus) -> None:
        self._update(status)


class ProbeConnectivityMonitor(_BroadcastingSource):
    """HTTP 프로브 기반 연결성 감시

    상태 전이:
        성공 → AVAILABLE
        AVAILABLE 에서 첫 실패 → LOSING, 이어지는 실패 → LOST
        한 번도 성공하지 못한 상태의 실패 → UNAVAILABLE
    """

    def __init__(
        self,
        settings: ConnectivitySettings | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(ConnectivityStatus.UNAVAILABLE)
        self.settings = settings or connectivity_settings
        self._session = session
        self._owns_session = session is None
        self._task: asyncio.Task[None] | None = None
        self._ever_available = False

    async def start(self) -> None:
        """첫 프로브를 즉시 수행한 뒤 주기 감시 태스크를 시작합니다."""
        if self._task is not None:
            return
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.settings.probe_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        await self.probe_once()
        self._task = asyncio.create_task(self._probe_loop())
        logger.info(f"연결성 감시 시작: {self.settings.probe_url}")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
        self._stream.close()
        logger.info("연결성 감시 중단")

    async def probe_once(self) -> ConnectivityStatus:
        """프로브 1회 수행 후 갱신된 상태 반환"""
        reachable = await self._probe()
        self._update(self._next_status(reachable))
        return self._status

    def _next_status(self, reachable: bool) -> ConnectivityStatus:
        if reachable:
            self._ever_available = True
            return ConnectivityStatus.AVAILABLE
        if not self._ever_available:
            return ConnectivityStatus.UNAVAILABLE
        if self._status is ConnectivityStatus.AVAILABLE:
            return ConnectivityStatus.LOSING
        return ConnectivityStatus.LOST

    async def _probe(self) -> bool:
        if self._session is None:
            return False
        try:
            async with self._session.head(
                self.settings.probe_url,
                allow_redirects=False,
                timeout=aiohttp.ClientTimeout(total=self.settings.probe_timeout),
            ) as response:
                # 어떤 HTTP 응답이든 받았다면 망은 도달 가능
                logger.debug(f"연결성 프로브 응답: {response.status}")
                return True
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug(f"연결성 프로브 실패: {e}")
            return False

    async def _probe_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.probe_interval)
            await self.probe_once()


async def await_connection(source: ConnectivitySource) -> ConnectivityStatus:
    """AVAILABLE 이 될 때까지 대기"""
    if source.is_currently_connected():
        return source.current_status()
    async with aclosing(source.subscribe()) as statuses:
        async for status in statuses:
            if status.is_connected:
                return status
    raise ConnectionError("connectivity stream closed before becoming available")


async def when_connected(source: ConnectivitySource, operation: Callable[[], Awaitable[T]]) -> T:
    """연결될 때까지 기다린 뒤 operation 실행"""
    if not source.is_currently_connected():
        await await_connection(source)
    return await operation()


__all__ = [
    "ConnectivitySource",
    "ManualConnectivity",
    "ProbeConnectivityMonitor",
    "await_connection",
    "when_connected",
]

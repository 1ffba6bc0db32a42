"""원격 터미널 세션 영속 연결 관리자

상태 전이:
    Disconnected --connect--> Connecting
    Connecting --open--> Connected
    Connecting/Connected --장애--> Reconnecting | Failed
    Reconnecting --타이머 & 온라인--> Connecting
    Reconnecting --타이머 & 오프라인--> Failed(Network, can_retry=True)
    Failed --connect/reconnect--> Connecting
    * --destroy--> 종료 (이후 모든 호출 무시)

동시성 모델:
    단일 워커 태스크가 asyncio.Queue 의 이벤트를 순서대로 처리합니다.
    전송 시도와 타이머는 세대(generation) 번호를 가지며, 이전 세대의 이벤트는 버려집니다.
    공개 명령(connect/reconnect/disconnect/destroy)은 큐에 넣고 즉시 반환합니다.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass

from termlink.common.broadcast import Broadcast
from termlink.common.exceptions.circuit_breaker import CircuitBreaker
from termlink.common.exceptions.exception_rule import classify_transport_fault
from termlink.common.logger import PipelineLogger
from termlink.core.connection.connectivity import ConnectivitySource, ManualConnectivity
from termlink.core.connection.health_monitor import ConnectionHealthMonitor
from termlink.core.connection.output_buffer import OutputBuffer
from termlink.core.connection.services.backoff import connection_retry_policy
from termlink.core.connection.transport import (
    Transport,
    TransportOpener,
    build_auth_header,
    build_ws_url,
    open_websocket,
)
from termlink.core.dto.internal.common import ConnectionConfig, ConnectionPolicy
from termlink.core.dto.internal.errors import (
    AppError,
    AuthError,
    NetworkError,
    NotFoundError,
    TransportError,
)
from termlink.core.dto.internal.state import (
    Connected,
    Connecting,
    ConnectionState,
    Disconnected,
    Failed,
    Reconnecting,
)
from termlink.core.dto.io.messages import (
    ClosedMessage,
    ErrorMessage,
    InboundMessage,
    OutputMessage,
    WsInputMessage,
    WsResizeMessage,
    parse_inbound,
)
from termlink.core.types import NORMAL_CLOSURE, ConnectivityStatus

logger = PipelineLogger.get_logger("connection_manager", "connection")


# ----------------------------------------------------------------------------
# 워커 이벤트
# ----------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class _Connect:
    config: ConnectionConfig


@dataclass(slots=True, frozen=True)
class _Reconnect:
    pass


@dataclass(slots=True, frozen=True)
class _Disconnect:
    pass


@dataclass(slots=True, frozen=True)
class _Destroy:
    pass


@dataclass(slots=True, frozen=True)
class _ClearBuffer:
    pass


@dataclass(slots=True, frozen=True)
class _Opened:
    generation: int
    transport: Transport


@dataclass(slots=True, frozen=True)
class _Frame:
    generation: int
    raw: str | bytes


@dataclass(slots=True, frozen=True)
class _TransportFailed:
    generation: int
    exc: BaseException


@dataclass(slots=True, frozen=True)
class _TransportClosed:
    generation: int
    code: int | None
    reason: str | None


@dataclass(slots=True, frozen=True)
class _TimerFired:
    generation: int


@dataclass(slots=True, frozen=True)
class _ConnectivityChanged:
    status: ConnectivityStatus


_Event = (
    _Connect
    | _Reconnect
    | _Disconnect
    | _Destroy
    | _ClearBuffer
    | _Opened
    | _Frame
    | _TransportFailed
    | _TransportClosed
    | _TimerFired
    | _ConnectivityChanged
)


@dataclass(slots=True)
class _SessionRecord:
    """워커 전용 가변 상태 (보관 설정 포함)"""

    config: ConnectionConfig | None = None
    attempt: int = 0
    generation: int = 0
    transport: Transport | None = None
    last_error: AppError | None = None
    opening: asyncio.Task[None] | None = None
    reader: asyncio.Task[None] | None = None
    timer: asyncio.Task[None] | None = None


def _error_from_server_frame(message: str) -> AppError | None:
    """재접속이 무의미한 서버 error 프레임이면 AppError, 아니면 None (소문자 부분 일치)"""
    lowered = message.lower()
    if "not found" in lowered:
        return NotFoundError(message=message, resource_type="Terminal")
    if "authentication failed" in lowered:
        return AuthError(message=message, code=401)
    if "access denied" in lowered:
        return AuthError(message=message, code=403)
    return None


class ConnectionManager:
    """원격 터미널 세션 하나의 영속 연결 관리자

    Example:
        >>> manager = ConnectionManager(policy=ConnectionPolicy.from_settings())
        >>> manager.connect(ConnectionConfig(base_url="https://host", session_id="abc"))
        >>> await manager.wait_for_state(lambda s: s.is_connected, timeout=10)
        >>> await manager.send("ls\\n")
        >>> manager.disconnect()
    """

    def __init__(
        self,
        *,
        policy: ConnectionPolicy | None = None,
        connectivity: ConnectivitySource | None = None,
        opener: TransportOpener = open_websocket,
        circuit_breaker: CircuitBreaker | None = None,
        name: str = "terminal",
    ) -> None:
        self.policy = policy or ConnectionPolicy.from_settings()
        self.name = name
        self._connectivity = connectivity or ManualConnectivity()
        self._opener = opener
        self._breaker = circuit_breaker
        self._retry = connection_retry_policy(self.policy)

        self._record = _SessionRecord()
        self._output = OutputBuffer(self.policy.output_buffer_limit)
        self._health = ConnectionHealthMonitor(self.policy, name=name)

        self._state: ConnectionState = Disconnected()
        self._states: Broadcast[ConnectionState] = Broadcast(
            f"{name}.state", replay_latest=True
        )
        self._states.publish(self._state)
        self._messages: Broadcast[InboundMessage] = Broadcast(f"{name}.messages")
        self._buffer_stream: Broadcast[str] = Broadcast(f"{name}.buffer", replay_latest=True)
        self._buffer_stream.publish("")

        self._queue: asyncio.Queue[_Event] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self._closing: set[asyncio.Task[None]] = set()
        self._unsubscribe_connectivity: Callable[[], None] | None = None
        self._destroy_requested = False
        self._destroyed = False

    # ------------------------------------------------------------------
    # 관찰
    # ------------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def buffer(self) -> str:
        """출력 버퍼 스냅샷 (불변 str)"""
        return self._output.snapshot

    @property
    def is_destroyed(self) -> bool:
        return self._destroy_requested

    @property
    def retry_attempt(self) -> int:
        return self._record.attempt

    def states(self) -> AsyncIterator[ConnectionState]:
        """현재 상태부터 시작하는 상태 스트림"""
        return self._states.subscribe()

    def messages(self) -> AsyncIterator[InboundMessage]:
        return self._messages.subscribe()

    def buffer_updates(self) -> AsyncIterator[str]:
        return self._buffer_stream.subscribe()

    def add_state_listener(self, listener: Callable[[ConnectionState], None]) -> Callable[[], None]:
        return self._states.add_listener(listener)

    def add_message_listener(
        self, listener: Callable[[InboundMessage], None]
    ) -> Callable[[], None]:
        return self._messages.add_listener(listener)

    async def wait_for_state(
        self,
        predicate: Callable[[ConnectionState], bool],
        timeout: float | None = None,
    ) -> ConnectionState:
        """predicate 를 만족하는 상태가 될 때까지 대기

        Raises:
            TimeoutError: timeout 초과
            ConnectionError: 대기 중 destroy 된 경우
        """
        if predicate(self._state):
            return self._state

        async def _wait() -> ConnectionState:
            async with aclosing(self._states.subscribe()) as states:
                async for state in states:
                    if predicate(state):
                        return state
            raise ConnectionError(f"{self.name}: manager destroyed while waiting")

        return await asyncio.wait_for(_wait(), timeout)

    async def settle(self) -> None:
        """지금까지 큐에 들어온 이벤트가 모두 처리될 때까지 대기"""
        if self._worker is not None and not self._worker.done():
            await self._queue.join()

    # ------------------------------------------------------------------
    # 명령 (즉시 반환)
    # ------------------------------------------------------------------
    def connect(self, config: ConnectionConfig) -> None:
        self._post(_Connect(config))

    def reconnect(self) -> None:
        self._post(_Reconnect())

    def disconnect(self) -> None:
        self._post(_Disconnect())

    def clear_buffer(self) -> None:
        self._post(_ClearBuffer())

    def destroy(self) -> None:
        """자원 해제. 이후 모든 호출은 무시됩니다."""
        if self._destroy_requested:
            return
        self._post(_Destroy())
        self._destroy_requested = True

    async def aclose(self) -> None:
        """destroy 후 워커 종료까지 대기"""
        self.destroy()
        if self._worker is not None:
            await self._worker

    async def send(self, data: str) -> bool:
        """키 입력 전송. 열린 연결이 없거나 쓰기 실패 시 False (예외 없음)"""
        return await self._write(lambda: WsInputMessage(data=data).to_wire())

    async def resize(self, cols: int, rows: int) -> bool:
        return await self._write(lambda: WsResizeMessage(cols=cols, rows=rows).to_wire())

    async def _write(self, build: Callable[[], str]) -> bool:
        if self._destroy_requested:
            return False
        transport = self._record.transport
        if transport is None or not self._state.is_connected:
            return False
        try:
            payload = build()
            async with self._write_lock:
                await transport.send(payload)
        except Exception as e:
            logger.debug(f"{self.name}: 전송 실패 - {e!r}")
            return False
        return True

    # ------------------------------------------------------------------
    # 워커
    # ------------------------------------------------------------------
    def _post(self, event: _Event) -> None:
        if self._destroy_requested:
            return
        self._ensure_worker()
        self._queue.put_nowait(event)

    def _ensure_worker(self) -> None:
        if self._worker is not None:
            return
        self._worker = asyncio.get_running_loop().create_task(self._run())
        self._unsubscribe_connectivity = self._connectivity.add_listener(
            lambda status: self._post(_ConnectivityChanged(status))
        )

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            except Exception as e:
                logger.error(
                    f"{self.name}: unexpected error in connection worker - {e}",
                    exc_info=True,
                    extra={"event": type(event).__name__},
                )
            finally:
                self._queue.task_done()
            if self._destroyed:
                self._drain_queue()
                return

    def _drain_queue(self) -> None:
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if isinstance(event, _Opened):
                self._spawn_close(event.transport, NORMAL_CLOSURE, "stale connection")
            self._queue.task_done()

    async def _dispatch(self, event: _Event) -> None:
        match event:
            case _Connect(config=config):
                self._on_connect(config)
            case _Reconnect():
                await self._on_reconnect()
            case _Disconnect():
                await self._on_disconnect()
            case _Destroy():
                await self._on_destroy()
            case _ClearBuffer():
                self._output.clear()
                self._buffer_stream.publish("")
            case _Opened(generation=generation, transport=transport):
                self._on_opened(generation, transport)
            case _Frame(generation=generation, raw=raw):
                await self._on_frame(generation, raw)
            case _TransportFailed(generation=generation, exc=exc):
                await self._on_transport_failed(generation, exc)
            case _TransportClosed(generation=generation, code=code, reason=reason):
                await self._on_transport_closed(generation, code, reason)
            case _TimerFired(generation=generation):
                self._on_timer_fired(generation)
            case _ConnectivityChanged(status=status):
                await self._on_connectivity_changed(status)

    # ------------------------------------------------------------------
    # 상태 전이
    # ------------------------------------------------------------------
    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.debug(f"{self.name}: state → {state}")
        self._states.publish(state)

    def _set_failed(self, error: AppError, can_retry: bool) -> None:
        self._record.last_error = error
        self._set_state(Failed(error=error, can_retry=can_retry))

    def _on_connect(self, config: ConnectionConfig) -> None:
        if self._state.is_connected or self._state.is_connecting:
            logger.debug(f"{self.name}: 이미 연결(시도) 중 - connect 무시")
            return
        self._record.config = config
        self._record.attempt = 0
        self._start_attempt()

    async def _on_reconnect(self) -> None:
        if self._record.config is None:
            logger.debug(f"{self.name}: 보관된 설정 없음 - reconnect 무시")
            return
        await self._teardown(silent=True)
        self._record.attempt = 0
        self._start_attempt()

    async def _on_disconnect(self) -> None:
        await self._teardown(code=NORMAL_CLOSURE, reason="User disconnect")
        self._record.config = None
        self._record.attempt = 0
        self._output.clear()
        self._buffer_stream.publish("")
        self._set_state(Disconnected())
        logger.info(f"{self.name}: 연결 종료 (사용자 요청)")

    async def _on_destroy(self) -> None:
        await self._on_disconnect()
        if self._unsubscribe_connectivity is not None:
            self._unsubscribe_connectivity()
            self._unsubscribe_connectivity = None
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        self._destroyed = True
        self._states.close()
        self._messages.close()
        self._buffer_stream.close()
        logger.info(f"{self.name}: destroyed")

    def _start_attempt(self) -> None:
        config = self._record.config
        if config is None:
            return
        self._record.generation += 1
        generation = self._record.generation
        self._set_state(Connecting())

        url = build_ws_url(config.base_url, config.session_id, self.policy.terminal_path)
        headers = build_auth_header(config)
        logger.info(
            f"{self.name}: 연결 시도 중... {url}",
            extra={"attempt": self._record.attempt, "session_id": config.session_id},
        )
        self._record.opening = asyncio.create_task(self._open(generation, url, headers))

    async def _open(self, generation: int, url: str, headers: dict[str, str]) -> None:
        try:
            transport = await self._opener(url, headers, self.policy.open_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._post(_TransportFailed(generation, e))
            return
        if self._destroy_requested:
            self._spawn_close(transport, NORMAL_CLOSURE, "stale connection")
            return
        self._post(_Opened(generation, transport))

    def _on_opened(self, generation: int, transport: Transport) -> None:
        if generation != self._record.generation or self._record.config is None:
            self._spawn_close(transport, NORMAL_CLOSURE, "stale connection")
            return

        config = self._record.config
        self._record.opening = None
        self._record.transport = transport
        self._record.attempt = 0
        if self._breaker is not None:
            self._breaker.record_success()

        self._set_state(Connected(session_id=config.session_id))
        logger.info(f"{self.name}: 연결 성공", extra={"session_id": config.session_id})

        self._record.reader = asyncio.create_task(self._read_loop(generation, transport))
        self._health.start_monitoring(
            transport,
            lambda err: self._post(_TransportFailed(generation, err)),
        )

    async def _read_loop(self, generation: int, transport: Transport) -> None:
        try:
            async for raw in transport:
                self._post(_Frame(generation, raw))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._post(_TransportFailed(generation, e))
            return
        self._post(_TransportClosed(generation, transport.close_code, transport.close_reason))

    async def _on_frame(self, generation: int, raw: str | bytes) -> None:
        if generation != self._record.generation:
            return
        self._health.notify_receive()

        message = parse_inbound(raw)
        if isinstance(message, OutputMessage):
            self._buffer_stream.publish(self._output.append(message.data))
        self._messages.publish(message)

        match message:
            case ClosedMessage(reason=reason):
                logger.info(f"{self.name}: 서버가 세션을 종료했습니다 (reason={reason})")
                await self._teardown(code=NORMAL_CLOSURE, reason="Session closed")
                self._set_failed(
                    TransportError(message=reason or "Session closed", can_reconnect=True),
                    can_retry=False,
                )
            case ErrorMessage(message=text):
                error = _error_from_server_frame(text)
                if error is None:
                    logger.debug(f"{self.name}: 서버 에러 메시지 - {text}")
                    return
                logger.warning(f"{self.name}: 복구 불가 서버 에러 - {text}")
                await self._teardown(code=NORMAL_CLOSURE, reason="Terminal error")
                self._set_failed(error, can_retry=False)
            case _:
                pass

    async def _on_transport_failed(self, generation: int, exc: BaseException) -> None:
        if generation != self._record.generation:
            return
        error, terminal = classify_transport_fault(exc)
        logger.warning(
            f"{self.name}: 연결 장애 - {error.message}",
            extra={"terminal": terminal, "error_kind": type(error).__name__},
        )
        await self._teardown(silent=True)
        self._handle_fault(error, terminal)

    async def _on_transport_closed(
        self, generation: int, code: int | None, reason: str | None
    ) -> None:
        if generation != self._record.generation:
            return
        detail = f": {reason}" if reason else ""
        error = TransportError(
            message=f"Connection closed by peer (code={code}){detail}",
            code=code,
            can_reconnect=True,
        )
        logger.warning(f"{self.name}: {error.message}")
        await self._teardown(silent=True)
        self._handle_fault(error, terminal=False)

    def _handle_fault(self, error: AppError, terminal: bool) -> None:
        if self._breaker is not None:
            self._breaker.record_failure()

        if terminal:
            self._give_up(error)
            return

        self._record.attempt += 1
        attempt = self._record.attempt
        max_attempts = self._retry.max_attempts
        if attempt < max_attempts and self._record.config is not None:
            delay_ms = self._retry.delay_for_attempt(attempt)
            self._record.last_error = error
            self._set_state(
                Reconnecting(attempt=attempt, max_attempts=max_attempts, next_retry_ms=delay_ms)
            )
            logger.info(f"{self.name}: {delay_ms}ms 후 재접속 (attempt={attempt}/{max_attempts})")
            self._schedule_timer(delay_ms)
        else:
            logger.error(f"{self.name}: 재연결 한도({max_attempts}) 초과로 종료")
            self._give_up(error)

    def _give_up(self, error: AppError) -> None:
        """자동 재접속 종료. 실패는 Failed 상태로만 알립니다 (messages 는 서버 프레임 전용)."""
        self._set_failed(error, can_retry=False)

    def _schedule_timer(self, delay_ms: int) -> None:
        self._cancel_timer()
        generation = self._record.generation

        async def _fire() -> None:
            await asyncio.sleep(delay_ms / 1000)
            self._post(_TimerFired(generation))

        self._record.timer = asyncio.create_task(_fire())

    def _cancel_timer(self) -> None:
        timer = self._record.timer
        self._record.timer = None
        if timer is not None and not timer.done():
            timer.cancel()

    def _on_timer_fired(self, generation: int) -> None:
        if generation != self._record.generation or not isinstance(self._state, Reconnecting):
            return
        self._record.timer = None

        if self._breaker is not None and not self._breaker.can_proceed():
            logger.warning(f"{self.name}: 서킷 OPEN - 재접속 중단")
            self._give_up(self._record.last_error or TransportError(can_reconnect=False))
            return

        if not self._connectivity.is_currently_connected():
            logger.info(f"{self.name}: 네트워크 대기 중")
            self._set_failed(
                NetworkError(message="Waiting for network", is_no_connection=True),
                can_retry=True,
            )
            return

        self._start_attempt()

    async def _on_connectivity_changed(self, status: ConnectivityStatus) -> None:
        state = self._state
        if status.is_connected:
            if isinstance(state, Failed) and state.can_retry and self._record.config is not None:
                logger.info(f"{self.name}: 네트워크 복구, 재접속 시도")
                self._start_attempt()
            return

        if isinstance(state, Reconnecting):
            self._record.generation += 1
            self._cancel_timer()
            logger.info(f"{self.name}: 네트워크 끊김 - 재접속 타이머 취소")
            self._set_failed(
                NetworkError(message="No internet connection", is_no_connection=True),
                can_retry=True,
            )

    # ------------------------------------------------------------------
    # 자원 정리
    # ------------------------------------------------------------------
    async def _teardown(
        self, *, code: int = NORMAL_CLOSURE, reason: str = "", silent: bool = False
    ) -> None:
        """현재 세대를 무효화하고 타이머/태스크/소켓을 정리합니다."""
        record = self._record
        record.generation += 1
        self._cancel_timer()

        for task in (record.opening, record.reader):
            if task is not None and not task.done():
                task.cancel()
        record.opening = None
        record.reader = None

        await self._health.stop_monitoring()

        transport, record.transport = record.transport, None
        if transport is not None:
            self._spawn_close(transport, code, "" if silent else reason)

    def _spawn_close(self, transport: Transport, code: int, reason: str) -> None:
        async def _close() -> None:
            try:
                await transport.close(code, reason)
            except Exception as e:
                logger.debug(f"{self.name}: websocket close failed - {e!r}")

        task = asyncio.create_task(_close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)


__all__ = ["ConnectionManager"]

"""
연결 레지스트리 관리

여러 원격 터미널 세션의 ConnectionManager 를 세션 ID 로 추적하고,
상태 변화를 EventBus 로 중계합니다.
"""

from __future__ import annotations

import asyncio
from typing import Callable, TypeAlias

from termlink.common.events import ConnectionStateEvent, ErrorEvent, EventBus
from termlink.common.exceptions.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from termlink.common.logger import PipelineLogger
from termlink.core.connection.connectivity import ConnectivitySource
from termlink.core.connection.manager import ConnectionManager
from termlink.core.dto.internal.common import ConnectionConfig, ConnectionPolicy
from termlink.core.dto.internal.state import ConnectionState, Failed
from termlink.core.types import SessionId

ManagerFactory: TypeAlias = Callable[[SessionId], ConnectionManager]

logger = PipelineLogger.get_logger("connection_registry", "app")


class ConnectionRegistry:
    """연결 레지스트리 관리자

    세션마다 하나의 ConnectionManager 를 유지합니다 (물리 연결 1개 = 원격 세션 1개).
    """

    def __init__(
        self,
        policy: ConnectionPolicy | None = None,
        connectivity: ConnectivitySource | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        manager_factory: ManagerFactory | None = None,
    ) -> None:
        self._policy = policy or ConnectionPolicy.from_settings()
        self._connectivity = connectivity
        self._breaker_config = breaker_config
        self._factory = manager_factory or self._default_factory
        self._managers: dict[SessionId, ConnectionManager] = {}
        self._unsubscribers: dict[SessionId, Callable[[], None]] = {}
        self._pending_events: set[asyncio.Task[None]] = set()

    def _default_factory(self, session_id: SessionId) -> ConnectionManager:
        breaker = (
            CircuitBreaker(self._breaker_config, name=session_id)
            if self._breaker_config is not None
            else None
        )
        return ConnectionManager(
            policy=self._policy,
            connectivity=self._connectivity,
            circuit_breaker=breaker,
            name=f"session:{session_id}",
        )

    def get(self, session_id: SessionId) -> ConnectionManager | None:
        return self._managers.get(session_id)

    def get_or_create(self, session_id: SessionId) -> ConnectionManager:
        manager = self._managers.get(session_id)
        if manager is None or manager.is_destroyed:
            manager = self._factory(session_id)
            self._managers[session_id] = manager
            self._unsubscribers[session_id] = manager.add_state_listener(
                lambda state: self._relay_state(session_id, state)
            )
            logger.bind(session_id=session_id).debug("Connection registered")
        return manager

    def connect(self, config: ConnectionConfig) -> ConnectionManager:
        """세션 연결 시작 (이미 연결/연결 중이면 기존 매니저 반환)"""
        manager = self.get_or_create(config.session_id)
        manager.connect(config)
        return manager

    def is_connected(self, session_id: SessionId) -> bool:
        manager = self._managers.get(session_id)
        return manager is not None and manager.state.is_connected

    def active_sessions(self) -> list[SessionId]:
        return [sid for sid, m in self._managers.items() if m.state.is_connected]

    def sessions(self) -> dict[SessionId, ConnectionState]:
        return {sid: m.state for sid, m in self._managers.items()}

    def disconnect(self, session_id: SessionId) -> bool:
        manager = self._managers.get(session_id)
        if manager is None:
            logger.bind(session_id=session_id).info("Disconnect ignored (no active connection)")
            return False
        manager.disconnect()
        return True

    async def remove(self, session_id: SessionId) -> bool:
        """매니저를 destroy 하고 레지스트리에서 제거"""
        manager = self._managers.pop(session_id, None)
        unsubscribe = self._unsubscribers.pop(session_id, None)
        if unsubscribe is not None:
            unsubscribe()
        if manager is None:
            return False
        await manager.aclose()
        logger.bind(session_id=session_id).debug("Connection unregistered")
        return True

    async def shutdown_all(self) -> None:
        if not self._managers:
            logger.info("No active connections to shutdown")
            return

        logger.info(f"Shutting down {len(self._managers)} connections...")
        for session_id in list(self._managers):
            await self.remove(session_id)
        if self._pending_events:
            await asyncio.gather(*self._pending_events, return_exceptions=True)
        logger.info("All connections shut down")

    def _relay_state(self, session_id: SessionId, state: ConnectionState) -> None:
        events: list[object] = [ConnectionStateEvent(session_id=session_id, state=state)]
        if isinstance(state, Failed) and not state.can_retry:
            events.append(ErrorEvent(error=state.error, context=f"session:{session_id}"))

        for event in events:
            task = asyncio.get_running_loop().create_task(EventBus.emit(event))
            self._pending_events.add(task)
            task.add_done_callback(self._pending_events.discard)


__all__ = ["ConnectionRegistry", "ManagerFactory"]

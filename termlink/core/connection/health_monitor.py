from __future__ import annotations

import asyncio
import time
from typing import Callable

from termlink.common.logger import PipelineLogger
from termlink.core.connection.transport import Transport
from termlink.core.dto.internal.common import ConnectionPolicy
from termlink.core.types import CONNECTION_EXCEPTIONS

logger = PipelineLogger.get_logger("health_monitor", "connection")


class ConnectionHealthMonitor:
    """연결 상태 감시 전담 클래스

    책임:
    - 하트비트(ping) 전송 및 pong 대기
    - 수신 유휴 워치독
    - 비정상 판정 시 on_unhealthy 콜백으로 통지 (소켓 정리는 호출자 책임)
    """

    def __init__(self, policy: ConnectionPolicy, name: str = "terminal") -> None:
        self.policy = policy
        self.name = name

        self._last_heartbeat_ts: float = 0.0
        self._last_receive_ts: float = 0.0
        self._heartbeat_fail_count: int = 0
        self._is_monitoring: bool = False
        self._on_unhealthy: Callable[[BaseException], None] | None = None

        self._heartbeat_task: asyncio.Task[None] | None = None
        self._watchdog_task: asyncio.Task[None] | None = None

    async def send_heartbeat(self, transport: Transport) -> None:
        """ping 전송 후 heartbeat_timeout 안에 pong 을 기다립니다."""
        try:
            pong_waiter = await transport.ping()
            await asyncio.wait_for(pong_waiter, self.policy.heartbeat_timeout)
        except CONNECTION_EXCEPTIONS as e:
            self._update_heartbeat_status(success=False)
            logger.warning(
                f"{self.name}: 하트비트 실패 ({self._heartbeat_fail_count}/"
                f"{self.policy.heartbeat_fail_limit}) - {e!r}"
            )
            raise

        self._update_heartbeat_status(success=True)
        logger.debug(f"{self.name}: 하트비트 전송 성공")

    def start_monitoring(
        self, transport: Transport, on_unhealthy: Callable[[BaseException], None]
    ) -> None:
        """하트비트/워치독 태스크 시작 (간격/타임아웃이 0 이하이면 해당 태스크 비활성화)"""
        self._last_heartbeat_ts = time.monotonic()
        self._last_receive_ts = self._last_heartbeat_ts
        self._heartbeat_fail_count = 0
        self._is_monitoring = True
        self._on_unhealthy = on_unhealthy

        if self.policy.ping_interval > 0:
            self._heartbeat_task = asyncio.create_task(
                self._heartbeat_loop(transport, self.policy.ping_interval)
            )
        if self.policy.receive_idle_timeout > 0:
            self._watchdog_task = asyncio.create_task(self._watchdog_loop())

        logger.debug(f"{self.name}: 연결 상태 모니터링 시작")

    async def stop_monitoring(self) -> None:
        """모니터링 중단"""
        was_monitoring = self._is_monitoring
        self._is_monitoring = False
        self._on_unhealthy = None

        for task in (self._heartbeat_task, self._watchdog_task):
            if task is None or task is asyncio.current_task():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._heartbeat_task = None
        self._watchdog_task = None

        if was_monitoring:
            logger.debug(f"{self.name}: 연결 상태 모니터링 중단")

    def notify_receive(self) -> None:
        """메시지 수신 시점에 호출되어 마지막 수신 시각을 갱신합니다."""
        self._last_receive_ts = time.monotonic()

    def _report_unhealthy(self, err: BaseException) -> None:
        callback = self._on_unhealthy
        self._is_monitoring = False
        if callback is not None:
            callback(err)

    async def _heartbeat_loop(self, transport: Transport, interval: float) -> None:
        while self._is_monitoring:
            await asyncio.sleep(interval)
            try:
                await self.send_heartbeat(transport)
            except CONNECTION_EXCEPTIONS as e:
                if not self.is_healthy():
                    self._report_unhealthy(
                        TimeoutError(
                            f"heartbeat failed {self._heartbeat_fail_count} times: {e!r}"
                        )
                    )
                    return

    def _update_heartbeat_status(self, success: bool) -> None:
        if success:
            self._last_heartbeat_ts = time.monotonic()
            self._heartbeat_fail_count = 0
        else:
            self._heartbeat_fail_count += 1

    def is_healthy(self) -> bool:
        return self._heartbeat_fail_count < self.policy.heartbeat_fail_limit

    @property
    def heartbeat_fail_count(self) -> int:
        return self._heartbeat_fail_count

    @property
    def last_heartbeat_ts(self) -> float:
        return self._last_heartbeat_ts

    @property
    def is_monitoring(self) -> bool:
        return self._is_monitoring

    async def _watchdog_loop(self) -> None:
        """수신 유휴 감시 루프: 일정 시간 수신이 없으면 비정상으로 통지합니다."""
        # 체크 주기는 타임아웃의 1/3 (0.1초 ~ 10초)
        timeout = float(self.policy.receive_idle_timeout)
        check_interval = max(0.1, min(10.0, timeout / 3.0))

        while self._is_monitoring:
            await asyncio.sleep(check_interval)
            idle_for = time.monotonic() - self._last_receive_ts
            if idle_for >= timeout:
                logger.warning(
                    f"{self.name}: receive idle timeout exceeded - "
                    f"idle={idle_for:.1f}s >= {timeout:.1f}s",
                    extra={"idle_seconds": round(idle_for, 1)},
                )
                self._report_unhealthy(TimeoutError("receive idle timeout exceeded"))
                return

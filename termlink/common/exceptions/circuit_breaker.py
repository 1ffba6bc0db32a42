"""
프로세스 내 서킷브레이커 구현

3-State Finite State Machine:
- CLOSED: 정상 동작 (요청 허용)
- OPEN: 장애 감지 (요청 즉시 차단)
- HALF_OPEN: 회복 테스트 (단 한 번의 시험 요청 허용)

특징:
- 연속 실패 횟수 기반 장애 감지
- 시간 기반 자동 복구 (OPEN → HALF_OPEN)
- 시험 요청이 다시 실패하면 즉시 OPEN 재진입 (failure_count = threshold - 1 로 재무장)
- 모든 전이는 threading.Lock 하에서 원자적으로 수행
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from termlink.common.logger import PipelineLogger
from termlink.config.settings import NetworkSettings, network_settings
from termlink.core.types import CircuitState

logger = PipelineLogger.get_logger("circuit_breaker", "common")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """서킷브레이커 설정"""

    failure_threshold: int = 5  # 연속 실패 임계값
    reset_timeout_seconds: float = 30.0  # OPEN 상태 유지 시간 (초)

    @classmethod
    def from_settings(cls, settings: NetworkSettings | None = None) -> CircuitBreakerConfig:
        s = settings or network_settings
        return cls(
            failure_threshold=s.circuit_breaker_threshold,
            reset_timeout_seconds=s.circuit_breaker_reset_seconds,
        )


class CircuitBreakerOpenError(Exception):
    """서킷브레이커가 OPEN 상태일 때 발생하는 예외"""

    pass


class CircuitBreaker:
    """연속 실패 기반 서킷브레이커

    Example:
        >>> breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=3))
        >>>
        >>> # 요청 전 체크
        >>> if not breaker.can_proceed():
        >>>     raise CircuitBreakerOpenError("Circuit is OPEN")
        >>>
        >>> try:
        >>>     result = await some_operation()
        >>>     breaker.record_success()
        >>> except Exception:
        >>>     breaker.record_failure()
        >>>     raise
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            config: 서킷브레이커 설정
            name: 로그 식별용 이름 (예: 세션 ID)
            clock: 단조 증가 시계 (테스트에서 주입)
        """
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._is_open = False

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def last_failure_time(self) -> float | None:
        with self._lock:
            return self._last_failure_time

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._is_open

    @property
    def state(self) -> CircuitState:
        """현재 상태 (부작용 없음, 재무장은 can_proceed 에서만 수행)"""
        with self._lock:
            if not self._is_open:
                return CircuitState.CLOSED
            if self._elapsed_since_failure() >= self.config.reset_timeout_seconds:
                return CircuitState.HALF_OPEN
            return CircuitState.OPEN

    def _elapsed_since_failure(self) -> float:
        if self._last_failure_time is None:
            return float("inf")
        return self._clock() - self._last_failure_time

    def record_success(self) -> None:
        """성공 기록: 카운터 초기화 및 CLOSED 전환"""
        with self._lock:
            was_open = self._is_open
            self._failure_count = 0
            self._is_open = False
        if was_open:
            logger.info(f"Circuit {self.name}: HALF_OPEN → CLOSED")

    def record_failure(self) -> None:
        """실패 기록: 임계값 도달 시 OPEN 전환"""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()
            opened = not self._is_open and self._failure_count >= self.config.failure_threshold
            if self._failure_count >= self.config.failure_threshold:
                self._is_open = True
            count = self._failure_count

        if opened:
            logger.warning(
                f"Circuit {self.name}: CLOSED → OPEN (failures: {count})",
                extra={"failure_count": count},
            )

    def can_proceed(self) -> bool:
        """요청 허용 여부 확인

        OPEN 상태에서 reset_timeout 이 지나면 HALF_OPEN 으로 간주해 한 번 허용하고,
        다음 실패 한 번으로 다시 OPEN 되도록 failure_count 를 threshold - 1 로 재무장합니다.
        """
        with self._lock:
            if not self._is_open:
                return True
            if self._elapsed_since_failure() >= self.config.reset_timeout_seconds:
                self._is_open = False
                self._failure_count = self.config.failure_threshold - 1
                half_open = True
            else:
                half_open = False

        if half_open:
            logger.info(f"Circuit {self.name}: OPEN → HALF_OPEN")
        else:
            logger.debug(f"Circuit {self.name}: Request blocked (OPEN state)")
        return half_open

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """서킷브레이커로 보호되는 비동기 호출

        Raises:
            CircuitBreakerOpenError: 요청이 차단된 경우
        """
        if not self.can_proceed():
            raise CircuitBreakerOpenError(f"Circuit {self.name} is OPEN")
        try:
            result = await operation()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        """강제 CLOSED 전환"""
        with self._lock:
            self._failure_count = 0
            self._last_failure_time = None
            self._is_open = False
        logger.info(f"Circuit {self.name}: Forced to CLOSED state")


__all__ = ["CircuitBreaker", "CircuitBreakerConfig", "CircuitBreakerOpenError"]

"""지수 백오프 재시도 정책과 재시도 드라이버

단발성 비동기 요청(REST 등)은 with_retry 로 재시도하고, ConnectionManager 는
connection_retry_policy 로 만든 RetryPolicy 에서 재접속 대기 시간을 얻습니다.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Final, Generic, TypeVar

from termlink.common.exceptions.exception_rule import default_condition_mapper
from termlink.common.logger import PipelineLogger
from termlink.config.settings import NetworkSettings, network_settings
from termlink.core.types import ConditionMapper, RetryCondition

logger = PipelineLogger.get_logger("retry_policy", "connection")

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[object]]

_DEFAULT_RETRY_ON: Final[frozenset[RetryCondition]] = frozenset(
    {RetryCondition.NETWORK_ERROR, RetryCondition.SERVER_ERROR, RetryCondition.TIMEOUT}
)


@dataclass(slots=True, frozen=True, kw_only=True)
class RetryPolicy:
    """재시도 정책 (불변)

    Attributes:
        max_attempts: 첫 시도를 포함한 최대 시도 횟수 (>= 1)
        initial_delay_ms: 첫 재시도 전 대기
        max_delay_ms: 대기 상한
        backoff_multiplier: 지수 배수 (> 1)
        retry_on: 재시도 대상 조건 집합
    """

    max_attempts: int = 3
    initial_delay_ms: int = 1_000
    max_delay_ms: int = 10_000
    backoff_multiplier: float = 2.0
    retry_on: frozenset[RetryCondition] = field(default=_DEFAULT_RETRY_ON)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.backoff_multiplier <= 1.0:
            raise ValueError(f"backoff_multiplier must be > 1, got {self.backoff_multiplier}")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be non-negative")

    @classmethod
    def from_settings(cls, settings: NetworkSettings | None = None) -> RetryPolicy:
        s = settings or network_settings
        return cls(
            max_attempts=s.api_max_attempts,
            initial_delay_ms=s.api_initial_delay_ms,
            max_delay_ms=s.api_max_delay_ms,
        )

    def delay_for_attempt(self, attempt: int) -> int:
        """attempt 번째 재시도 전 대기(ms). 0 이하이면 0."""
        if attempt <= 0:
            return 0
        try:
            raw = self.initial_delay_ms * (self.backoff_multiplier ** (attempt - 1))
        except OverflowError:
            return self.max_delay_ms
        return self.max_delay_ms if raw >= self.max_delay_ms else int(raw)

    def should_retry(self, condition: RetryCondition, attempts_so_far: int) -> bool:
        return attempts_so_far < self.max_attempts and condition in self.retry_on


DEFAULT: Final[RetryPolicy] = RetryPolicy()
AGGRESSIVE: Final[RetryPolicy] = RetryPolicy(max_attempts=5, initial_delay_ms=500)
CONSERVATIVE: Final[RetryPolicy] = RetryPolicy(max_attempts=2, initial_delay_ms=2_000)
NO_RETRY: Final[RetryPolicy] = RetryPolicy(max_attempts=1)


@dataclass(slots=True, frozen=True)
class RetryResult(Generic[T]):
    """재시도 메타데이터 포함 결과"""

    value: T
    attempts: int
    total_delay_ms: int


async def with_retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy = DEFAULT,
    condition_mapper: ConditionMapper = default_condition_mapper,
    *,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """정책에 따라 operation(attempt) 를 재시도합니다.

    - attempt 는 0부터 시작합니다.
    - 조건 매핑이 None 이거나 정책이 거절하면 원래 예외를 그대로 다시 던집니다.
    - asyncio.CancelledError 는 재시도하지 않습니다.
    """
    attempt = 0
    while True:
        try:
            return await operation(attempt)
        except Exception as exc:
            condition = condition_mapper(exc)
            if condition is None or not policy.should_retry(condition, attempt + 1):
                raise
            delay_ms = policy.delay_for_attempt(attempt + 1)
            logger.debug(
                f"재시도 예약: attempt={attempt + 1}/{policy.max_attempts} "
                f"condition={condition} delay={delay_ms}ms",
                extra={"attempt": attempt + 1, "condition": str(condition)},
            )
            await sleep(delay_ms / 1000)
            attempt += 1


async def with_retry_result(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy = DEFAULT,
    condition_mapper: ConditionMapper = default_condition_mapper,
    *,
    sleep: Sleep = asyncio.sleep,
) -> RetryResult[T]:
    """with_retry 와 같지만 시도 횟수와 누적 대기(ms)를 함께 반환합니다."""
    attempts = 0
    total_delay_ms = 0

    async def tracked(attempt: int) -> T:
        nonlocal attempts, total_delay_ms
        attempts = attempt + 1
        if attempt > 0:
            total_delay_ms += policy.delay_for_attempt(attempt)
        return await operation(attempt)

    value = await with_retry(tracked, policy, condition_mapper, sleep=sleep)
    return RetryResult(value=value, attempts=attempts, total_delay_ms=total_delay_ms)


__all__ = [
    "AGGRESSIVE",
    "CONSERVATIVE",
    "DEFAULT",
    "NO_RETRY",
    "RetryPolicy",
    "RetryResult",
    "with_retry",
    "with_retry_result",
]

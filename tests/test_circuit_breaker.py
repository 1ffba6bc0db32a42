from __future__ import annotations

import pytest

from termlink.common.exceptions.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpenError,
)
from termlink.core.types import CircuitState
from tests.factory_builders import FakeClock


def _build(threshold: int = 3, reset: float = 30.0) -> tuple[CircuitBreaker, FakeClock]:
    clock = FakeClock()
    breaker = CircuitBreaker(
        CircuitBreakerConfig(failure_threshold=threshold, reset_timeout_seconds=reset),
        name="test",
        clock=clock,
    )
    return breaker, clock


def test_opens_after_threshold_failures() -> None:
    breaker, _ = _build(threshold=3)

    breaker.record_failure()
    breaker.record_failure()
    assert breaker.can_proceed()

    breaker.record_failure()
    assert breaker.is_open
    assert breaker.state is CircuitState.OPEN
    assert not breaker.can_proceed()


def test_half_open_after_reset_and_single_failure_reopens() -> None:
    breaker, clock = _build(threshold=3, reset=30.0)
    for _ in range(3):
        breaker.record_failure()

    clock.advance(30.0)
    assert breaker.state is CircuitState.HALF_OPEN
    assert breaker.can_proceed()
    assert breaker.failure_count == 2

    breaker.record_failure()
    assert breaker.is_open
    assert not breaker.can_proceed()


def test_success_closes_circuit() -> None:
    breaker, clock = _build(threshold=1)
    breaker.record_failure()
    clock.advance(60.0)
    assert breaker.can_proceed()

    breaker.record_success()

    assert breaker.state is CircuitState.CLOSED
    assert breaker.failure_count == 0


def test_reset_forces_closed() -> None:
    breaker, _ = _build(threshold=1)
    breaker.record_failure()

    breaker.reset()

    assert breaker.can_proceed()
    assert breaker.last_failure_time is None


@pytest.mark.asyncio
async def test_call_records_outcomes_and_blocks_when_open() -> None:
    breaker, _ = _build(threshold=1)

    async def ok() -> str:
        return "ok"

    async def boom() -> str:
        raise OSError("down")

    assert await breaker.call(ok) == "ok"
    with pytest.raises(OSError):
        await breaker.call(boom)
    with pytest.raises(CircuitBreakerOpenError):
        await breaker.call(ok)

from __future__ import annotations

from termlink.core.connection.services.retry_policy import RetryPolicy
from termlink.core.dto.internal.common import ConnectionPolicy


def connection_retry_policy(policy: ConnectionPolicy) -> RetryPolicy:
    """영속 연결 정책의 재접속 파라미터로 RetryPolicy 구성"""
    return RetryPolicy(
        max_attempts=policy.max_attempts,
        initial_delay_ms=policy.initial_delay_ms,
        max_delay_ms=policy.max_delay_ms,
        backoff_multiplier=policy.backoff_multiplier,
    )


def compute_next_backoff(policy: ConnectionPolicy, attempt: int) -> int:
    """재접속 대기(ms). 계산은 RetryPolicy.delay_for_attempt 를 따릅니다.

    Args:
        policy: 백오프 파라미터가 담긴 정책 객체
        attempt: 1부터 시작하는 재접속 시도 번호 (0 이하이면 대기 없음)
    """
    return connection_retry_policy(policy).delay_for_attempt(attempt)

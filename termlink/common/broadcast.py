"""순서 보장 팬아웃 스트림

한 생산자가 발행한 값을 모든 구독자에게 발행 순서대로 전달합니다.
- 동기 리스너: publish 호출 안에서 즉시 호출
- 비동기 구독: subscribe() 가 구독자별 큐를 가진 async iterator 를 반환
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Generic, TypeVar

from termlink.common.logger import PipelineLogger

logger = PipelineLogger.get_logger("broadcast", "common")

T = TypeVar("T")

_CLOSED = object()


class Broadcast(Generic[T]):
    """단일 생산자 → 다중 구독자 스트림

    Args:
        name: 로그 식별용 이름
        replay_latest: True 이면 새 구독자에게 마지막 값을 먼저 전달 (상태 스트림용)
    """

    def __init__(self, name: str, *, replay_latest: bool = False) -> None:
        self.name = name
        self._replay_latest = replay_latest
        self._latest: T | None = None
        self._has_latest = False
        self._listeners: list[Callable[[T], None]] = []
        self._queues: list[asyncio.Queue] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners) + len(self._queues)

    def add_listener(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """동기 리스너 등록. 반환된 함수를 호출하면 해제됩니다."""
        self._listeners.append(listener)
        if self._replay_latest and self._has_latest:
            self._notify(listener, self._latest)  # type: ignore[arg-type]

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, listener: Callable[[T], None], value: T) -> None:
        try:
            listener(value)
        except Exception as e:
            logger.error(
                f"Broadcast listener failed: {e}",
                exc_info=True,
                extra={"stream": self.name},
            )

    def publish(self, value: T) -> None:
        if self._closed:
            return
        self._latest = value
        self._has_latest = True
        for listener in list(self._listeners):
            self._notify(listener, value)
        for q in self._queues:
            q.put_nowait(value)

    async def subscribe(self) -> AsyncIterator[T]:
        """발행 순서대로 값을 내보내는 async iterator (close() 시 종료)"""
        q: asyncio.Queue = asyncio.Queue()
        if self._replay_latest and self._has_latest:
            q.put_nowait(self._latest)
        if self._closed:
            q.put_nowait(_CLOSED)
        self._queues.append(q)
        try:
            while True:
                item = await q.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if q in self._queues:
                self._queues.remove(q)

    def close(self) -> None:
        """모든 비동기 구독을 종료하고 리스너를 해제합니다."""
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        for q in self._queues:
            q.put_nowait(_CLOSED)


__all__ = ["Broadcast"]

from __future__ import annotations

from termlink.core.types import DEFAULT_OUTPUT_BUFFER_LIMIT


class OutputBuffer:
    """최근 터미널 출력 보관 버퍼

    - 최대 limit 문자까지 보관하며, 초과분은 오래된 쪽부터 버립니다.
    - snapshot 은 불변 str 이므로 읽는 쪽이 이후 변경에 영향을 받지 않습니다.
    """

    __slots__ = ("_limit", "_text")

    def __init__(self, limit: int = DEFAULT_OUTPUT_BUFFER_LIMIT) -> None:
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        self._limit = limit
        self._text = ""

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def snapshot(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    def append(self, data: str) -> str:
        """data 를 덧붙이고 잘라낸 뒤 새 snapshot 을 반환합니다."""
        if not data:
            return self._text
        combined = self._text + data
        if len(combined) > self._limit:
            combined = combined[-self._limit :]
        self._text = combined
        return combined

    def clear(self) -> None:
        self._text = ""

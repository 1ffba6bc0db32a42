from __future__ import annotations

import pytest

from termlink.core.connection.output_buffer import OutputBuffer
from termlink.core.dto.internal.common import ConnectionPolicy
from termlink.core.types import DEFAULT_OUTPUT_BUFFER_LIMIT


def test_append_returns_snapshot() -> None:
    buffer = OutputBuffer(limit=10)

    assert buffer.append("abc") == "abc"
    assert buffer.append("def") == "abcdef"
    assert len(buffer) == 6


def test_never_exceeds_limit_and_keeps_suffix() -> None:
    buffer = OutputBuffer(limit=5)

    for chunk in ("hello", " ", "world", "!"):
        snapshot = buffer.append(chunk)
        assert len(snapshot) <= 5

    assert buffer.snapshot == "orld!"


def test_snapshot_is_unaffected_by_later_appends() -> None:
    buffer = OutputBuffer(limit=100)
    before = buffer.append("one")

    buffer.append("two")

    assert before == "one"


def test_clear_and_empty_append() -> None:
    buffer = OutputBuffer(limit=4)
    buffer.append("data")

    assert buffer.append("") == "data"
    buffer.clear()
    assert buffer.snapshot == ""


def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        OutputBuffer(limit=0)


def test_default_limit_is_100k_characters() -> None:
    buffer = OutputBuffer()

    assert DEFAULT_OUTPUT_BUFFER_LIMIT == 100_000
    assert buffer.limit == 100_000
    assert ConnectionPolicy().output_buffer_limit == 100_000

    snapshot = buffer.append("a" * 100_000 + "tail")
    assert len(snapshot) == 100_000
    assert snapshot.endswith("tail")

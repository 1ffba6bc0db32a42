from __future__ import annotations

import pytest
from pydantic import ValidationError

from termlink.common.serde import from_json
from termlink.core.dto.io.messages import (
    ClosedMessage,
    ErrorMessage,
    OutputMessage,
    UnknownMessage,
    WsInputMessage,
    WsResizeMessage,
    parse_inbound,
)


def test_outbound_frames_are_compact_json() -> None:
    assert from_json(WsInputMessage(data="ls -la\n").to_wire()) == {
        "type": "input",
        "data": "ls -la\n",
    }
    assert from_json(WsResizeMessage(cols=80, rows=24).to_wire()) == {
        "type": "resize",
        "cols": 80,
        "rows": 24,
    }


def test_input_keeps_whitespace() -> None:
    assert WsInputMessage(data="  \t").data == "  \t"


@pytest.mark.parametrize("cols,rows", [(0, 24), (80, -1)])
def test_resize_requires_positive_dimensions(cols: int, rows: int) -> None:
    with pytest.raises(ValidationError):
        WsResizeMessage(cols=cols, rows=rows)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"type":"output","data":"hi"}', OutputMessage(data="hi")),
        ('{"type":"output"}', OutputMessage(data="")),
        ('{"type":"closed","reason":"exit 0"}', ClosedMessage(reason="exit 0")),
        ('{"type":"closed"}', ClosedMessage(reason=None)),
        ('{"type":"error","message":"boom"}', ErrorMessage(message="boom")),
        ('{"type":"error"}', ErrorMessage(message="Unknown error")),
        ('{"type":"pong","extra":1}', UnknownMessage(type="pong")),
        ('{"data":"no type"}', UnknownMessage(type=None)),
    ],
)
def test_parse_inbound_known_shapes(raw: str, expected: object) -> None:
    assert parse_inbound(raw) == expected


@pytest.mark.parametrize("raw", ["$ ls\r\n", "[1, 2]", "42", ""])
def test_non_object_frames_are_raw_output(raw: str) -> None:
    assert parse_inbound(raw) == OutputMessage(data=raw)


def test_binary_frames_are_decoded() -> None:
    assert parse_inbound('{"type":"output","data":"\xe2\x82\xac"}'.encode("latin-1")) == OutputMessage(
        data="€"
    )

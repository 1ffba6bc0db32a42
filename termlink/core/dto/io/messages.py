"""터미널 웹소켓 와이어 메시지 DTO

송신 (client → server):
    {"type": "input",  "data": "<keystrokes>"}
    {"type": "resize", "cols": <int>, "rows": <int>}

수신 (server → client):
    {"type": "output", "data": "<text>"}
    {"type": "closed", "reason": "<optional text>"}
    {"type": "error",  "message": "<text>"}
    JSON 이 아닌 텍스트 프레임은 원시 출력으로 취급합니다.
"""

from __future__ import annotations

from typing import Literal, TypeAlias

import orjson
from pydantic import BaseModel, ConfigDict, Field

from termlink.common.serde import from_json, to_text

# 터미널 출력은 공백이 의미를 가지므로 str_strip_whitespace 를 사용하지 않습니다.
OUTBOUND_CONFIG = ConfigDict(extra="forbid", frozen=True, validate_default=True)
INBOUND_CONFIG = ConfigDict(extra="ignore", frozen=True)


class WsInputMessage(BaseModel):
    """키 입력 전송"""

    type: Literal["input"] = "input"
    data: str

    model_config = OUTBOUND_CONFIG

    def to_wire(self) -> str:
        return to_text(self.model_dump())


class WsResizeMessage(BaseModel):
    """터미널 크기 변경"""

    type: Literal["resize"] = "resize"
    cols: int = Field(gt=0)
    rows: int = Field(gt=0)

    model_config = OUTBOUND_CONFIG

    def to_wire(self) -> str:
        return to_text(self.model_dump())


class OutputMessage(BaseModel):
    type: Literal["output"] = "output"
    data: str = ""

    model_config = INBOUND_CONFIG


class ClosedMessage(BaseModel):
    type: Literal["closed"] = "closed"
    reason: str | None = None

    model_config = INBOUND_CONFIG


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str = "Unknown error"

    model_config = INBOUND_CONFIG


class UnknownMessage(BaseModel):
    """type 이 없거나 알 수 없는 JSON 프레임"""

    type: str | None = None

    model_config = INBOUND_CONFIG


InboundMessage: TypeAlias = OutputMessage | ClosedMessage | ErrorMessage | UnknownMessage


def _text_or_none(value: object) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def parse_inbound(raw: str | bytes) -> InboundMessage:
    """수신 프레임 파싱 (관대한 정책)

    - JSON 이 아니거나 객체가 아닌 경우: 원시 텍스트를 OutputMessage 로
    - 알 수 없는 type: UnknownMessage
    - 필드 누락: 기본값 (output → "", error → "Unknown error")
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        payload = from_json(text)
    except orjson.JSONDecodeError:
        return OutputMessage(data=text)

    if not isinstance(payload, dict):
        return OutputMessage(data=text)

    msg_type = payload.get("type")
    match msg_type:
        case "output":
            return OutputMessage(data=_text_or_none(payload.get("data")) or "")
        case "closed":
            return ClosedMessage(reason=_text_or_none(payload.get("reason")))
        case "error":
            message = _text_or_none(payload.get("message"))
            return ErrorMessage(message=message if message is not None else "Unknown error")
        case _:
            return UnknownMessage(type=_text_or_none(msg_type))


__all__ = [
    "ClosedMessage",
    "ErrorMessage",
    "InboundMessage",
    "OutputMessage",
    "UnknownMessage",
    "WsInputMessage",
    "WsResizeMessage",
    "parse_inbound",
]

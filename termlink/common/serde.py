from collections import deque
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

import orjson

JSONDefault = Callable[[Any], Any]
Serializer = Callable[[Any], bytes]


def default_json_encoder(obj: Any) -> Any:
    """JSON 직렬화 헬퍼.

    - Decimal -> str
    - deque -> list
    - datetime -> ISO 8601
    - 그 외: str 로 폴백
    """
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, deque):
        return list(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def to_bytes(value: Any, default: JSONDefault | None = default_json_encoder) -> bytes:
    """객체를 UTF-8 JSON bytes(orjson)로 직렬화."""
    return orjson.dumps(value, default=default)


def to_text(value: Any, default: JSONDefault | None = default_json_encoder) -> str:
    """웹소켓 텍스트 프레임용 JSON 문자열"""
    return to_bytes(value, default).decode("utf-8")


def from_json(raw: str | bytes) -> Any:
    """JSON 역직렬화 (실패 시 orjson.JSONDecodeError)"""
    return orjson.loads(raw)

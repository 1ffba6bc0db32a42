from __future__ import annotations

import socket

import pytest
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from websockets.exceptions import InvalidURI

from termlink.common.exceptions.exception_rule import (
    classify_exception,
    classify_status,
    classify_transport_fault,
    default_condition_mapper,
    status_of,
)
from termlink.core.dto.internal.errors import (
    ApiError,
    AppErrorException,
    AuthError,
    NetworkError,
    NotFoundError,
    ServerError,
    StorageError,
    TransportError,
    UnknownError,
    ValidationError,
)
from termlink.core.types import RetryCondition
from tests.factory_builders import build_invalid_status


class _HttpError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class _Port(BaseModel):
    port: int


def _pydantic_error() -> PydanticValidationError:
    try:
        _Port(port="not-a-number")  # type: ignore[arg-type]
    except PydanticValidationError as e:
        return e
    raise AssertionError("validation should have failed")


def test_app_error_exception_passes_through() -> None:
    error = AuthError(message="nope", code=401)

    assert classify_exception(AppErrorException(error)) is error


def test_dns_failure_means_no_connection() -> None:
    error = classify_exception(socket.gaierror("Name or service not known"))

    assert isinstance(error, NetworkError)
    assert error.is_no_connection


def test_timeout_is_network_timeout() -> None:
    error = classify_exception(TimeoutError())

    assert error == NetworkError(message="Connection timed out", is_timeout=True)


def test_generic_io_is_network_error() -> None:
    error = classify_exception(ConnectionRefusedError("refused"))

    assert isinstance(error, NetworkError)
    assert not error.is_timeout
    assert not error.is_no_connection


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (401, AuthError),
        (403, AuthError),
        (404, NotFoundError),
        (400, ValidationError),
        (422, ValidationError),
        (500, ServerError),
        (503, ServerError),
        (409, ApiError),
    ],
)
def test_status_codes_map_to_error_kinds(status: int, expected: type) -> None:
    assert isinstance(classify_status(status), expected)
    assert isinstance(classify_exception(_HttpError(status)), expected)


def test_status_of_reads_response_status_code() -> None:
    assert status_of(build_invalid_status(404)) == 404
    assert status_of(_HttpError(502)) == 502
    assert status_of(ValueError("x")) is None


def test_pydantic_error_becomes_validation_error_with_field() -> None:
    error = classify_exception(_pydantic_error())

    assert isinstance(error, ValidationError)
    assert error.field == "port"


def test_invalid_uri_is_validation_error() -> None:
    error = classify_exception(InvalidURI("nope://", "scheme isn't ws or wss"))

    assert isinstance(error, ValidationError)
    assert error.field == "url"


def test_redis_error_is_storage_error() -> None:
    assert isinstance(classify_exception(RedisConnectionError("down")), StorageError)


def test_unclassifiable_is_unknown() -> None:
    error = classify_exception(RuntimeError("weird"))

    assert isinstance(error, UnknownError)
    assert error.message == "weird"


@pytest.mark.parametrize(
    ("status", "expected", "terminal"),
    [
        (401, AuthError, True),
        (403, AuthError, True),
        (404, NotFoundError, True),
        (410, TransportError, True),
        (500, ServerError, False),
        (502, ServerError, False),
    ],
)
def test_transport_fault_by_handshake_status(status: int, expected: type, terminal: bool) -> None:
    error, is_terminal = classify_transport_fault(build_invalid_status(status))

    assert isinstance(error, expected)
    assert is_terminal is terminal


def test_rejected_upgrade_cannot_reconnect() -> None:
    error, terminal = classify_transport_fault(build_invalid_status(400))

    assert terminal
    assert isinstance(error, TransportError)
    assert error.can_reconnect is False


@pytest.mark.parametrize(
    "exc",
    [EOFError(), TimeoutError(), ConnectionResetError("reset"), RuntimeError("odd")],
)
def test_other_transport_faults_are_transient(exc: BaseException) -> None:
    _, terminal = classify_transport_fault(exc)

    assert terminal is False


def test_default_condition_mapper() -> None:
    assert default_condition_mapper(TimeoutError()) is RetryCondition.TIMEOUT
    assert default_condition_mapper(OSError("x")) is RetryCondition.NETWORK_ERROR
    assert default_condition_mapper(_HttpError(503)) is RetryCondition.SERVER_ERROR
    assert default_condition_mapper(_HttpError(429)) is RetryCondition.RATE_LIMITED
    assert default_condition_mapper(_HttpError(401)) is RetryCondition.UNAUTHORIZED
    assert default_condition_mapper(_HttpError(404)) is None
    assert default_condition_mapper(ValueError("x")) is None

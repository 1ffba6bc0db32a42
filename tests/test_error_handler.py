from __future__ import annotations

from collections.abc import Iterator

import pytest

from termlink.common.events import ErrorEvent, EventBus, FatalErrorEvent
from termlink.common.exceptions.error_handler import ErrorHandler, is_fatal_error
from termlink.core.dto.internal.errors import (
    AppErrorException,
    AuthError,
    NetworkError,
    StorageError,
)
from termlink.core.dto.internal.resource import Error, Success


@pytest.fixture(autouse=True)
def _clean_event_bus() -> Iterator[None]:
    EventBus.clear()
    yield
    EventBus.clear()


def _collect(event_type: type) -> list[object]:
    events: list[object] = []

    async def handler(event: object) -> None:
        events.append(event)

    EventBus.on(event_type, handler)
    return events


def test_fatal_errors() -> None:
    assert is_fatal_error(AuthError(code=401))
    assert is_fatal_error(StorageError())
    assert not is_fatal_error(AuthError(code=403))
    assert not is_fatal_error(NetworkError())


@pytest.mark.asyncio
async def test_handle_classifies_and_broadcasts() -> None:
    errors = _collect(ErrorEvent)

    error = await ErrorHandler().handle(TimeoutError(), context="load")

    assert isinstance(error, NetworkError)
    assert error.is_timeout
    assert errors == [ErrorEvent(error=error, context="load", timestamp=errors[0].timestamp)]


@pytest.mark.asyncio
async def test_silent_handle_skips_global_channel() -> None:
    errors = _collect(ErrorEvent)

    await ErrorHandler().handle(OSError("x"), silent=True)

    assert errors == []


@pytest.mark.asyncio
async def test_fatal_errors_go_to_fatal_channel() -> None:
    fatal = _collect(FatalErrorEvent)

    await ErrorHandler().handle(AppErrorException(AuthError(code=401)), silent=True)

    assert len(fatal) == 1


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_handle() -> None:
    async def broken(_event: object) -> None:
        raise RuntimeError("subscriber bug")

    EventBus.on(ErrorEvent, broken)
    errors = _collect(ErrorEvent)

    await ErrorHandler().handle(OSError("x"))

    assert len(errors) == 1


@pytest.mark.asyncio
async def test_run_catching_wraps_outcome() -> None:
    handler = ErrorHandler()

    async def ok() -> int:
        return 1

    async def fail() -> int:
        raise ConnectionRefusedError("refused")

    assert await handler.run_catching(ok) == Success(1)
    result = await handler.run_catching(fail, silent=True)
    assert isinstance(result, Error)
    assert isinstance(result.error, NetworkError)

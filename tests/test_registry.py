from __future__ import annotations

from collections.abc import Iterator

import pytest

from termlink.application.connection_registry import ConnectionRegistry
from termlink.common.events import ConnectionStateEvent, ErrorEvent, EventBus
from termlink.core.dto.internal.errors import NotFoundError
from termlink.core.dto.internal.state import Connected, Disconnected
from tests.factory_builders import (
    FakeOpener,
    build_config,
    build_invalid_status,
    build_manager,
    eventually,
)


@pytest.fixture(autouse=True)
def _clean_event_bus() -> Iterator[None]:
    EventBus.clear()
    yield
    EventBus.clear()


def _build_registry(opener: FakeOpener) -> ConnectionRegistry:
    return ConnectionRegistry(manager_factory=lambda _sid: build_manager(opener))


def _collect(event_type: type) -> list:
    events: list = []

    async def handler(event: object) -> None:
        events.append(event)

    EventBus.on(event_type, handler)
    return events


@pytest.mark.asyncio
async def test_connect_tracks_session_and_relays_states() -> None:
    states = _collect(ConnectionStateEvent)
    registry = _build_registry(FakeOpener())

    manager = registry.connect(build_config(session_id="s1"))
    await manager.wait_for_state(lambda s: s.is_connected, timeout=2)
    await eventually(lambda: any(isinstance(e.state, Connected) for e in states))

    assert registry.get("s1") is manager
    assert registry.get_or_create("s1") is manager
    assert registry.is_connected("s1")
    assert registry.active_sessions() == ["s1"]
    assert registry.sessions() == {"s1": Connected(session_id="s1")}
    assert all(e.session_id == "s1" for e in states)

    await registry.shutdown_all()


@pytest.mark.asyncio
async def test_terminal_failure_is_published_as_error_event() -> None:
    errors = _collect(ErrorEvent)
    registry = _build_registry(FakeOpener(build_invalid_status(404)))

    registry.connect(build_config(session_id="gone"))
    await eventually(lambda: bool(errors))

    assert isinstance(errors[0].error, NotFoundError)
    assert errors[0].context == "session:gone"
    assert not registry.is_connected("gone")

    await registry.shutdown_all()


@pytest.mark.asyncio
async def test_disconnect_and_remove() -> None:
    registry = _build_registry(FakeOpener())
    manager = registry.connect(build_config(session_id="s1"))
    await manager.wait_for_state(lambda s: s.is_connected, timeout=2)

    assert registry.disconnect("missing") is False
    assert registry.disconnect("s1") is True
    await manager.wait_for_state(lambda s: s == Disconnected(), timeout=2)

    assert await registry.remove("s1") is True
    assert await registry.remove("s1") is False
    assert registry.get("s1") is None
    assert manager.is_destroyed


@pytest.mark.asyncio
async def test_destroyed_manager_is_replaced() -> None:
    registry = _build_registry(FakeOpener())
    first = registry.get_or_create("s1")
    await first.aclose()

    second = registry.get_or_create("s1")

    assert second is not first
    await registry.shutdown_all()
    assert registry.sessions() == {}

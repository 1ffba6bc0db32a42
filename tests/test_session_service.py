from __future__ import annotations

from collections.abc import Iterator

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from termlink.application.connection_registry import ConnectionRegistry
from termlink.application.session_service import SessionService, storage_condition_mapper
from termlink.common.events import EventBus
from termlink.core.connection.services.retry_policy import RetryPolicy
from termlink.core.dto.internal.errors import NotFoundError, StorageError, ValidationError
from termlink.core.dto.internal.resource import Error, Success
from termlink.core.types import RetryCondition
from termlink.infra.storage.profile_store import ConnectionProfile, InMemoryProfileStore
from tests.factory_builders import FakeOpener, build_manager


@pytest.fixture(autouse=True)
def _clean_event_bus() -> Iterator[None]:
    EventBus.clear()
    yield
    EventBus.clear()


class _FlakyStore(InMemoryProfileStore):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.get_calls = 0

    async def get(self, profile_id: str) -> ConnectionProfile | None:
        self.get_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise RedisConnectionError("redis unavailable")
        return await super().get(profile_id)


def _build_service(
    store: InMemoryProfileStore, opener: FakeOpener
) -> tuple[SessionService, ConnectionRegistry]:
    registry = ConnectionRegistry(manager_factory=lambda _sid: build_manager(opener))
    service = SessionService(
        store,
        registry,
        retry_policy=RetryPolicy(max_attempts=3, initial_delay_ms=0, max_delay_ms=0),
    )
    return service, registry


@pytest.mark.asyncio
async def test_open_session_connects_with_profile_credentials() -> None:
    opener = FakeOpener()
    service, registry = _build_service(InMemoryProfileStore(), opener)

    added = await service.add_profile("lab", "https://lab.example.com:8443/", api_token="tok")
    assert isinstance(added, Success)

    result = await service.open_session(added.data.id, "s42")
    assert isinstance(result, Success)
    await result.data.wait_for_state(lambda s: s.is_connected, timeout=2)

    url, headers, _ = opener.calls[0]
    assert url == "wss://lab.example.com:8443/api/terminals/s42/ws"
    assert headers == {"Authorization": "Bearer tok"}
    assert registry.is_connected("s42")

    assert service.close_session("s42") is True
    await registry.shutdown_all()


@pytest.mark.asyncio
async def test_open_session_with_unknown_profile_is_not_found() -> None:
    service, registry = _build_service(InMemoryProfileStore(), FakeOpener())

    result = await service.open_session("missing", "s1")

    assert isinstance(result, Error)
    assert isinstance(result.error, NotFoundError)
    assert result.error.resource_type == "Profile"
    assert registry.get("s1") is None


@pytest.mark.asyncio
async def test_invalid_profile_url_is_validation_error() -> None:
    service, _ = _build_service(InMemoryProfileStore(), FakeOpener())

    result = await service.add_profile("bad", "ftp://host")

    assert isinstance(result, Error)
    assert isinstance(result.error, ValidationError)
    assert result.error.field == "url"


@pytest.mark.asyncio
async def test_transient_store_errors_are_retried() -> None:
    store = _FlakyStore(failures=2)
    profile = ConnectionProfile(name="lab", url="http://lab:8080")
    await store.put(profile)
    service, registry = _build_service(store, FakeOpener())

    result = await service.open_session(profile.id, "s1")

    assert isinstance(result, Success)
    assert store.get_calls == 3
    await registry.shutdown_all()


@pytest.mark.asyncio
async def test_persistent_store_errors_become_storage_error() -> None:
    store = _FlakyStore(failures=10)
    service, _ = _build_service(store, FakeOpener())

    result = await service.open_session("any", "s1")

    assert isinstance(result, Error)
    assert isinstance(result.error, StorageError)
    assert store.get_calls == 3


@pytest.mark.asyncio
async def test_list_and_remove_profiles() -> None:
    service, _ = _build_service(InMemoryProfileStore(), FakeOpener())
    first = (await service.add_profile("a", "http://a")).get_or_raise()
    await service.add_profile("b", "http://b")

    listed = await service.list_profiles()
    assert [p.name for p in listed.get_or_raise()] == ["a", "b"]

    assert (await service.remove_profile(first.id)).get_or_raise() is True
    assert (await service.remove_profile(first.id)).get_or_raise() is False


def test_storage_condition_mapper() -> None:
    assert storage_condition_mapper(RedisConnectionError("x")) is RetryCondition.NETWORK_ERROR
    assert storage_condition_mapper(ValueError("x")) is None

from __future__ import annotations

from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from termlink.config.init_infra import init_redis
from termlink.config.settings import RedisSettings
from termlink.core.dto.internal.errors import AppErrorException, StorageError
from termlink.infra.cache import cache_client
from termlink.infra.cache.cache_client import RedisConnectionManager


class FakeRedisClient:
    def __init__(self, *, reachable: bool = True) -> None:
        self.reachable = reachable
        self.closed = False

    async def ping(self) -> bool:
        if not self.reachable:
            raise RedisConnectionError("connection refused")
        return True

    async def aclose(self) -> None:
        self.closed = True


def _install(monkeypatch: pytest.MonkeyPatch, client: FakeRedisClient) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def from_url(url: str, **kwargs: Any) -> FakeRedisClient:
        calls.append({"url": url, **kwargs})
        return client

    monkeypatch.setattr(cache_client.redis, "from_url", from_url)
    return calls


def test_display_url_masks_password() -> None:
    manager = RedisConnectionManager(RedisSettings(host="cache", port=6380, password="pw", ssl=True))
    assert manager.display_url == "rediss://:***@cache:6380/0"


def test_client_before_open_raises() -> None:
    manager = RedisConnectionManager(RedisSettings())
    assert not manager.is_open
    with pytest.raises(RuntimeError):
        _ = manager.client


@pytest.mark.asyncio
async def test_open_pings_and_reuses_client(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeRedisClient()
    calls = _install(monkeypatch, fake)
    manager = RedisConnectionManager(RedisSettings(host="cache", connection_timeout=3))

    assert await manager.open() is fake
    assert await manager.open() is fake
    assert len(calls) == 1
    assert calls[0]["url"] == "redis://cache:6379/0"
    assert calls[0]["socket_timeout"] == 3
    assert calls[0]["decode_responses"] is True
    assert manager.client is fake

    await manager.close()
    assert fake.closed
    assert not manager.is_open


@pytest.mark.asyncio
async def test_unreachable_server_raises_storage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeRedisClient(reachable=False)
    _install(monkeypatch, fake)
    manager = RedisConnectionManager(RedisSettings())

    with pytest.raises(AppErrorException) as exc_info:
        await manager.open()

    assert isinstance(exc_info.value.error, StorageError)
    assert isinstance(exc_info.value.error.cause, RedisConnectionError)
    assert fake.closed
    assert not manager.is_open


@pytest.mark.asyncio
async def test_init_redis_closes_on_exit(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeRedisClient()
    _install(monkeypatch, fake)

    async with init_redis(RedisSettings()) as manager:
        assert manager.client is fake
        assert not fake.closed

    assert fake.closed

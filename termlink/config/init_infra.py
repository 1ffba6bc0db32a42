from contextlib import asynccontextmanager
from typing import AsyncIterator

from termlink.config.settings import ConnectivitySettings, RedisSettings
from termlink.core.connection.connectivity import (
    ConnectivitySource,
    ManualConnectivity,
    ProbeConnectivityMonitor,
)
from termlink.infra.cache.cache_client import RedisConnectionManager


@asynccontextmanager
async def init_redis(settings: RedisSettings) -> AsyncIterator[RedisConnectionManager]:
    """Redis 초기화 및 정리를 위한 async context manager"""
    manager = RedisConnectionManager(settings)
    await manager.open()
    try:
        yield manager
    finally:
        await manager.close()


@asynccontextmanager
async def init_connectivity(
    settings: ConnectivitySettings,
) -> AsyncIterator[ConnectivitySource]:
    """연결성 감시 초기화 및 정리 (비활성화 시 항상 AVAILABLE)"""
    if not settings.enabled:
        yield ManualConnectivity()
        return

    monitor = ProbeConnectivityMonitor(settings)
    await monitor.start()
    yield monitor
    await monitor.stop()

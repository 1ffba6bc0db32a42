from __future__ import annotations

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from termlink.common.logger import PipelineLogger
from termlink.config.settings import RedisSettings
from termlink.core.dto.internal.errors import AppErrorException, StorageError

logger = PipelineLogger.get_logger("redis", "cache_client")


class RedisConnectionManager:
    """프로필 저장소용 Redis 연결 수명 관리

    DI Resource(init_redis)가 open()/close() 를 호출하며,
    open() 전에 client 에 접근하면 RuntimeError 가 발생합니다.
    """

    def __init__(self, settings: RedisSettings) -> None:
        self.settings = settings
        self._redis: Redis | None = None

    @property
    def is_open(self) -> bool:
        return self._redis is not None

    @property
    def display_url(self) -> str:
        """비밀번호를 가린 접속 주소 (로그용)"""
        scheme = "rediss" if self.settings.ssl else "redis"
        auth = ":***@" if self.settings.password else ""
        return f"{scheme}://{auth}{self.settings.host}:{self.settings.port}/{self.settings.db}"

    async def open(self) -> Redis:
        """연결 생성 후 PING 으로 확인

        Raises:
            AppErrorException: StorageError (서버 도달 불가)
        """
        if self._redis is not None:
            return self._redis

        client = redis.from_url(
            self.settings.url,
            socket_timeout=self.settings.connection_timeout,
            socket_connect_timeout=self.settings.connection_timeout,
            decode_responses=True,
        )
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            logger.error(f"Redis 연결 실패: {self.display_url} - {e!r}")
            raise AppErrorException(
                StorageError(message=f"Profile storage unavailable ({self.display_url})", cause=e)
            ) from e

        self._redis = client
        logger.info(f"Redis 연결 성공: {self.display_url}")
        return client

    async def close(self) -> None:
        if self._redis is None:
            return
        client, self._redis = self._redis, None
        await client.aclose()
        logger.info("Redis 연결 종료")

    @property
    def client(self) -> Redis:
        if self._redis is None:
            raise RuntimeError("RedisConnectionManager.open() 을 먼저 호출하세요")
        return self._redis

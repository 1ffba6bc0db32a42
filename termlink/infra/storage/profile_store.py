"""연결 프로필(서버 접속 정보) 저장소

- ConnectionProfile: 서버 URL 과 자격 증명 (pydantic 모델)
- ProfileStore: get/put/delete/list 프로토콜
- RedisProfileStore: Redis 기반 구현 (키: {prefix}:{id}, 인덱스: {prefix}:ids)
- InMemoryProfileStore: 프로세스 내 구현 (테스트, Redis 미사용 환경)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Protocol
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator
from redis.asyncio import Redis

from termlink.common.logger import PipelineLogger
from termlink.common.serde import from_json, to_text
from termlink.config.settings import redis_settings
from termlink.core.dto.internal.common import ConnectionConfig
from termlink.core.types import ProfileId, SessionId

logger = PipelineLogger.get_logger("profile_store", "storage")


class ConnectionProfile(BaseModel):
    """서버 접속 프로필"""

    id: ProfileId = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=1)
    url: str
    username: str = ""
    password: str = Field(default="", repr=False)
    api_token: str | None = Field(default=None, repr=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        url = value.strip().rstrip("/")
        if not url:
            raise ValueError("URL cannot be empty")
        if not url.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        parts = urlsplit(url)
        if not parts.hostname:
            raise ValueError("URL must have a valid host")
        try:
            port = parts.port
        except ValueError as e:
            raise ValueError(f"Port must be between 1 and 65535: {e}") from e
        if port is not None and not 1 <= port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {port}")
        return url

    def to_config(self, session_id: SessionId) -> ConnectionConfig:
        return ConnectionConfig(
            base_url=self.url,
            session_id=session_id,
            username=self.username,
            password=self.password,
            api_token=self.api_token,
        )


class ProfileStore(Protocol):
    async def get(self, profile_id: ProfileId) -> ConnectionProfile | None: ...

    async def put(self, profile: ConnectionProfile) -> None: ...

    async def delete(self, profile_id: ProfileId) -> bool: ...

    async def list(self) -> list[ConnectionProfile]: ...


class InMemoryProfileStore:
    def __init__(self) -> None:
        self._profiles: dict[ProfileId, ConnectionProfile] = {}

    async def get(self, profile_id: ProfileId) -> ConnectionProfile | None:
        return self._profiles.get(profile_id)

    async def put(self, profile: ConnectionProfile) -> None:
        self._profiles[profile.id] = profile

    async def delete(self, profile_id: ProfileId) -> bool:
        return self._profiles.pop(profile_id, None) is not None

    async def list(self) -> list[ConnectionProfile]:
        return sorted(self._profiles.values(), key=lambda p: p.created_at)


class RedisProfileStore:
    """Redis 기반 프로필 저장소 (JSON 문자열 값)"""

    def __init__(self, client: Redis, key_prefix: str | None = None) -> None:
        self._redis = client
        self._prefix = key_prefix or redis_settings.key_prefix

    def _key(self, profile_id: ProfileId) -> str:
        return f"{self._prefix}:{profile_id}"

    @property
    def _index_key(self) -> str:
        return f"{self._prefix}:ids"

    async def get(self, profile_id: ProfileId) -> ConnectionProfile | None:
        raw = await self._redis.get(self._key(profile_id))
        if raw is None:
            return None
        return ConnectionProfile.model_validate(from_json(raw))

    async def put(self, profile: ConnectionProfile) -> None:
        payload = to_text(profile.model_dump(mode="json"))
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key(profile.id), payload)
            pipe.sadd(self._index_key, profile.id)
            await pipe.execute()
        logger.debug(f"프로필 저장: {profile.name} -> {profile.url}")

    async def delete(self, profile_id: ProfileId) -> bool:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(profile_id))
            pipe.srem(self._index_key, profile_id)
            deleted, _ = await pipe.execute()
        return bool(deleted)

    async def list(self) -> list[ConnectionProfile]:
        ids = sorted(await self._redis.smembers(self._index_key))
        if not ids:
            return []
        raws = await self._redis.mget([self._key(profile_id) for profile_id in ids])
        profiles = [
            ConnectionProfile.model_validate(from_json(raw)) for raw in raws if raw is not None
        ]
        return sorted(profiles, key=lambda p: p.created_at)


__all__ = [
    "ConnectionProfile",
    "InMemoryProfileStore",
    "ProfileStore",
    "RedisProfileStore",
]

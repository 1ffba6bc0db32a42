"""세션 서비스

프로필 ID → ConnectionConfig → 레지스트리 연결.
모든 공개 연산은 Resource 를 반환하며 예외를 밖으로 던지지 않습니다.
"""

from __future__ import annotations

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from termlink.application.connection_registry import ConnectionRegistry
from termlink.common.exceptions.error_handler import ErrorHandler
from termlink.common.exceptions.exception_rule import default_condition_mapper
from termlink.common.logger import PipelineLogger
from termlink.core.connection.manager import ConnectionManager
from termlink.core.connection.services.retry_policy import RetryPolicy, with_retry
from termlink.core.dto.internal.errors import AppErrorException, NotFoundError
from termlink.core.dto.internal.resource import Resource
from termlink.core.types import ProfileId, RetryCondition, SessionId
from termlink.infra.storage.profile_store import ConnectionProfile, ProfileStore

logger = PipelineLogger.get_logger("session_service", "app")


def storage_condition_mapper(exc: BaseException) -> RetryCondition | None:
    """Redis 일시 장애는 네트워크 오류로 간주해 재시도"""
    if isinstance(exc, (RedisConnectionError, RedisTimeoutError)):
        return RetryCondition.NETWORK_ERROR
    return default_condition_mapper(exc)


class SessionService:
    def __init__(
        self,
        store: ProfileStore,
        registry: ConnectionRegistry,
        error_handler: ErrorHandler | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._errors = error_handler or ErrorHandler()
        self._retry_policy = retry_policy or RetryPolicy.from_settings()

    async def add_profile(
        self,
        name: str,
        url: str,
        username: str = "",
        password: str = "",
        api_token: str | None = None,
    ) -> Resource[ConnectionProfile]:
        async def _add() -> ConnectionProfile:
            profile = ConnectionProfile(
                name=name,
                url=url,
                username=username,
                password=password,
                api_token=api_token,
            )
            await self._store.put(profile)
            logger.info(f"프로필 추가: {profile.name} -> {profile.url}")
            return profile

        return await self._errors.run_catching(_add, context="add_profile")

    async def list_profiles(self) -> Resource[list[ConnectionProfile]]:
        return await self._errors.run_catching(
            lambda: with_retry(
                lambda _attempt: self._store.list(),
                self._retry_policy,
                storage_condition_mapper,
            ),
            context="list_profiles",
        )

    async def remove_profile(self, profile_id: ProfileId) -> Resource[bool]:
        return await self._errors.run_catching(
            lambda: self._store.delete(profile_id), context="remove_profile"
        )

    async def _load_profile(self, profile_id: ProfileId) -> ConnectionProfile:
        profile = await with_retry(
            lambda _attempt: self._store.get(profile_id),
            self._retry_policy,
            storage_condition_mapper,
        )
        if profile is None:
            raise AppErrorException(
                NotFoundError(
                    message=f"Profile {profile_id} not found",
                    resource_type="Profile",
                    resource_id=profile_id,
                )
            )
        return profile

    async def open_session(
        self, profile_id: ProfileId, session_id: SessionId
    ) -> Resource[ConnectionManager]:
        """프로필로 원격 세션 연결을 시작합니다 (연결 완료는 매니저 상태로 관찰)."""

        async def _open() -> ConnectionManager:
            profile = await self._load_profile(profile_id)
            manager = self._registry.connect(profile.to_config(session_id))
            logger.info(f"세션 연결 시작: profile={profile.name} session={session_id}")
            return manager

        return await self._errors.run_catching(_open, context="open_session")

    def close_session(self, session_id: SessionId) -> bool:
        return self._registry.disconnect(session_id)


__all__ = ["SessionService", "storage_condition_mapper"]

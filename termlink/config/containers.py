"""
Dependency Injection Containers

아키텍처:
- InfrastructureContainer: Redis, 연결성 감시, 프로필 저장소 + Settings 주입
- ApplicationContainer: 최상위 컨테이너 (레지스트리, 세션 서비스)

주요 패턴:
- Resource Provider: async init/shutdown 자동 관리
- Object Provider: settings.py 싱글톤 주입 (DI)

Usage:
    container = ApplicationContainer()
    registry = await container.registry()
    service = await container.session_service()  # Redis 초기화 포함
    ...
    await container.shutdown_resources()
"""

from dependency_injector import containers, providers

from termlink.application.connection_registry import ConnectionRegistry
from termlink.application.session_service import SessionService
from termlink.common.exceptions.circuit_breaker import CircuitBreakerConfig
from termlink.common.exceptions.error_handler import ErrorHandler
from termlink.config.init_infra import init_connectivity, init_redis
from termlink.config.settings import (
    connectivity_settings,
    network_settings,
    redis_settings,
    websocket_settings,
)
from termlink.core.connection.services.retry_policy import RetryPolicy
from termlink.core.dto.internal.common import ConnectionPolicy
from termlink.infra.storage.profile_store import RedisProfileStore


# ========================================
# 1. Infrastructure Container (인프라 레이어)
# ========================================
class InfrastructureContainer(containers.DeclarativeContainer):
    """인프라 컨테이너

    - Redis, 연결성 감시 등 인프라 컴포넌트 관리
    - Settings: settings.py 싱글톤 주입 (DI)
    """

    # ===== Settings 주입 (DI) =====
    redis_config = providers.Object(redis_settings)
    websocket_config = providers.Object(websocket_settings)
    network_config = providers.Object(network_settings)
    connectivity_config = providers.Object(connectivity_settings)

    redis_manager = providers.Resource(init_redis, settings=redis_config)
    connectivity = providers.Resource(init_connectivity, settings=connectivity_config)

    profile_store = providers.Singleton(
        RedisProfileStore,
        client=redis_manager.provided.client,
        key_prefix=redis_config.provided.key_prefix,
    )


# ========================================
# 2. Application Container (최상위)
# ========================================
class ApplicationContainer(containers.DeclarativeContainer):
    """애플리케이션 최상위 컨테이너

    Redis 는 session_service(프로필 기반 접속)를 요청할 때만 초기화됩니다.
    """

    infra = providers.Container(InfrastructureContainer)

    connection_policy = providers.Singleton(
        ConnectionPolicy.from_settings, settings=infra.websocket_config
    )
    breaker_config = providers.Singleton(
        CircuitBreakerConfig.from_settings, settings=infra.network_config
    )
    retry_policy = providers.Singleton(
        RetryPolicy.from_settings, settings=infra.network_config
    )

    error_handler = providers.Singleton(ErrorHandler)

    registry = providers.Singleton(
        ConnectionRegistry,
        policy=connection_policy,
        connectivity=infra.connectivity,
        breaker_config=breaker_config,
    )

    session_service = providers.Singleton(
        SessionService,
        store=infra.profile_store,
        registry=registry,
        error_handler=error_handler,
        retry_policy=retry_policy,
    )

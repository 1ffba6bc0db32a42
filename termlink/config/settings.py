"""통합 Settings 모듈 - 환경변수 기반

이 모듈의 역할:
    1. 코드에 합리적인 기본값 제공
    2. 환경변수로 오버라이드 (우선순위 높음)
    3. 타입 안전성 보장 (Pydantic 자동 검증)

설정 우선순위:
    1. 환경변수 (최우선) - export WS_RECONNECT_MAX_ATTEMPTS=...
    2. .env 파일 - config/.env
    3. 코드 기본값 (settings.py 내부)

사용 예시:
    # 개발 환경 (기본값 사용)
    python main.py --url http://localhost:8080 --session abc

    # 모바일 회선처럼 불안정한 환경 (재접속 여유 확대)
    export WS_RECONNECT_MAX_ATTEMPTS=20
    export WS_RECONNECT_MAX_DELAY_MS=60000
    python main.py ...
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 설정 파일 경로
config_dir = Path(__file__).parent


def env_settings(prefix: str) -> SettingsConfigDict:
    """.env + 환경변수 통합 설정

    Args:
        prefix: 환경변수 접두사 (예: WS_, REDIS_)

    Returns:
        Pydantic 설정 딕셔너리
    """
    return SettingsConfigDict(
        env_prefix=prefix,
        env_file=config_dir / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class AppSettings(BaseSettings):
    """애플리케이션 일반 설정

    환경변수 오버라이드:
        APP_ENVIRONMENT: 실행 환경 (dev, prod, test) (기본: dev)
        APP_DEBUG: 디버그 모드 (기본: false)
    """

    environment: str = "dev"
    debug: bool = False

    model_config = env_settings("APP_")


class LoggingSettings(BaseSettings):
    """로깅 설정

    환경변수 오버라이드:
        LOG_LEVEL: 로깅 레벨 (기본: INFO)
        LOG_TO_FILE: 파일 로깅 여부 (기본: false)
        LOG_DIR: 로그 디렉토리 (기본: logs)
    """

    level: str = "INFO"
    to_file: bool = False
    dir: str = "logs"

    model_config = env_settings("LOG_")


class WebsocketSettings(BaseSettings):
    """WebSocket 설정 (환경변수 기반)

    환경변수 오버라이드 (타이밍 설정은 초 단위, *_MS 는 밀리초):
        WS_PING_INTERVAL: 핑 전송 간격 (기본: 30초, 0 이하이면 비활성화)
        WS_HEARTBEAT_TIMEOUT: Pong 대기 타임아웃 (기본: 10초)
        WS_HEARTBEAT_FAIL_LIMIT: 하트비트 실패 허용 횟수 (기본: 3회)
        WS_RECEIVE_IDLE_TIMEOUT: 수신 정지 워치독 타임아웃 (기본: 0, 비활성화)
        WS_OPEN_TIMEOUT: 핸드셰이크 타임아웃 (기본: 10초)
        WS_RECONNECT_INITIAL_DELAY_MS: 첫 재접속 대기 (기본: 1000ms)
        WS_RECONNECT_MAX_DELAY_MS: 재접속 대기 상한 (기본: 30000ms)
        WS_RECONNECT_MULTIPLIER: 지수 백오프 배수 (기본: 2.0)
        WS_RECONNECT_MAX_ATTEMPTS: 재연결 최대 시도 횟수 (기본: 10회)
        WS_OUTPUT_BUFFER_LIMIT: 출력 버퍼 최대 문자 수 (기본: 100000)
        WS_TERMINAL_PATH: 세션 WebSocket 경로 템플릿
    """

    ping_interval: float = 30.0
    heartbeat_timeout: float = 10.0
    heartbeat_fail_limit: int = 3
    receive_idle_timeout: float = 0.0
    open_timeout: float = 10.0
    reconnect_initial_delay_ms: int = 1_000
    reconnect_max_delay_ms: int = 30_000
    reconnect_multiplier: float = Field(default=2.0, gt=1.0)
    reconnect_max_attempts: int = Field(default=10, ge=1)
    output_buffer_limit: int = Field(default=100_000, gt=0)
    terminal_path: str = "/api/terminals/{session_id}/ws"

    model_config = env_settings("WS_")


class NetworkSettings(BaseSettings):
    """단발성 요청(REST 등)용 재시도/서킷브레이커 설정

    환경변수 오버라이드:
        NET_API_MAX_ATTEMPTS: API 재시도 최대 횟수 (기본: 3회)
        NET_API_INITIAL_DELAY_MS: API 첫 재시도 대기 (기본: 1000ms)
        NET_API_MAX_DELAY_MS: API 재시도 대기 상한 (기본: 5000ms)
        NET_CIRCUIT_BREAKER_THRESHOLD: 서킷 오픈 연속 실패 수 (기본: 5)
        NET_CIRCUIT_BREAKER_RESET_SECONDS: 하프오픈 전환 시간 (기본: 30초)
    """

    api_max_attempts: int = Field(default=3, ge=1)
    api_initial_delay_ms: int = 1_000
    api_max_delay_ms: int = 5_000
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    circuit_breaker_reset_seconds: float = 30.0

    model_config = env_settings("NET_")


class ConnectivitySettings(BaseSettings):
    """네트워크 연결성 감시 설정

    환경변수 오버라이드:
        CONNECTIVITY_ENABLED: 감시 활성화 여부 (기본: true)
        CONNECTIVITY_PROBE_URL: 도달성 확인 URL (기본: https://www.google.com/generate_204)
        CONNECTIVITY_PROBE_INTERVAL: 확인 주기 (기본: 5초)
        CONNECTIVITY_PROBE_TIMEOUT: 확인 타임아웃 (기본: 3초)
    """

    enabled: bool = True
    probe_url: str = "https://www.google.com/generate_204"
    probe_interval: float = 5.0
    probe_timeout: float = 3.0

    model_config = env_settings("CONNECTIVITY_")


class RedisSettings(BaseSettings):
    """Redis 설정 (연결 프로필 저장소)

    환경변수 오버라이드:
        REDIS_HOST: Redis 호스트 (기본: localhost)
        REDIS_PORT: Redis 포트 (기본: 6379)
        REDIS_DB: Redis DB 번호 (기본: 0)
        REDIS_PASSWORD: Redis 비밀번호 (보안상 환경변수 권장)
        REDIS_SSL: SSL 사용 여부 (기본: false)
        REDIS_CONNECTION_TIMEOUT: 연결 타임아웃 (기본: 10초)
        REDIS_KEY_PREFIX: 프로필 키 접두사 (기본: termlink:profile)
    """

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None  # 선택사항 (환경변수로만)
    ssl: bool = False
    connection_timeout: int = 10
    key_prefix: str = "termlink:profile"

    model_config = env_settings("REDIS_")

    @property
    def url(self) -> str:
        """Redis URL 생성 (redis:// 또는 rediss://)"""
        protocol = "rediss" if self.ssl else "redis"
        auth = f":{self.password}@" if self.password else ""
        return f"{protocol}://{auth}{self.host}:{self.port}/{self.db}"


# ========================================
# 설정 인스턴스 (싱글톤)
# ========================================
# 환경변수 로드 (환경변수 없으면 기본값 사용)

app_settings = AppSettings()
logging_settings = LoggingSettings()
websocket_settings = WebsocketSettings()
network_settings = NetworkSettings()
connectivity_settings = ConnectivitySettings()
redis_settings = RedisSettings()

"""애플리케이션 진입점 (DI Container 기반)

원격 터미널 세션 클라이언트
- WebSocket 으로 원격 세션에 연결
- 표준 입력 → 원격 세션, 원격 출력 → 표준 출력
- 네트워크 장애 시 자동 재접속

Usage:
    python main.py --url https://host:8080 --session abc --token TOKEN
    python main.py --url https://host:8080 --session abc --username me --password pw
    python main.py --profile PROFILE_ID --session abc      # Redis 프로필 사용
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import sys

from termlink.application.connection_registry import ConnectionRegistry
from termlink.common.events import ConnectionStateEvent, EventBus, FatalErrorEvent
from termlink.common.logger import PipelineLogger, shutdown_logging
from termlink.config.containers import ApplicationContainer
from termlink.core.connection.manager import ConnectionManager
from termlink.core.dto.internal.common import ConnectionConfig
from termlink.core.dto.internal.resource import Error, Success
from termlink.core.dto.internal.state import Failed
from termlink.core.dto.io.messages import ClosedMessage, ErrorMessage, OutputMessage

logger = PipelineLogger.get_logger("main", "app")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remote terminal session client")
    parser.add_argument("--session", required=True, help="원격 세션 ID")
    parser.add_argument("--url", help="서버 기본 URL (http/https)")
    parser.add_argument("--username", default="")
    parser.add_argument("--password", default="")
    parser.add_argument("--token", default=None, help="API 토큰 (지정 시 Basic 보다 우선)")
    parser.add_argument("--profile", default=None, help="저장된 연결 프로필 ID")

    args = parser.parse_args(argv)
    if not args.url and not args.profile:
        parser.error("--url 또는 --profile 중 하나가 필요합니다")
    return args


class Application:
    """애플리케이션 메인 클래스

    책임:
    - DI Container 관리
    - Event Bus 리스너 등록
    - 표준 입출력 ↔ 원격 세션 연결
    - Graceful Shutdown
    """

    def __init__(self, args: argparse.Namespace) -> None:
        self.args = args
        self.container = ApplicationContainer()
        self.registry: ConnectionRegistry | None = None
        self.manager: ConnectionManager | None = None
        self.tasks: list[asyncio.Task] = []
        self._finished = asyncio.Event()

    def _setup_event_bus(self) -> None:
        async def on_state(event: ConnectionStateEvent) -> None:
            logger.info(f"[{event.session_id}] {event.state}")
            if isinstance(event.state, Failed) and not event.state.can_retry:
                print(f"\n[termlink] {event.state.error.user_message()}", file=sys.stderr)
                self._finished.set()

        async def on_fatal(event: FatalErrorEvent) -> None:
            logger.error(f"치명적 오류: {event.error.message}", extra={"context": event.context})
            self._finished.set()

        EventBus.on(ConnectionStateEvent, on_state)
        EventBus.on(FatalErrorEvent, on_fatal)

    async def initialize(self) -> None:
        """Flow: Event Bus 등록 → 레지스트리 준비 → 세션 연결 시작"""
        self._setup_event_bus()
        self.registry = await self.container.registry()

        if self.args.profile:
            service = await self.container.session_service()
            match await service.open_session(self.args.profile, self.args.session):
                case Success(data=manager):
                    self.manager = manager
                case Error(error=error):
                    raise SystemExit(f"[termlink] {error.user_message()}")
                case _:
                    raise SystemExit("[termlink] unexpected session state")
        else:
            config = ConnectionConfig(
                base_url=self.args.url,
                session_id=self.args.session,
                username=self.args.username,
                password=self.args.password,
                api_token=self.args.token,
            )
            self.manager = self.registry.connect(config)

        logger.info(f"✅ 세션 연결 시작: {self.args.session}")

    async def _pump_output(self, manager: ConnectionManager) -> None:
        async with contextlib.aclosing(manager.messages()) as messages:
            async for message in messages:
                match message:
                    case OutputMessage(data=data):
                        sys.stdout.write(data)
                        sys.stdout.flush()
                    case ClosedMessage(reason=reason):
                        print(f"\n[termlink] session closed: {reason}", file=sys.stderr)
                        self._finished.set()
                    case ErrorMessage(message=text):
                        print(f"\n[termlink] {text}", file=sys.stderr)
                    case _:
                        pass

    async def _pump_input(self, manager: ConnectionManager) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
        while True:
            line = (await reader.readline()).decode("utf-8", errors="replace")
            if not line:
                logger.info("표준 입력 종료(EOF)")
                self._finished.set()
                return
            if not await manager.send(line):
                logger.warning("입력 전송 실패 (연결되지 않음)")

    async def run(self) -> None:
        """입출력 태스크 실행 (메인 루프)"""
        if self.manager is None:
            return
        self.tasks = [
            asyncio.create_task(self._pump_output(self.manager), name="termlink-output"),
            asyncio.create_task(self._pump_input(self.manager), name="termlink-input"),
        ]
        await self._finished.wait()

    async def shutdown(self) -> None:
        """Graceful Shutdown

        Flow:
        1. 태스크 취소
        2. 모든 세션 종료
        3. Resource 정리 (연결성 감시, Redis)
        """
        logger.info("정리 작업 시작...")

        for task in self.tasks:
            if not task.done():
                task.cancel()
        for task in self.tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self.registry is not None:
            await self.registry.shutdown_all()

        await self.container.shutdown_resources()
        EventBus.clear()
        logger.info("✅ 프로그램 종료 완료")
        shutdown_logging()


async def main(argv: list[str] | None = None) -> None:
    """메인 실행 함수"""
    app = Application(parse_args(argv))

    try:
        await app.initialize()
        await app.run()
    finally:
        await app.shutdown()


def cli() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n프로그램이 종료되었습니다.")


if __name__ == "__main__":
    cli()

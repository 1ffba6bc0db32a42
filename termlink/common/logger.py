"""termlink 로깅

모든 PipelineLogger 는 프로세스 전역 큐 하나를 공유하고, 단일 QueueListener 스레드가
콘솔/파일 핸들러로 기록을 내보냅니다. 이벤트 루프 스레드는 큐에 넣기만 합니다.

    logger = PipelineLogger.get_logger("connection_manager", "connection")
    session_log = logger.bind(session_id="abc")
    session_log.info("연결 성공", extra={"attempt": 2})
"""

from __future__ import annotations

import atexit
import logging
import queue
import sys
import threading
from datetime import datetime
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from termlink.config.settings import logging_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(component)s] %(session)s%(message)s"

# extra 로 덮어쓰면 logging 이 KeyError 를 던지는 LogRecord 속성
_RESERVED_RECORD_KEYS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}

_queue: queue.Queue[logging.LogRecord] = queue.Queue()
_listener: QueueListener | None = None
_listener_lock = threading.Lock()


def _build_handlers() -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    handlers.append(console)

    if logging_settings.to_file:
        today = datetime.now().strftime("%Y-%m-%d")
        path = Path(logging_settings.dir) / f"termlink_{today}.log"
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(filename=path, when="midnight", backupCount=7)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    return handlers


def _ensure_listener() -> None:
    global _listener
    with _listener_lock:
        if _listener is None:
            _listener = QueueListener(_queue, *_build_handlers(), respect_handler_level=True)
            _listener.start()


def shutdown_logging() -> None:
    """큐에 남은 기록을 모두 내보내고 리스너 스레드 종료 (재호출 안전)"""
    global _listener
    with _listener_lock:
        if _listener is not None:
            _listener.stop()
            _listener = None


atexit.register(shutdown_logging)


def _resolve_level(level: int | None) -> int:
    if level is not None:
        return level
    resolved = logging.getLevelName(logging_settings.level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


class PipelineLogger:
    """컴포넌트 단위 로거

    - ``component`` 는 로거 이름 계층과 출력 포맷의 ``[component]`` 에 쓰입니다.
    - ``bind()`` 로 세션 등 고정 컨텍스트를 가진 자식 로거를 만듭니다.
    - 호출 시 ``extra`` 는 바인딩된 컨텍스트 위에 병합됩니다.
    """

    __slots__ = ("name", "component", "context", "logger")

    def __init__(
        self,
        name: str,
        component: str | None = None,
        level: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.component = component
        self.context: dict[str, Any] = dict(context or {})

        logger_name = f"termlink.{component}.{name}" if component else f"termlink.{name}"
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(_resolve_level(level))
        if not any(isinstance(h, QueueHandler) for h in self.logger.handlers):
            self.logger.addHandler(QueueHandler(_queue))
        _ensure_listener()

    @classmethod
    def get_logger(cls, name: str, component: str | None = None, **kwargs: Any) -> PipelineLogger:
        """logging.getLogger 가 이름 단위 싱글톤이므로 매번 새 래퍼를 반환해도 됩니다."""
        return cls(name, component, **kwargs)

    def bind(self, **context: Any) -> PipelineLogger:
        """컨텍스트가 추가된 자식 로거 (원본 컨텍스트는 변경하지 않음)"""
        child = PipelineLogger.__new__(PipelineLogger)
        child.name = self.name
        child.component = self.component
        child.context = {**self.context, **context}
        child.logger = self.logger
        return child

    def _build_extra(self, extra: dict[str, Any] | None) -> dict[str, Any]:
        merged: dict[str, Any] = {"component": self.component or "main", **self.context}
        if extra:
            merged.update(extra)

        session = merged.get("session_id")
        merged["session"] = f"({session}) " if session else ""

        return {
            (f"ctx_{key}" if key in _RESERVED_RECORD_KEYS else key): value
            for key, value in merged.items()
        }

    def log(
        self,
        level: int,
        msg: str,
        *,
        exc_info: Any = None,
        stack_info: bool = False,
        extra: dict[str, Any] | None = None,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(
            level,
            msg,
            exc_info=exc_info,
            stack_info=stack_info,
            extra=self._build_extra(extra),
        )

    def debug(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, **kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.CRITICAL, msg, **kwargs)

"""Loading / Success / Error 3상태 결과 래퍼

모든 비동기 연산의 반환 타입으로 사용합니다.
- 생성 후 변경하지 않습니다 (frozen). map/fold 등 변환은 항상 새 인스턴스를 만듭니다.
- Error 는 마지막 정상 값(cached_data)을 함께 실어 "오프라인이지만 캐시 표시" UX 를 지원합니다.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar

from termlink.core.dto.internal.errors import AppError, AppErrorException

T = TypeVar("T")
R = TypeVar("R")
T1 = TypeVar("T1")
T2 = TypeVar("T2")


class ResourceBase(Generic[T]):
    """세 변형이 공유하는 순수 변환 연산"""

    __slots__ = ()

    @property
    def is_loading(self) -> bool:
        return isinstance(self, Loading)

    @property
    def is_success(self) -> bool:
        return isinstance(self, Success)

    @property
    def is_error(self) -> bool:
        return isinstance(self, Error)

    def get_or_none(self) -> T | None:
        """Success 면 data, Error 면 cached_data, Loading 이면 None"""
        match self:
            case Success(data=data):
                return data
            case Error(cached_data=cached):
                return cached
            case Loading():
                return None
            case _:
                raise TypeError(f"unhandled resource variant: {type(self).__name__}")

    def get_or_else(self, default: T) -> T:
        value = self.get_or_none()
        return default if value is None else value

    def get_or_raise(self) -> T:
        match self:
            case Success(data=data):
                return data
            case Error(error=error):
                raise AppErrorException(error)
            case Loading():
                raise RuntimeError("Resource is still loading")
            case _:
                raise TypeError(f"unhandled resource variant: {type(self).__name__}")

    def error_or_none(self) -> AppError | None:
        return self.error if isinstance(self, Error) else None

    def map(self, transform: Callable[[T], R]) -> Resource[R]:
        """성공 데이터를 변환합니다. 에러는 그대로 유지하고 캐시 값만 변환합니다."""
        match self:
            case Loading(progress=progress, message=message):
                return Loading(progress, message)
            case Success(data=data):
                return Success(transform(data))
            case Error(error=error, cached_data=cached):
                return Error(error, None if cached is None else transform(cached))
            case _:
                raise TypeError(f"unhandled resource variant: {type(self).__name__}")

    async def flat_map(self, transform: Callable[[T], Awaitable[Resource[R]]]) -> Resource[R]:
        match self:
            case Loading(progress=progress, message=message):
                return Loading(progress, message)
            case Success(data=data):
                return await transform(data)
            case Error(error=error):
                return Error(error)
            case _:
                raise TypeError(f"unhandled resource variant: {type(self).__name__}")

    def fold(
        self,
        on_loading: Callable[[float | None], R],
        on_success: Callable[[T], R],
        on_error: Callable[[AppError], R],
    ) -> R:
        """현재 변형에 해당하는 분기 하나만 정확히 한 번 호출합니다."""
        match self:
            case Loading(progress=progress):
                return on_loading(progress)
            case Success(data=data):
                return on_success(data)
            case Error(error=error):
                return on_error(error)
            case _:
                raise TypeError(f"unhandled resource variant: {type(self).__name__}")

    def on_success(self, action: Callable[[T], object]) -> Resource[T]:
        if isinstance(self, Success):
            action(self.data)
        return self  # type: ignore[return-value]

    def on_error(self, action: Callable[[AppError], object]) -> Resource[T]:
        if isinstance(self, Error):
            action(self.error)
        return self  # type: ignore[return-value]

    def on_loading(self, action: Callable[[float | None], object]) -> Resource[T]:
        if isinstance(self, Loading):
            action(self.progress)
        return self  # type: ignore[return-value]


@dataclass(slots=True, frozen=True)
class Loading(ResourceBase[T]):
    """로딩 상태 (선택적 진행률)"""

    progress: float | None = None
    message: str | None = None


@dataclass(slots=True, frozen=True)
class Success(ResourceBase[T]):
    data: T


@dataclass(slots=True, frozen=True)
class Error(ResourceBase[T]):
    """에러 상태. cached_data 는 마지막으로 성공한 값 (없으면 None)"""

    error: AppError
    cached_data: T | None = None


Resource: TypeAlias = Loading[T] | Success[T] | Error[T]


def loading(progress: float | None = None, message: str | None = None) -> Resource[T]:
    return Loading(progress, message)


def success(data: T) -> Resource[T]:
    return Success(data)


def error(err: AppError | BaseException, cached_data: T | None = None) -> Resource[T]:
    """AppError 또는 예외로 Error 생성 (예외는 분류기를 거칩니다)"""
    if isinstance(err, AppError):
        return Error(err, cached_data)

    from termlink.common.exceptions.exception_rule import classify_exception

    return Error(classify_exception(err), cached_data)


async def as_resource(stream: AsyncIterable[T]) -> AsyncIterator[Resource[T]]:
    """원시 비동기 스트림을 Resource 스트림으로 변환합니다.

    Loading 을 먼저 방출하고, 항목마다 Success 를 방출하며,
    스트림을 종료시키는 예외는 단일 Error 로 바꿔 방출한 뒤 끝냅니다.
    """
    yield Loading()
    try:
        async for item in stream:
            yield Success(item)
    except Exception as exc:
        yield error(exc)


async def resource_of(operation: Callable[[], Awaitable[T]]) -> Resource[T]:
    """비동기 연산 결과를 Resource 로 감쌉니다."""
    try:
        return Success(await operation())
    except Exception as exc:
        return error(exc)


def combine_resources(
    first: Resource[T1],
    second: Resource[T2],
    combine: Callable[[T1, T2], R],
) -> Resource[R]:
    """두 Resource 결합: 하나라도 Loading 이면 Loading, 그 다음 첫 Error 우선"""
    if isinstance(first, Loading) or isinstance(second, Loading):
        return Loading()
    if isinstance(first, Error):
        return Error(first.error)
    if isinstance(second, Error):
        return Error(second.error)
    return Success(combine(first.data, second.data))


__all__ = [
    "Error",
    "Loading",
    "Resource",
    "Success",
    "as_resource",
    "combine_resources",
    "error",
    "loading",
    "resource_of",
    "success",
]

from __future__ import annotations

import pytest

from termlink.core.dto.internal.errors import (
    ApiError,
    AppError,
    AppErrorException,
    AuthError,
    NetworkError,
    NotFoundError,
    ServerError,
    StorageError,
    TransportError,
    UnknownError,
    ValidationError,
)
from termlink.core.types import ErrorAction


@pytest.mark.parametrize(
    ("error", "text"),
    [
        (NetworkError(is_no_connection=True), "No internet connection"),
        (NetworkError(is_timeout=True), "Connection timed out"),
        (NetworkError(), "Network error. Please check your connection"),
        (AuthError(code=401), "Invalid credentials"),
        (AuthError(code=403), "Access denied"),
        (AuthError(), "Authentication failed"),
        (ServerError(code=500), "Server error. Please try again later"),
        (ApiError(message="quota exceeded", code="Q1"), "quota exceeded"),
        (TransportError(can_reconnect=True), "Connection lost. Reconnecting..."),
        (TransportError(can_reconnect=False), "Connection failed"),
        (StorageError(), "Failed to access local data"),
        (NotFoundError(resource_type="Terminal"), "Terminal not found"),
        (NotFoundError(), "Resource not found"),
        (ValidationError(message="too short", field="name"), "Invalid name: too short"),
        (ValidationError(message="bad input"), "bad input"),
        (UnknownError(), "Something went wrong"),
    ],
)
def test_user_message(error: AppError, text: str) -> None:
    assert error.user_message() == text


def test_recoverability() -> None:
    assert NetworkError().is_recoverable()
    assert ServerError().is_recoverable()
    assert TransportError(can_reconnect=True).is_recoverable()
    assert not TransportError(can_reconnect=False).is_recoverable()
    assert not AuthError(code=401).is_recoverable()
    assert not NotFoundError().is_recoverable()
    assert not UnknownError().is_recoverable()


@pytest.mark.parametrize(
    ("error", "action"),
    [
        (NetworkError(), ErrorAction.RETRY),
        (ServerError(), ErrorAction.RETRY),
        (AuthError(code=401), ErrorAction.REAUTHENTICATE),
        (TransportError(can_reconnect=True), ErrorAction.RECONNECT),
        (TransportError(can_reconnect=False), ErrorAction.DISMISS),
        (NotFoundError(), ErrorAction.GO_BACK),
        (ValidationError(message="x"), ErrorAction.FIX_INPUT),
        (StorageError(), ErrorAction.DISMISS),
    ],
)
def test_suggested_action(error: AppError, action: ErrorAction) -> None:
    assert error.suggested_action() is action


def test_equality_ignores_cause() -> None:
    assert NetworkError(message="x", cause=OSError("a")) == NetworkError(message="x")


def test_app_error_exception_chains_cause() -> None:
    cause = OSError("root")
    exc = AppErrorException(NetworkError(message="wrapped", cause=cause))

    assert str(exc) == "wrapped"
    assert exc.__cause__ is cause

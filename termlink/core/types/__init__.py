from termlink.core.types._common_types import (
    DEFAULT_OUTPUT_BUFFER_LIMIT,
    NORMAL_CLOSURE,
    AsyncOperation,
    CircuitState,
    ConnectivityStatus,
    Listener,
    ProfileId,
    SessionId,
    connectivity_status_format,
)
from termlink.core.types._exception_types import (
    CONNECTION_EXCEPTIONS,
    DNS_EXCEPTIONS,
    HANDSHAKE_EXCEPTIONS,
    PROTOCOL_EXCEPTIONS,
    TIMEOUT_EXCEPTIONS,
    AsyncWrappedCallable,
    ConditionMapper,
    ErrorAction,
    ExceptionGroup,
    RetryCondition,
)

__all__ = [
    # _common_types
    "SessionId",
    "ProfileId",
    "NORMAL_CLOSURE",
    "DEFAULT_OUTPUT_BUFFER_LIMIT",
    "Listener",
    "AsyncOperation",
    "ConnectivityStatus",
    "CircuitState",
    "connectivity_status_format",
    # _exception_types
    "ErrorAction",
    "RetryCondition",
    "AsyncWrappedCallable",
    "ConditionMapper",
    "ExceptionGroup",
    "DNS_EXCEPTIONS",
    "TIMEOUT_EXCEPTIONS",
    "CONNECTION_EXCEPTIONS",
    "HANDSHAKE_EXCEPTIONS",
    "PROTOCOL_EXCEPTIONS",
]

"""
Common utilities, constants, and shared code
"""
# Enums (centralized)
from apiserver.common.enums import (
    Environment,
    LifecycleState,
    HealthStatus,
)

# Constants (static values)
from apiserver.common.constants import (
    LogEvent,
    EXIT_SUCCESS,
    EXIT_FAILURE,
    RATE_LIMIT_EXEMPT_PATHS,
    RATE_LIMIT_TABLE,
    ErrorMessage,
)

# Exceptions
from apiserver.common.exceptions import (
    LifecycleError,
    BindError,
    ServiceInitError,
    ProcessFault,
    ShutdownError,
    RateLimitExceeded,
)

__all__ = [
    "Environment",
    "LifecycleState",
    "HealthStatus",
    "LogEvent",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    "RATE_LIMIT_EXEMPT_PATHS",
    "RATE_LIMIT_TABLE",
    "ErrorMessage",
    "LifecycleError",
    "BindError",
    "ServiceInitError",
    "ProcessFault",
    "ShutdownError",
    "RateLimitExceeded",
]

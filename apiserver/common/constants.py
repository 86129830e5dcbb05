"""
Common constants used across the application.
Note: Enums are in enums.py, not here. This file only contains static values.
"""
from typing import Set


# ============================================================================
# Lifecycle Log Events
# ============================================================================

class LogEvent:
    """Event tags used as log messages by the lifecycle and server"""
    SERVER_STARTED = "SERVER_STARTED"
    DATABASE_CONNECTION = "DATABASE_CONNECTION"
    RATE_LIMITER_INITIATED = "RATE_LIMITER_INITIATED"
    APPLICATION_ERROR = "APPLICATION_ERROR"
    SERVER_CLOSE_ERROR = "SERVER_CLOSE_ERROR"
    SERVER_CLOSED_GRACEFULLY = "SERVER_CLOSED_GRACEFULLY"
    DATABASE_DISCONNECT_ERROR = "DATABASE_DISCONNECT_ERROR"
    UNCAUGHT_EXCEPTION = "UNCAUGHT_EXCEPTION"
    UNHANDLED_REJECTION = "UNHANDLED_REJECTION"
    SHUTDOWN_SIGNAL_RECEIVED = "SHUTDOWN_SIGNAL_RECEIVED"
    SHUTDOWN_ALREADY_IN_PROGRESS = "SHUTDOWN_ALREADY_IN_PROGRESS"


# ============================================================================
# Process Exit Codes
# ============================================================================

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


# ============================================================================
# HTTP
# ============================================================================

# Paths never counted against the rate limit
RATE_LIMIT_EXEMPT_PATHS: Set[str] = {"/health", "/docs", "/redoc", "/openapi.json"}

RATE_LIMIT_TABLE = "rate_limits"


class ErrorMessage:
    """Common error messages"""
    TOO_MANY_REQUESTS = "Too many requests!"
    INTERNAL_ERROR = "Internal server error"

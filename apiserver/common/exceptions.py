"""
Exception types raised by the server lifecycle and its collaborators.
"""
from typing import Any


class LifecycleError(Exception):
    """Base class for errors that end the process."""


class BindError(LifecycleError):
    """The listening socket could not be created or bound."""

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        super().__init__(f"Cannot listen on {host}:{port}: {reason}")


class ServiceInitError(LifecycleError):
    """Database connection or rate limiter setup failed."""

    def __init__(self, step: str, reason: str):
        self.step = step
        super().__init__(f"{step} failed: {reason}")


class ProcessFault(LifecycleError):
    """An unhandled rejection whose reason was not an exception."""

    def __init__(self, reason: Any):
        self.reason = reason
        super().__init__(str(reason))


class ShutdownError(LifecycleError):
    """Closing the listening socket failed."""


class RateLimitExceeded(Exception):
    """All points of the current window are consumed."""

    def __init__(self, key: str, result):
        self.key = key
        self.result = result
        super().__init__(f"Rate limit exceeded for {key}")

"""Shared fixtures and fake collaborators for the lifecycle tests."""
from __future__ import annotations

import asyncio
import logging
import os
from types import SimpleNamespace

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest

from apiserver.core import rate_limiter as rate_limiter_module


class FakeServerHandle:
    def __init__(self, close_error: Exception | None = None):
        self.close_error = close_error
        self.close_calls = 0

    async def close(self) -> None:
        self.close_calls += 1
        await asyncio.sleep(0)
        if self.close_error is not None:
            raise self.close_error


class FakeListener:
    """Calls on_listening immediately, like a bind that succeeds at once."""

    def __init__(self, handle: FakeServerHandle | None = None, bind_error: Exception | None = None):
        self.handle = handle or FakeServerHandle()
        self.bind_error = bind_error
        self.port = None
        self.on_error = None
        self.on_stopped = None

    def listen(self, port, on_listening, on_error=None, on_stopped=None):
        if self.bind_error is not None:
            raise self.bind_error
        self.port = port
        self.on_error = on_error
        self.on_stopped = on_stopped
        on_listening()
        return self.handle


class FakeDatabase:
    def __init__(
        self,
        name: str = "primary",
        connect_error: Exception | None = None,
        disconnect_error: Exception | None = None,
    ):
        self.name = name
        self.connect_error = connect_error
        self.disconnect_error = disconnect_error
        self.is_connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0

    async def connect(self):
        self.connect_calls += 1
        await asyncio.sleep(0)
        if self.connect_error is not None:
            raise self.connect_error
        self.is_connected = True
        return SimpleNamespace(name=self.name)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.disconnect_error is not None:
            raise self.disconnect_error
        self.is_connected = False


class FakeRateLimiterInit:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.connections = []

    def __call__(self, connection) -> None:
        if self.error is not None:
            raise self.error
        self.connections.append(connection)


@pytest.fixture
def config():
    return SimpleNamespace(PORT=4000, SERVER_URL="http://localhost:4000")


@pytest.fixture
def lifecycle_logs(caplog):
    """Capture lifecycle log records and return them as (level, message) pairs."""
    caplog.set_level(logging.INFO, logger="apiserver.core.lifecycle")

    def _events():
        return [
            (record.levelname, record.getMessage())
            for record in caplog.records
            if record.name == "apiserver.core.lifecycle"
        ]

    return _events


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    yield
    rate_limiter_module.reset_rate_limiter()


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)

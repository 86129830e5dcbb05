"""
HTTP listener for the ASGI application, served by uvicorn on a socket that
is bound before serving starts.
"""
import asyncio
import socket
from typing import Callable, Optional

import uvicorn

from apiserver.common.exceptions import BindError, ShutdownError
from apiserver.config.settings import settings
from apiserver.utils.logging import get_logger

logger = get_logger(__name__)

_STARTUP_POLL_INTERVAL = 0.01


class ServerHandle:
    """
    A listening server. Created by HTTPServer.listen(), closed once.
    """

    def __init__(self, server: uvicorn.Server, sock: socket.socket):
        self.server = server
        self.socket = sock
        self._serve_task: Optional[asyncio.Task] = None
        self._startup_task: Optional[asyncio.Task] = None
        self._on_error: Optional[Callable[[BaseException], None]] = None
        self._on_stopped: Optional[Callable[[], None]] = None
        self._closing = False
        self._closed = False
        self._error_reported = False

    @property
    def port(self) -> int:
        """Bound port; differs from the requested one when it was 0."""
        return self.socket.getsockname()[1]

    @property
    def is_serving(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    def start(
        self,
        on_listening: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_stopped: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Start serving in the background.

        Args:
            on_listening: Called once uvicorn has started accepting connections
            on_error: Called if serving fails after listen returned
            on_stopped: Called if serving ends without close() being called
        """
        loop = asyncio.get_running_loop()
        self._on_error = on_error
        self._on_stopped = on_stopped

        self._serve_task = loop.create_task(self.server.serve(sockets=[self.socket]))
        self._serve_task.add_done_callback(self._serve_done)
        self._startup_task = loop.create_task(self._wait_started(on_listening))

    async def _wait_started(self, on_listening: Optional[Callable[[], None]]) -> None:
        while not self.server.started:
            if self._serve_task.done():
                return
            await asyncio.sleep(_STARTUP_POLL_INTERVAL)
        if on_listening is not None:
            on_listening()

    def _serve_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            if self._closing:
                # close() raises it
                return
            if self._on_error is None:
                logger.error(f"Server stopped with error: {error}")
                return
            self._error_reported = True
            self._on_error(error)
        elif not self._closing:
            logger.info("Server stopped")
            if self._on_stopped is not None:
                self._on_stopped()

    async def close(self) -> None:
        """
        Stop accepting connections and wait for in-flight requests.

        Raises:
            ShutdownError: If the server failed while closing, or earlier
                without an on_error callback to report it
        """
        if self._closed:
            return
        self._closing = True
        self.server.should_exit = True

        if self._startup_task is not None and not self._startup_task.done():
            self._startup_task.cancel()

        try:
            if self._serve_task is not None and not self._error_reported:
                await self._serve_task
        except Exception as e:
            raise ShutdownError(f"Failed to close server: {e}") from e
        finally:
            self._closed = True
            self.socket.close()


class HTTPServer:
    """
    Binds an ASGI application to a port.

    Usage:
        handle = HTTPServer(app).listen(3000, on_listening)
        ...
        await handle.close()
    """

    def __init__(self, app, host: Optional[str] = None):
        self.app = app
        self.host = host or settings.HOST

    def _bind(self, port: int) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        try:
            return socket.create_server((self.host, port), family=family)
        except OSError as e:
            raise BindError(self.host, port, e.strerror or str(e)) from e

    def listen(
        self,
        port: int,
        on_listening: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_stopped: Optional[Callable[[], None]] = None,
    ) -> ServerHandle:
        """
        Bind the socket and start serving.

        The socket is bound before this returns, so an unavailable port
        raises here rather than inside the serving task.

        Args:
            port: Port to bind (0 picks a free port)
            on_listening: Called once the server accepts connections
            on_error: Called if serving fails later
            on_stopped: Called if serving ends on its own

        Returns:
            ServerHandle for the listening server

        Raises:
            BindError: If the socket cannot be bound
        """
        sock = self._bind(port)

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=port,
            log_config=None,
            log_level=settings.LOG_LEVEL.lower(),
            timeout_graceful_shutdown=settings.SHUTDOWN_TIMEOUT,
        )
        handle = ServerHandle(uvicorn.Server(config), sock)
        try:
            handle.start(on_listening, on_error, on_stopped)
        except Exception:
            sock.close()
            raise
        return handle

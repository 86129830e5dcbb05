"""
Process lifecycle: start the HTTP listener, initialize services once it is
listening, and route every fatal error into one shutdown.

States: NOT_STARTED -> LISTENING -> INITIALIZING_SERVICES -> READY.
SHUTTING_DOWN -> TERMINATED can be entered from any of them.

Usage:
    orchestrator = LifecycleOrchestrator(HTTPServer(app), db_manager, init_rate_limiter)
    sys.exit(asyncio.run(orchestrator.run()))
"""
from __future__ import annotations

import asyncio
import signal
import threading
from typing import Any, Callable, Optional

from apiserver.common.constants import EXIT_FAILURE, EXIT_SUCCESS, LogEvent
from apiserver.common.enums import LifecycleState
from apiserver.common.exceptions import ProcessFault, ServiceInitError
from apiserver.config.settings import settings
from apiserver.utils.logging import get_logger, serialize_error

logger = get_logger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleOrchestrator:
    """
    Owns the server handle and the shutdown gate for one process run.

    Collaborators:
        listener: has listen(port, on_listening, on_error=, on_stopped=)
            returning a handle with an async close()
        database: has async connect() returning an object with `name`,
            and async disconnect()
        init_rate_limiter: synchronous callable taking the connection
        config: provides PORT and SERVER_URL (defaults to settings)
    """

    def __init__(
        self,
        listener,
        database,
        init_rate_limiter: Callable[[Any], Any],
        config=None,
    ):
        self.listener = listener
        self.database = database
        self.init_rate_limiter = init_rate_limiter
        self.config = config or settings

        self.state = LifecycleState.NOT_STARTED
        self.server = None
        self.exit_code: Optional[int] = None
        self.services_task: Optional[asyncio.Task] = None
        self._services_starting = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._terminated = asyncio.Event()
        self._pending: set[asyncio.Task] = set()
        self._previous_exception_handler = None
        self._previous_thread_excepthook = None
        self._fault_handlers_installed = False
        self._installed_signals: list[signal.Signals] = []

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_task is not None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def run(self, handle_signals: bool = True) -> int:
        """
        Start the server and wait until shutdown completes.

        Args:
            handle_signals: Install SIGINT/SIGTERM handlers on the loop

        Returns:
            Process exit code (0 clean, 1 on any error)
        """
        self._loop = asyncio.get_running_loop()
        self.install_fault_handlers()
        if handle_signals:
            self.install_signal_handlers()

        try:
            await self.start_server()
            await self._terminated.wait()
        finally:
            self.remove_signal_handlers()
            self.remove_fault_handlers()

        return self.exit_code

    async def start_server(self) -> None:
        """
        Bind the application to the configured port.
        A failure to listen is fatal.
        """
        self._loop = asyncio.get_running_loop()
        try:
            self.server = self.listener.listen(
                self.config.PORT,
                self._on_listening,
                on_error=self._on_server_error,
                on_stopped=self._on_server_stopped,
            )
        except Exception as e:
            await self.graceful_shutdown(e)

    def _on_listening(self) -> None:
        if self.is_shutting_down:
            return

        self.state = LifecycleState.LISTENING
        logger.info(
            LogEvent.SERVER_STARTED,
            extra={
                "meta": {
                    "PORT": self.config.PORT,
                    "SERVER_URL": self.config.SERVER_URL,
                }
            },
        )

        # Not awaited: the listener keeps accepting while services come up
        self.services_task = asyncio.get_running_loop().create_task(
            self.initialize_services()
        )

    async def initialize_services(self) -> None:
        """
        Connect to the database, then initialize the rate limiter with the
        connection. Any failure is fatal; nothing is retried.

        A shutdown that starts meanwhile cancels this task.
        """
        self.state = LifecycleState.INITIALIZING_SERVICES
        self._services_starting = True
        error: Optional[Exception] = None
        try:
            await self._start_services()
        except Exception as e:
            error = e
        finally:
            self._services_starting = False

        if error is not None:
            await self.graceful_shutdown(error)
        elif not self.is_shutting_down:
            self.state = LifecycleState.READY

    async def _start_services(self) -> None:
        try:
            connection = await self.database.connect()
            connection_name = connection.name
        except Exception as e:
            raise ServiceInitError("Database connection", str(e)) from e

        logger.info(
            LogEvent.DATABASE_CONNECTION,
            extra={"meta": {"CONNECTION_NAME": connection_name}},
        )

        try:
            self.init_rate_limiter(connection)
        except Exception as e:
            raise ServiceInitError("Rate limiter initialization", str(e)) from e

        logger.info(LogEvent.RATE_LIMITER_INITIATED)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def graceful_shutdown(self, error: Optional[BaseException] = None) -> int:
        """
        Close the listener and record the exit code.

        Only the first call runs the shutdown sequence; later and concurrent
        calls wait for it and get the same exit code.

        Args:
            error: The fatal error, if any

        Returns:
            Exit code: 0 when no error was given and the close succeeded
        """
        if self._shutdown_task is None:
            self.state = LifecycleState.SHUTTING_DOWN
            self._shutdown_task = asyncio.get_running_loop().create_task(
                self._shutdown(error)
            )
        elif error is not None:
            logger.warning(
                LogEvent.SHUTDOWN_ALREADY_IN_PROGRESS,
                extra={"meta": serialize_error(error)},
            )

        return await asyncio.shield(self._shutdown_task)

    async def _shutdown(self, error: Optional[BaseException]) -> int:
        if error is not None:
            logger.error(
                LogEvent.APPLICATION_ERROR,
                exc_info=error,
                extra={"meta": serialize_error(error)},
            )

        exit_code = EXIT_FAILURE if error is not None else EXIT_SUCCESS

        if self.server is not None:
            try:
                await self.server.close()
            except Exception as close_error:
                logger.error(
                    LogEvent.SERVER_CLOSE_ERROR,
                    exc_info=close_error,
                    extra={"meta": serialize_error(close_error)},
                )
                exit_code = EXIT_FAILURE
            else:
                logger.info(LogEvent.SERVER_CLOSED_GRACEFULLY)

        await self._cancel_services()

        try:
            await self.database.disconnect()
        except Exception as e:
            logger.error(
                LogEvent.DATABASE_DISCONNECT_ERROR,
                exc_info=e,
                extra={"meta": serialize_error(e)},
            )

        self.exit_code = exit_code
        self.state = LifecycleState.TERMINATED
        self._terminated.set()
        return exit_code

    async def _cancel_services(self) -> None:
        # A connect still in flight must not finish after disconnect()
        task = self.services_task
        if task is None or task.done() or not self._services_starting:
            return
        task.cancel()
        await asyncio.wait({task})

    def _schedule_shutdown(self, error: Optional[BaseException] = None) -> None:
        task = self._loop.create_task(self.graceful_shutdown(error))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _on_server_error(self, error: BaseException) -> None:
        self._schedule_shutdown(error)

    def _on_server_stopped(self) -> None:
        self._schedule_shutdown()

    # ------------------------------------------------------------------
    # Process fault handlers
    # ------------------------------------------------------------------

    def install_fault_handlers(self) -> None:
        """
        Route uncaught exceptions and unhandled task failures to shutdown.
        Installed once per run; remove_fault_handlers() restores the
        previous hooks.
        """
        if self._fault_handlers_installed:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        self._previous_exception_handler = self._loop.get_exception_handler()
        self._loop.set_exception_handler(self._handle_loop_exception)

        self._previous_thread_excepthook = threading.excepthook
        threading.excepthook = self._handle_thread_exception

        self._fault_handlers_installed = True

    def remove_fault_handlers(self) -> None:
        if not self._fault_handlers_installed:
            return

        self._loop.set_exception_handler(self._previous_exception_handler)
        threading.excepthook = self._previous_thread_excepthook
        self._previous_exception_handler = None
        self._previous_thread_excepthook = None
        self._fault_handlers_installed = False

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exception = context.get("exception")

        if exception is not None and "future" not in context:
            self.handle_uncaught_exception(exception)
        else:
            reason = exception if exception is not None else context.get("message")
            self.handle_unhandled_rejection(reason)

    def _handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        if issubclass(args.exc_type, SystemExit):
            return

        error = args.exc_value if args.exc_value is not None else ProcessFault(args.exc_type.__name__)
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.error(
                LogEvent.UNCAUGHT_EXCEPTION,
                exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
                extra={"meta": serialize_error(error)},
            )
            return
        loop.call_soon_threadsafe(self.handle_uncaught_exception, error)

    def handle_uncaught_exception(self, error: BaseException) -> None:
        """Log an uncaught exception and start shutdown."""
        logger.error(
            LogEvent.UNCAUGHT_EXCEPTION,
            exc_info=error,
            extra={"meta": serialize_error(error)},
        )
        self._schedule_shutdown(error)

    def handle_unhandled_rejection(self, reason: Any) -> None:
        """
        Log a failed task nobody awaited and start shutdown.
        A reason that is not an exception is wrapped in ProcessFault.
        """
        error = reason if isinstance(reason, BaseException) else ProcessFault(reason)
        logger.error(
            LogEvent.UNHANDLED_REJECTION,
            exc_info=error,
            extra={"meta": serialize_error(error)},
        )
        self._schedule_shutdown(error)

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def install_signal_handlers(self) -> None:
        """SIGINT/SIGTERM start a clean shutdown, where the loop supports it."""
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.warning(f"Signal handler for {sig.name} not supported here")
                continue
            self._installed_signals.append(sig)

    def remove_signal_handlers(self) -> None:
        for sig in self._installed_signals:
            self._loop.remove_signal_handler(sig)
        self._installed_signals.clear()

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(
            LogEvent.SHUTDOWN_SIGNAL_RECEIVED,
            extra={"meta": {"SIGNAL": sig.name}},
        )
        self._schedule_shutdown()

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from typing import Callable
import math
import time
import uuid

from apiserver.config.settings import settings
from apiserver.core.rate_limiter import get_rate_limiter
from apiserver.common.constants import ErrorMessage, RATE_LIMIT_EXEMPT_PATHS
from apiserver.common.enums import Environment
from apiserver.common.exceptions import RateLimitExceeded
from apiserver.utils.logging import get_logger
from apiserver.utils.request_utils import get_client_ip

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging HTTP requests and responses.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Log request details and processing time.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            HTTP response
        """
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        logger.info(
            f"Request started | ID: {request_id} | "
            f"Method: {request.method} | Path: {request.url.path}",
            extra={"request_id": request_id}
        )

        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{process_time:.4f}"

            logger.info(
                f"Request completed | ID: {request_id} | "
                f"Status: {response.status_code} | "
                f"Time: {process_time:.4f}s",
                extra={"request_id": request_id}
            )

            return response

        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"Request failed | ID: {request_id} | "
                f"Error: {str(e)} | Time: {process_time:.4f}s",
                exc_info=True,
                extra={"request_id": request_id}
            )
            raise


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware for rate limiting based on client IP address.
    Uses the database-backed limiter installed after the database connects.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Check rate limit before processing request.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            HTTP response or 429 if rate limit exceeded
        """
        if settings.ENV == Environment.DEVELOPMENT.value:
            return await call_next(request)

        if request.url.path in RATE_LIMIT_EXEMPT_PATHS:
            return await call_next(request)

        rate_limiter = get_rate_limiter()
        if rate_limiter is None:
            return await call_next(request)

        client_ip = get_client_ip(request)

        try:
            await rate_limiter.consume(client_ip)
        except RateLimitExceeded as e:
            retry_after = max(1, math.ceil(e.result.ms_before_next / 1000))
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "success": False,
                    "message": ErrorMessage.TOO_MANY_REQUESTS,
                },
                headers={"Retry-After": str(retry_after)}
            )
        except Exception as e:
            logger.error(f"Rate limit check failed: {str(e)}")

        return await call_next(request)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Catch and format unhandled exceptions.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            HTTP response
        """
        try:
            return await call_next(request)
        except Exception as e:
            request_id = getattr(request.state, "request_id", "unknown")
            logger.error(
                f"Unhandled exception | Request ID: {request_id} | "
                f"Path: {request.url.path} | Error: {str(e)}",
                exc_info=True
            )

            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "detail": ErrorMessage.INTERNAL_ERROR,
                    "request_id": request_id
                }
            )


def setup_cors(app) -> None:
    """
    Setup CORS middleware with configuration from settings.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )


def setup_middlewares(app) -> None:
    """
    Setup all application middlewares.
    Order matters: last added is executed first.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RateLimitMiddleware)
    setup_cors(app)
    app.add_middleware(RequestLoggingMiddleware)

"""
API server entry point.
Builds the FastAPI application and hands it to the lifecycle orchestrator,
which listens first and connects the database afterwards.
"""
import asyncio
import sys

from fastapi import FastAPI

from apiserver.api.health import router as health_router
from apiserver.common.enums import Environment
from apiserver.config.settings import settings
from apiserver.core.database import db_manager
from apiserver.core.lifecycle import LifecycleOrchestrator
from apiserver.core.middleware import setup_middlewares
from apiserver.core.rate_limiter import init_rate_limiter
from apiserver.core.server import HTTPServer
from apiserver.utils.logging import setup_logging, get_logger

logger = get_logger(__name__)


def create_app() -> FastAPI:
    """
    Create the FastAPI application with middlewares and routes.
    """
    docs_enabled = settings.ENV != Environment.PRODUCTION.value

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    setup_middlewares(app)
    app.include_router(health_router)

    return app


app = create_app()


def main() -> None:
    """Run the API server until shutdown and exit with its status."""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.LOG_DIR)
    logger.info(f"Starting {settings.APP_NAME} in {settings.ENV.upper()} mode")

    orchestrator = LifecycleOrchestrator(
        HTTPServer(app, host=settings.HOST),
        db_manager,
        init_rate_limiter,
    )
    app.state.lifecycle = orchestrator

    sys.exit(asyncio.run(orchestrator.run()))


if __name__ == "__main__":
    main()

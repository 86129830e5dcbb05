"""Health check and service info endpoints."""
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from apiserver.common.enums import HealthStatus
from apiserver.config.settings import settings
from apiserver.schemas.health import HealthResponse, RootResponse
from apiserver.services import health as health_service

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint for monitoring and load balancers.
    Returns 503 until the database and rate limiter are initialized.
    """
    lifecycle = getattr(request.app.state, "lifecycle", None)
    health = health_service.get_health(lifecycle)

    status_code = (
        status.HTTP_200_OK
        if health.status == HealthStatus.HEALTHY.value
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return JSONResponse(status_code=status_code, content=health.model_dump())


@router.get("/", response_model=RootResponse)
async def root() -> RootResponse:
    """Root endpoint."""
    return RootResponse(
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
        status="running",
        health="/health",
    )

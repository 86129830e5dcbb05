"""Health check schemas."""
from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
    lifecycle: str
    database: str
    timestamp: str
    uptime_seconds: float


class RootResponse(BaseModel):
    """Service info returned by the root endpoint."""
    service: str
    version: str
    status: str
    health: str

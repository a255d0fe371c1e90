"""Health check models."""

from typing import Literal

from pydantic import BaseModel

from chatias_runtime import __version__


class ServiceStatus(BaseModel):
    """Individual service health status."""

    name: str
    status: Literal["healthy", "unhealthy", "unknown"]
    message: str = ""


class HealthStatus(BaseModel):
    """Overall health status."""

    status: Literal["healthy", "degraded", "unhealthy"]
    services: dict[str, ServiceStatus]
    mode: Literal["auto", "manual"] | None = None
    version: str = __version__

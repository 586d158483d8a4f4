"""System health endpoint.

- /health: liveness probe, no dependency checks
"""

from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel

from passgate import __version__

router = APIRouter()


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: datetime
    version: str


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check (Liveness)",
    description="Simple health check for load balancers. Returns 200 if the service is running.",
)
async def health_check() -> HealthResponse:
    """Basic health check endpoint (liveness probe)."""
    return HealthResponse(timestamp=datetime.now(UTC), version=__version__)

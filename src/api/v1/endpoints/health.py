"""Health check endpoints."""

from fastapi import APIRouter, Depends

from core.database import ConnectionManager
from core.dependencies import get_connection
from schemas.common import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(connection: ConnectionManager = Depends(get_connection)):
    """Check system health."""
    settings = connection.settings
    services = {"api": "ok"}

    # Check database
    services["database"] = "ok" if await connection.ping() else "error"

    return HealthResponse(
        status="ok" if all(v == "ok" for v in services.values()) else "degraded",
        version=settings.VERSION,
        services=services,
    )

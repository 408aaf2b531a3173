"""Service-level routes."""

from datetime import datetime, timezone

from fastapi import APIRouter

from vertiblock.database import health_check as db_health_check

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Overall status, timestamp in ISO8601 format and database status
    """
    db_healthy = await db_health_check()

    return {
        "status": "healthy" if db_healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "healthy" if db_healthy else "unhealthy",
    }

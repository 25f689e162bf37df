"""
Health check endpoint for monitoring and load balancers.
"""

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

from tracker.core.config import settings
from tracker.db.postgres import async_session_maker

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """
    Health check for the database.

    HTTP Status Codes:
        - 200: database reachable
        - 503: database unreachable
    """
    health_status = {
        "status": "ok",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {},
    }

    try:
        async with async_session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
        health_status["checks"]["database"] = {"status": "healthy"}
    except Exception as e:
        health_status["checks"]["database"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "unhealthy"
        raise HTTPException(status_code=503, detail=health_status)

    return health_status


@router.get("/live")
async def liveness_check():
    """
    Liveness probe.
    Returns 200 if the service is alive.
    """
    return {"status": "alive", "version": settings.app_version}

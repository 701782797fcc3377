"""
Health Router: readiness plus DB, Redis and POS checks.
"""
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from app.services.db_service import get_db
from app.services.cache_service import cache_service
from app.services.pos_client import pos_client

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    """
    Check core services: database and Redis.
    Returns 503 if app is still initializing (Readiness Probe).
    """
    if not getattr(request.app.state, "is_ready", False):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "initializing", "message": "Application is starting up"}

    health_status = {
        "status": "healthy",
        "services": {
            "db": "unknown",
            "redis": "unknown",
            "pos": "configured" if pos_client.is_configured() else "not configured",
        },
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["services"]["db"] = "up"
    except Exception as e:
        health_status["services"]["db"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    # Redis is a cache only; its absence degrades but does not fail the service
    if await cache_service.ping():
        health_status["services"]["redis"] = "up"
    else:
        health_status["services"]["redis"] = "down"
        health_status["status"] = "degraded"

    return health_status

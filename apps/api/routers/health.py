"""
Health check endpoints.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
import redis.asyncio as redis

from config import settings

router = APIRouter()


async def _check_database(request: Request) -> str:
    try:
        async with request.app.state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "up"
    except Exception as e:
        return f"down: {str(e)}"


async def _check_redis() -> str:
    try:
        r = redis.from_url(settings.REDIS_URL, socket_connect_timeout=2)
        try:
            await r.ping()
        finally:
            await r.aclose()
        return "up"
    except Exception as e:
        return f"down: {str(e)}"


def _queue_mode(request: Request) -> str:
    service = getattr(request.app.state, "audit_service", None)
    if service is None:
        return "unknown"
    return service.job_runner.name


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.
    Returns overall system health status.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": await _check_database(request),
        "redis": "not used",
        "audit_queue": _queue_mode(request),
    }
    if health_status["database"] != "up":
        health_status["status"] = "degraded"

    # Redis only matters when audits or cache entries go through it.
    if health_status["audit_queue"] == "rq" or settings.CACHE_BACKEND == "redis":
        health_status["redis"] = await _check_redis()
        if health_status["redis"] != "up":
            health_status["status"] = "degraded"

    return health_status


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Kubernetes-style readiness probe."""
    missing = []
    if await _check_database(request) != "up":
        missing.append("database")
    if getattr(request.app.state, "audit_service", None) is None:
        missing.append("audit_service")

    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}

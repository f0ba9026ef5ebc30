"""
@file health.py
@brief Health check API endpoints
@details
Status, readiness and liveness probes. /health answers 503 in maintenance
mode (store down); a missing cache only degrades the status.

@author GeoAdmin Project
@date 2026-10-07
@version 1.0
@license AGPL-3.0
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from geoadmin.core.health import get_system_health, HealthStatus

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """
    @brief Get system health status

    @details
    Returns 503 if the hierarchy store is unavailable, 200 otherwise
    (including degraded mode without cache).
    """
    health = await get_system_health()

    if health["status"] == HealthStatus.UNHEALTHY:
        return JSONResponse(
            status_code=503,
            content={
                "status": health["status"],
                "message": health["message"],
                "components": health["components"],
                "note": "System is in maintenance mode. Point resolution and imports are unavailable."
            }
        )

    return {
        "status": health["status"],
        "message": health["message"],
        "components": health["components"]
    }


@router.get("/health/ready")
async def readiness_check():
    """
    @brief Kubernetes readiness probe
    @details Ready as long as the store answers; the cache is optional.
    """
    health = await get_system_health()

    if health["status"] != HealthStatus.UNHEALTHY:
        return {"ready": True, "status": "System is ready"}
    return JSONResponse(
        status_code=503,
        content={
            "ready": False,
            "status": "System is not ready",
            "reason": health["message"]
        }
    )


@router.get("/health/live")
async def liveness_check():
    """
    @brief Kubernetes liveness probe
    """
    return {"alive": True, "status": "Application is running"}

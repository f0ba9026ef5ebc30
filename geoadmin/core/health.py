"""
@file health.py
@brief System health checks and status monitoring

@details
Health status for:
- Hierarchy store (PostgreSQL/PostGIS, or the in-memory store)
- Redis geometry cache

The store is critical (resolve and import need it); the cache is optional and
only degrades the service.

@author GeoAdmin Project
@date 2026-10-07
@version 1.0
@license AGPL-3.0
"""

import logging
from typing import Dict, Any
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from geoadmin.core.cache import cache
from geoadmin.core.config import get_settings

logger = logging.getLogger(__name__)


class HealthStatus:
    """Health status indicator for system components"""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


async def check_database() -> Dict[str, Any]:
    """
    @brief Check hierarchy store connectivity

    @return Dict with status, message and component name
    """
    if get_settings().store_backend == "memory":
        return {
            "status": HealthStatus.HEALTHY,
            "message": "In-memory store is active",
            "component": "database"
        }

    from geoadmin.db.database import SessionLocal

    db = SessionLocal()
    try:
        db.execute(text("SELECT postgis_version()"))
        return {
            "status": HealthStatus.HEALTHY,
            "message": "PostGIS database is healthy",
            "component": "database"
        }
    except OperationalError as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": HealthStatus.UNHEALTHY,
            "message": "PostGIS database is unavailable",
            "component": "database",
            "error": str(e)
        }
    except Exception as e:
        logger.error(f"Unexpected database health check error: {e}")
        return {
            "status": HealthStatus.DEGRADED,
            "message": "Database health check encountered an error",
            "component": "database",
            "error": str(e)
        }
    finally:
        db.close()


async def check_cache() -> Dict[str, Any]:
    """
    @brief Check Redis cache connectivity (optional component)
    """
    try:
        if not cache.client:
            return {
                "status": HealthStatus.DEGRADED,
                "message": "Redis cache is not initialized (geometry cache disabled)",
                "component": "cache"
            }

        await cache.client.ping()
        return {
            "status": HealthStatus.HEALTHY,
            "message": "Redis cache is healthy",
            "component": "cache"
        }
    except Exception as e:
        logger.warning(f"Cache health check failed: {e}")
        return {
            "status": HealthStatus.DEGRADED,
            "message": "Redis cache is unavailable (running in degraded mode)",
            "component": "cache",
            "error": str(e)
        }


async def get_system_health() -> Dict[str, Any]:
    """
    @brief Overall status from all components
    @details
    - HEALTHY: every component operational
    - DEGRADED: store OK, cache down or store check inconclusive
    - UNHEALTHY: store unavailable (critical failure)
    """
    db_status = await check_database()
    cache_status = await check_cache()

    if db_status["status"] == HealthStatus.UNHEALTHY:
        overall_status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in (db_status["status"], cache_status["status"]):
        overall_status = HealthStatus.DEGRADED
    else:
        overall_status = HealthStatus.HEALTHY

    return {
        "status": overall_status,
        "components": {
            "database": db_status,
            "cache": cache_status
        },
        "message": get_status_message(overall_status)
    }


def get_status_message(status: str) -> str:
    """Get human-readable status message"""
    messages = {
        HealthStatus.HEALTHY: "System is operational",
        HealthStatus.DEGRADED: "System is running with reduced functionality (geometry cache unavailable)",
        HealthStatus.UNHEALTHY: "System is in maintenance mode (hierarchy store unavailable)"
    }
    return messages.get(status, "Unknown status")

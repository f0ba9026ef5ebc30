"""
@file middleware.py
@brief Request middleware: store outage handling and request timing

@details
- Store outages (SQLAlchemy operational/database errors, StoreUnavailableError)
  escaping a route become 503 maintenance responses
- Every request is logged with method, path, status and elapsed time

@author GeoAdmin Project
@date 2026-10-07
@version 1.0
@license AGPL-3.0
"""

import logging
import time
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import DatabaseError, OperationalError

from geoadmin.services.store.base import StoreUnavailableError

logger = logging.getLogger(__name__)


class DatabaseErrorMiddleware(BaseHTTPMiddleware):
    """
    @brief Turns store outages into 503 responses
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except (OperationalError, DatabaseError, StoreUnavailableError) as e:
            logger.error(f"Database error handling {request.method} {request.url.path}: {e}")
            return JSONResponse(
                status_code=503,
                content={
                    "error": "Service unavailable",
                    "message": "Database connection failed. System is in maintenance mode.",
                    "status": "unavailable"
                }
            )
        except Exception as e:
            logger.exception(f"Unexpected error handling {request.method} {request.url.path}: {e}")
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "message": "An unexpected error occurred. Please try again later.",
                    "status": "error"
                }
            )

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f} ms)")
        return response

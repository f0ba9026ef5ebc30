"""
@file exceptions.py
@brief Centralized exception handlers
@details
Consistent JSON error bodies for HTTP exceptions, validation errors, geocoder
failures and unexpected server errors.

@author GeoAdmin Project
@date 2026-10-07
@version 1.0
@license AGPL-3.0
"""

import logging
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException
from fastapi import Request

from geoadmin.services.arcgis.errors import GeocodingError

logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": str(exc.detail),
            "status_code": exc.status_code,
            "message": f"Request failed with HTTP {exc.status_code}"
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    @brief Parameter/body validation failures (422)
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation error",
            "details": jsonable_encoder(exc.errors()),
            "message": "Request validation failed. Check parameters and try again."
        }
    )


async def geocoding_exception_handler(request: Request, exc: GeocodingError):
    """
    @brief Geocoder transport or payload failure (502)
    """
    logger.warning(f"Geocoding failed for {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=502,
        content={
            "error": "Geocoding failed",
            "message": exc.message,
            "status_code": 502
        }
    )


async def general_exception_handler(request: Request, exc: Exception):
    """
    @brief Catch-all exception handler
    @details
    Logs the full error while returning a safe message to the client.
    """
    logger.exception(f"Unexpected error handling {request.url}: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
            "status": "error"
        }
    )

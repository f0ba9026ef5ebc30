"""
@file main.py
@brief FastAPI application factory and root endpoint.
@details
Initializes the GeoAdmin FastAPI application with:
- Logging configuration
- Database initialization (PostGIS backend only)
- Middleware setup (CORS, store outage handling)
- Router registration (API, Health)

@author GeoAdmin Project
@date 2026-10-08
@version 1.0
@license AGPL-3.0
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

# Internal modules
from geoadmin.core.logging import setup_logging
from geoadmin.core.config import get_settings
from geoadmin.core import exceptions
from geoadmin.core.middleware import DatabaseErrorMiddleware
from geoadmin.core.cache import cache
from geoadmin.api import routes
from geoadmin.api.endpoints import health
from geoadmin.services.arcgis.errors import GeocodingError

# Configure logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    @brief Application lifecycle manager
    @details
    Startup: schema initialization (PostGIS backend) and Redis connection.
    Shutdown: Redis disconnection.
    """
    settings = get_settings()
    logger.info("=" * 60)
    logger.info(f"Starting GeoAdmin API (store backend: {settings.store_backend})...")
    logger.info("=" * 60)

    if settings.store_backend == "postgis":
        try:
            from geoadmin.db.init_db import initialize_database

            logger.info("Initializing database...")
            if initialize_database():
                logger.info("✓ Database initialization completed")
            else:
                logger.warning("⚠ Database initialization encountered issues")
        except Exception as e:
            logger.error(f"✗ Database initialization failed: {e}", exc_info=True)

    await cache.connect(settings.redis_url)

    yield

    await cache.close()
    logger.info("GeoAdmin API shutdown completed")


## @brief FastAPI application instance
app = FastAPI(
    title="GeoAdmin API - Administrative Boundaries",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url=None
)

# --------------------------------------------------------------------------
# Middleware
# --------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(DatabaseErrorMiddleware)


# --------------------------------------------------------------------------
# Routers
# --------------------------------------------------------------------------

app.include_router(health.router)
app.include_router(routes.router)


# --------------------------------------------------------------------------
# Exception Handlers
# --------------------------------------------------------------------------

app.add_exception_handler(HTTPException, exceptions.http_exception_handler)
app.add_exception_handler(RequestValidationError, exceptions.validation_exception_handler)
app.add_exception_handler(GeocodingError, exceptions.geocoding_exception_handler)
app.add_exception_handler(Exception, exceptions.general_exception_handler)


@app.get("/")
def read_root():
    """
    @brief Service banner with pointers to the API docs and health probes
    """
    return {
        "service": "GeoAdmin API",
        "docs": "/api/docs",
        "api": get_settings().api_prefix,
        "health": "/health",
    }

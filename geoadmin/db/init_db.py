"""
@file init_db.py
@brief Database initialization on application startup and before imports

@details
Manages the database lifecycle:
- Connection health checking with retry logic
- PostGIS extension and schema creation
- Population check (row count per level)
- Idempotent initialization (safe to call multiple times)

The boundary data itself is never loaded here: it comes from the import
pipeline (API endpoint or offline CLI).

@author GeoAdmin Project
@date 2026-10-07
@version 1.0
@license AGPL-3.0

@see etl.import_admin_areas for the offline import
@see db.database for engine configuration
@see models.admin_area for table schema
"""

import time
import logging

from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError

from geoadmin.db.base import Base
from geoadmin.db.database import engine

## @brief Module logger for startup diagnostics
logger = logging.getLogger(__name__)


def wait_for_database(max_retries: int = 30, retry_delay: int = 2) -> bool:
    """
    @brief Wait for database to become available

    @details
    1. Attempt connection via test query: `SELECT 1`
    2. On failure: wait `retry_delay` seconds and try again
    3. On success: log and return immediately
    4. On max_retries exceeded: log error and return False

    @param max_retries (int) Maximum connection attempts [default: 30]
    @param retry_delay (int) Delay between retries in seconds [default: 2]
    @return True if database available, False if max retries exceeded
    """
    retries = 0
    while retries < max_retries:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("✓ Database connection established successfully")
            return True
        except OperationalError as e:
            retries += 1
            logger.warning(
                f"Database not ready (attempt {retries}/{max_retries}): {str(e)[:100]}"
            )
            if retries < max_retries:
                logger.info(f"Retrying in {retry_delay} seconds...")
                time.sleep(retry_delay)

    logger.error(f"Failed to connect to database after {max_retries} attempts")
    return False


def create_schema() -> None:
    """
    @brief Enable PostGIS and create the admin_areas table (idempotent)
    """
    # Registers AdminArea on Base.metadata
    from geoadmin.models import admin_area  # noqa: F401

    with engine.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
    Base.metadata.create_all(bind=engine)
    logger.info("✓ Tables created/verified")


def check_database_populated() -> bool:
    """
    @brief Whether the admin_areas table exists and holds at least one country
    """
    try:
        if "admin_areas" not in inspect(engine).get_table_names():
            logger.info("admin_areas table not found - run the boundary import")
            return False
        with engine.connect() as conn:
            count = conn.execute(text("SELECT COUNT(*) FROM admin_areas WHERE level = 0")).scalar()
        if not count:
            logger.info("admin_areas holds no countries - run the boundary import")
            return False
        logger.info(f"✓ Database holds {count} countries")
        return True
    except Exception as e:
        logger.warning(f"Error checking database population: {e}")
        return False


def initialize_database(max_retries: int = 1, retry_delay: int = 1) -> bool:
    """
    @brief Main entry point for database initialization

    @details
    1. Wait for PostgreSQL to be available
    2. Enable PostGIS and create the table schema
    3. Report whether boundaries were already imported

    Gracefully degrades: errors are logged and reported as False so the API
    can still start (health endpoints report maintenance mode).

    @return True if the schema is ready, False otherwise
    """
    logger.info("Starting database initialization...")

    if not wait_for_database(max_retries=max_retries, retry_delay=retry_delay):
        logger.error("Could not establish database connection - proceeding anyway")
        return False

    try:
        logger.info("Creating tables...")
        create_schema()
    except Exception as e:
        logger.error(f"Error creating tables: {e}", exc_info=True)
        return False

    check_database_populated()
    logger.info("✓ Database initialization completed successfully")
    return True

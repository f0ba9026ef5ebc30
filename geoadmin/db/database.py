"""
@file database.py
@brief SQLAlchemy database engine and session configuration

@details
Centralized PostgreSQL/PostGIS connection management for GeoAdmin.
Provides the engine, the session factory and the FastAPI session dependency.
The engine is created eagerly but connects lazily, so importing this module
never needs a running database.

@author GeoAdmin Project
@date 2026-10-06
@version 1.0
@license AGPL-3.0

@see models.admin_area for ORM models
@see db.init for schema initialization
"""

import logging

from fastapi import HTTPException
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from geoadmin.core.config import get_settings

logger = logging.getLogger(__name__)

## @brief PostgreSQL connection URL from environment or default
DATABASE_URL = get_settings().database_url

## @brief SQLAlchemy engine instance
## pool_pre_ping drops connections killed while an import was running
engine = create_engine(DATABASE_URL, pool_pre_ping=True)

## @brief Session factory, explicit transaction control
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    @brief FastAPI dependency for database session injection

    @details
    Provides a database session for a single request lifecycle and closes it
    afterwards. Returns 503 Service Unavailable if the connection test fails.

    @return Generator yielding a SQLAlchemy Session instance
    @throws HTTPException with status_code=503 if database connection fails
    """
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except OperationalError as e:
        db.close()
        logger.error(f"Database connection unavailable: {e}")
        raise HTTPException(
            status_code=503,
            detail="Database connection unavailable. System is in maintenance mode."
        )
    try:
        yield db
    finally:
        db.close()

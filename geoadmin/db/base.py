"""
Database Base Configuration Module

SQLAlchemy declarative base shared by every GeoAdmin ORM model.

Author: GeoAdmin Project
License: AGPL-3.0
"""

from sqlalchemy.orm import declarative_base

# All ORM models must inherit from this base to be registered with SQLAlchemy
Base = declarative_base()

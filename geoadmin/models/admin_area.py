"""
Administrative Area Data Model

This module defines the SQLAlchemy ORM model for the administrative boundary
tree (country -> province -> district -> ...) stored in PostGIS.

Model: AdminArea
- One row per node of the tree, scoped by country
- Parent linkage is a plain id (no ORM relationship, no back-pointers)
- Polygon geometry stored as geography so ST_Intersects works on the sphere
- WKT mirror of the geometry kept for change detection only

Key Attributes:
- country_iso3: ISO 3166 alpha-3 code, root scoping key
- level: depth in the tree, 0 = country
- code/name: upstream code and display name at that level
- geom: geography(GEOMETRY, 4326), null for level 0

Author: GeoAdmin Project
License: AGPL-3.0
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from geoalchemy2 import Geography
from geoadmin.db.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class AdminArea(Base):
    """
    SQLAlchemy ORM model for administrative areas.

    Attributes:
        id (int): Surrogate identity, assigned on first insert
        country_iso3 (str): 3-letter country code
        level (int): Tree depth, 0 = country
        parent_id (int): Id of the level-1 row of the same country (nullable)
        code (str): Upstream code, unique per (country_iso3, level)
        name (str): Display name
        level_label (str): Tier label such as "Province"
        geom (Geography): Polygon/MultiPolygon in EPSG:4326
        geometry_wkt (str): WKT fingerprint of geom
        source (str): Provenance of the row
        updated_at (datetime): Last insert/update time
    """

    __tablename__ = "admin_areas"
    __table_args__ = (
        UniqueConstraint("country_iso3", "level", "code", name="uq_admin_areas_country_level_code"),
        Index("ix_admin_areas_country_level_parent", "country_iso3", "level", "parent_id"),
    )

    # Primary Key
    id = Column(BigInteger, primary_key=True, autoincrement=True)

    # Tree position
    country_iso3 = Column(String(3), nullable=False, index=True)
    level = Column(Integer, nullable=False)
    parent_id = Column(BigInteger, ForeignKey("admin_areas.id", ondelete="RESTRICT"), nullable=True)

    # Identification
    code = Column(String(512), nullable=False)
    name = Column(String(256), nullable=False)
    level_label = Column(String(1024), nullable=True)

    # Geometry Column (PostGIS geography, GiST index created by GeoAlchemy2)
    geom = Column(Geography(geometry_type="GEOMETRY", srid=4326), nullable=True)
    geometry_wkt = Column(Text, nullable=True)

    # Provenance
    source = Column(String(128), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

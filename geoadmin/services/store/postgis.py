"""
@file postgis.py
@brief AdminAreaStore over a SQLAlchemy session and PostGIS

@details
Spatial work is pushed to the database:
- point predicate: ST_Intersects on the geography column, deepest level wins
- ancestor walk: one WITH RECURSIVE query following parent_id upward
- simplification: ST_SimplifyPreserveTopology on the geometry cast

Writes for a level go through one transaction: inserts are flushed (ids are
assigned by the sequence), updates are issued as a bulk UPDATE by primary
key, then the session commits.

@author GeoAdmin Project
@date 2026-10-04
@version 1.0
@license AGPL-3.0

@see models.admin_area for the table definition
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import shapely
import shapely.wkb
from geoalchemy2 import WKTElement
from shapely.geometry.base import BaseGeometry
from sqlalchemy import func, or_, select, text, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from geoadmin.models.admin_area import AdminArea
from geoadmin.services.store.base import AdminAreaRecord, AdminAreaStore, StoreUnavailableError

logger = logging.getLogger(__name__)

## @brief Columns loaded for every non-spatial read
_ROW_COLUMNS = (
    AdminArea.id,
    AdminArea.country_iso3,
    AdminArea.level,
    AdminArea.parent_id,
    AdminArea.code,
    AdminArea.name,
    AdminArea.level_label,
    AdminArea.geometry_wkt,
    AdminArea.source,
    AdminArea.updated_at,
    AdminArea.geom.isnot(None).label("has_geometry"),
)

ANCESTORS_SQL = """
WITH RECURSIVE chain AS (
    SELECT id, parent_id, country_iso3, level, code, name, level_label,
           source, updated_at, geom IS NOT NULL AS has_geometry
    FROM admin_areas
    WHERE id = :leaf_id
    UNION ALL
    SELECT a.id, a.parent_id, a.country_iso3, a.level, a.code, a.name, a.level_label,
           a.source, a.updated_at, a.geom IS NOT NULL AS has_geometry
    FROM admin_areas a
    JOIN chain c ON a.id = c.parent_id
)
SELECT id, parent_id, country_iso3, level, code, name, level_label, source, updated_at, has_geometry
FROM chain
"""

SIMPLIFY_SQL = """
SELECT ST_AsBinary(
    CASE WHEN :tolerance > 0
         THEN ST_SimplifyPreserveTopology(geom::geometry, :tolerance)
         ELSE geom::geometry
    END
)
FROM admin_areas
WHERE id = :area_id AND geom IS NOT NULL
"""


def leaf_statement(country_iso3: str, lon: float, lat: float):
    """Deepest row of a country whose geography intersects the point (lon, lat)."""
    point = func.ST_GeogFromText(f"SRID=4326;POINT({lon} {lat})")
    return (
        select(*_ROW_COLUMNS)
        .where(
            AdminArea.country_iso3 == country_iso3,
            AdminArea.geom.isnot(None),
            func.ST_Intersects(AdminArea.geom, point),
        )
        .order_by(AdminArea.level.desc())
        .limit(1)
    )


def _record(row) -> AdminAreaRecord:
    mapping = row._mapping
    return AdminAreaRecord(
        id=mapping["id"],
        country_iso3=mapping["country_iso3"],
        level=mapping["level"],
        parent_id=mapping["parent_id"],
        code=mapping["code"],
        name=mapping["name"],
        level_label=mapping["level_label"],
        geometry_wkt=mapping.get("geometry_wkt"),
        has_geometry=bool(mapping["has_geometry"]),
        source=mapping["source"],
        updated_at=mapping["updated_at"],
    )


def _geom_element(record: AdminAreaRecord) -> Optional[WKTElement]:
    if record.geometry is None:
        return None
    return WKTElement(record.geometry_wkt or record.geometry.wkt, srid=4326)


class PostgisAdminAreaStore(AdminAreaStore):
    """
    @brief Hierarchy store bound to one SQLAlchemy session

    @param db Session; the caller owns its lifecycle
    """

    def __init__(self, db: Session):
        self.db = db

    def ping(self) -> None:
        try:
            self.db.execute(text("SELECT 1"))
        except OperationalError as e:
            raise StoreUnavailableError(str(e)) from e

    def recover(self) -> None:
        # A failed statement leaves PostgreSQL in "current transaction is aborted"
        self.db.rollback()

    def clear(self) -> int:
        deleted = self.db.query(AdminArea).delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Deleted {deleted} admin areas")
        return deleted

    def areas_by_code(self, country_iso3: Optional[str], level: int) -> Dict[str, AdminAreaRecord]:
        query = self.db.query(*_ROW_COLUMNS).filter(AdminArea.level == level)
        if country_iso3 is not None:
            query = query.filter(AdminArea.country_iso3 == country_iso3)
        return {row.code: _record(row) for row in query.all()}

    def country_codes(self, iso3_filter: Optional[str] = None) -> List[str]:
        query = self.db.query(AdminArea.country_iso3).filter(AdminArea.level == 0)
        if iso3_filter is not None:
            query = query.filter(AdminArea.country_iso3 == iso3_filter)
        return [code for (code,) in query.distinct().order_by(AdminArea.country_iso3).all()]

    def save_level(self, inserts: Sequence[AdminAreaRecord], updates: Sequence[AdminAreaRecord]) -> None:
        if not inserts and not updates:
            return
        now = datetime.now(timezone.utc)
        try:
            new_rows = []
            for record in inserts:
                row = AdminArea(
                    country_iso3=record.country_iso3,
                    level=record.level,
                    parent_id=record.parent_id,
                    code=record.code,
                    name=record.name,
                    level_label=record.level_label,
                    geom=_geom_element(record),
                    geometry_wkt=record.geometry_wkt,
                    source=record.source,
                )
                self.db.add(row)
                new_rows.append((record, row))

            if updates:
                mappings = []
                for record in updates:
                    mapping = {
                        "id": record.id,
                        "parent_id": record.parent_id,
                        "name": record.name,
                        "level_label": record.level_label,
                        "geometry_wkt": record.geometry_wkt,
                        "source": record.source,
                        "geom": _geom_element(record),
                        "updated_at": now,
                    }
                    mappings.append(mapping)
                self.db.execute(update(AdminArea), mappings)
                for record in updates:
                    record.updated_at = now

            self.db.flush()
            for record, row in new_rows:
                record.id = row.id
                record.updated_at = row.updated_at
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def count(self, country_iso3: Optional[str] = None) -> int:
        query = self.db.query(func.count(AdminArea.id))
        if country_iso3 is not None:
            query = query.filter(AdminArea.country_iso3 == country_iso3)
        return int(query.scalar() or 0)

    def find_leaf(self, country_iso3: str, lon: float, lat: float) -> Optional[AdminAreaRecord]:
        row = self.db.execute(leaf_statement(country_iso3, lon, lat)).first()
        return _record(row) if row is not None else None

    def get(self, area_id: int) -> Optional[AdminAreaRecord]:
        row = self.db.query(*_ROW_COLUMNS).filter(AdminArea.id == area_id).first()
        return _record(row) if row is not None else None

    def ancestors(self, leaf_id: int) -> List[AdminAreaRecord]:
        rows = self.db.execute(text(ANCESTORS_SQL), {"leaf_id": leaf_id}).all()
        return [_record(row) for row in rows]

    def simplified_geometry(self, area_id: int, tolerance_degrees: float) -> Optional[BaseGeometry]:
        wkb = self.db.execute(
            text(SIMPLIFY_SQL),
            {"area_id": area_id, "tolerance": float(tolerance_degrees)},
        ).scalar()
        if wkb is None:
            return None
        return shapely.set_srid(shapely.wkb.loads(bytes(wkb)), 4326)

    def search(
        self,
        country_iso3: Optional[str] = None,
        level: Optional[int] = None,
        parent_id: Optional[int] = None,
        q: Optional[str] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[int, List[AdminAreaRecord]]:
        query = self.db.query(*_ROW_COLUMNS)
        if country_iso3 is not None:
            query = query.filter(AdminArea.country_iso3 == country_iso3)
        if level is not None:
            query = query.filter(AdminArea.level == level)
        if parent_id is not None:
            query = query.filter(AdminArea.parent_id == parent_id)
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(AdminArea.name.ilike(pattern), AdminArea.code.ilike(pattern)))

        total = query.order_by(None).count()
        rows = query.order_by(AdminArea.name, AdminArea.id).offset(skip).limit(take).all()
        return total, [_record(row) for row in rows]

    def level_summary(self, country_iso3: str) -> List[Dict[str, Any]]:
        counts = (
            self.db.query(AdminArea.level, func.count(AdminArea.id))
            .filter(AdminArea.country_iso3 == country_iso3)
            .group_by(AdminArea.level)
            .order_by(AdminArea.level)
            .all()
        )
        labels = (
            self.db.query(AdminArea.level, AdminArea.level_label)
            .filter(AdminArea.country_iso3 == country_iso3, AdminArea.level_label.isnot(None))
            .distinct()
            .order_by(AdminArea.level, AdminArea.level_label)
            .all()
        )
        by_level: Dict[int, List[str]] = {}
        for level, label in labels:
            by_level.setdefault(level, []).append(label)
        return [
            {"level": level, "count": int(count), "level_labels": by_level.get(level, [])}
            for level, count in counts
        ]

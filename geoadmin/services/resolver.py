"""
@file resolver.py
@brief Point-to-hierarchy resolution and geometry projection

@details
Given a point and a country, finds the deepest stored area whose polygon
intersects the point and rebuilds its root-to-leaf path. Two ancestor
strategies are offered and must agree:

- iterative: one store lookup per hop following parent_id
- single query: one ancestor-walk round trip, then sorted by level

Either way the path starts at level 0; when no real country row is reachable
a synthetic root {level 0, code ISO3, name ISO3} is prepended.

Geometry projection simplifies polygons for map display. The tolerance comes
from an explicit value in meters, else from the zoom table below, else no
simplification. Meters are turned into degrees with a fixed
meters-per-degree-of-latitude factor.

@author GeoAdmin Project
@date 2026-10-06
@version 1.0
@license AGPL-3.0
"""

import logging
from typing import List, Optional

import shapely
from shapely.geometry import mapping

from geoadmin.schemas.admin_area import AdminAreaGeoJson, ResolvedAdminArea, ResolvePointResponse
from geoadmin.services.store.base import AdminAreaRecord, AdminAreaStore

logger = logging.getLogger(__name__)

METERS_PER_DEGREE_LAT = 111_320.0

## @brief (max zoom, tolerance meters); coarser zoom -> larger tolerance
ZOOM_TOLERANCE_TABLE = (
    (3, 20_000.0),
    (5, 10_000.0),
    (7, 5_000.0),
    (9, 1_000.0),
    (11, 300.0),
    (13, 80.0),
)
FINEST_TOLERANCE_METERS = 15.0


def zoom_to_tolerance_meters(zoom: float) -> float:
    for max_zoom, tolerance in ZOOM_TOLERANCE_TABLE:
        if zoom <= max_zoom:
            return tolerance
    return FINEST_TOLERANCE_METERS


def meters_to_degrees(meters: float) -> float:
    return max(0.0, meters / METERS_PER_DEGREE_LAT)


def resolve_tolerance_meters(zoom: Optional[float] = None,
                             tolerance_meters: Optional[float] = None) -> Optional[float]:
    """Explicit tolerance (clamped at 0) wins over zoom; neither means no simplification."""
    if tolerance_meters is not None:
        return max(0.0, tolerance_meters)
    if zoom is not None:
        return zoom_to_tolerance_meters(zoom)
    return None


def normalize_iso3(iso3: str) -> str:
    return iso3.strip().upper()


def synthetic_root(iso3: str) -> ResolvedAdminArea:
    return ResolvedAdminArea(level=0, code=iso3, name=iso3)


def _node(record: AdminAreaRecord) -> ResolvedAdminArea:
    return ResolvedAdminArea(
        id=record.id,
        level=record.level,
        parent_id=record.parent_id,
        code=record.code,
        name=record.name,
        level_label=record.level_label,
    )


def _rooted(iso3: str, path: List[ResolvedAdminArea]) -> List[ResolvedAdminArea]:
    if not path or path[0].level != 0:
        path.insert(0, synthetic_root(iso3))
    return path


class HierarchyResolver:
    """
    Read-only queries over the store for the resolve and geometry endpoints.

    Args:
        store: Hierarchy store
    """

    def __init__(self, store: AdminAreaStore):
        self.store = store

    def resolve_point(self, lat: float, lon: float, iso3: str) -> ResolvePointResponse:
        """Resolve with one store lookup per ancestor hop."""
        iso3 = normalize_iso3(iso3)
        leaf = self.store.find_leaf(iso3, lon, lat)
        if leaf is None:
            return ResolvePointResponse(country_iso3=iso3, path=[synthetic_root(iso3)])

        reversed_path: List[ResolvedAdminArea] = []
        seen = set()
        current_id: Optional[int] = leaf.id
        while current_id is not None and current_id not in seen:
            seen.add(current_id)
            record = self.store.get(current_id)
            if record is None:
                break
            reversed_path.append(_node(record))
            current_id = record.parent_id

        reversed_path.reverse()
        return ResolvePointResponse(country_iso3=iso3, path=_rooted(iso3, reversed_path))

    def resolve_point_single_query(self, lat: float, lon: float, iso3: str) -> ResolvePointResponse:
        """Resolve with one ancestor-walk round trip."""
        iso3 = normalize_iso3(iso3)
        leaf = self.store.find_leaf(iso3, lon, lat)
        if leaf is None:
            return ResolvePointResponse(country_iso3=iso3, path=[synthetic_root(iso3)])

        # No ordering guarantee from the walk; depth grows with level
        rows = sorted(self.store.ancestors(leaf.id), key=lambda row: row.level)
        path = [_node(row) for row in rows]
        return ResolvePointResponse(country_iso3=iso3, path=_rooted(iso3, path))

    def get_geometry_geojson(
        self,
        area_id: int,
        zoom: Optional[float] = None,
        tolerance_meters: Optional[float] = None,
    ) -> Optional[AdminAreaGeoJson]:
        """
        Project an area's geometry as a GeoJSON Feature.

        Returns:
            None if the id is unknown; a shell with geojson=None when the row
            has no geometry; otherwise the (possibly simplified) Feature.
        """
        record = self.store.get(area_id)
        if record is None:
            return None

        shell = AdminAreaGeoJson(
            id=record.id,
            country_iso3=record.country_iso3,
            level=record.level,
            code=record.code,
            name=record.name,
            zoom=zoom,
        )
        if not record.has_geometry:
            return shell

        used_tolerance = resolve_tolerance_meters(zoom, tolerance_meters)
        degrees = meters_to_degrees(used_tolerance) if used_tolerance and used_tolerance > 0 else 0.0
        geometry = self.store.simplified_geometry(area_id, degrees)
        if geometry is None:
            return shell
        geometry = shapely.set_srid(geometry, 4326)

        shell.simplify_tolerance_meters = used_tolerance
        shell.geojson = {
            "type": "Feature",
            "geometry": mapping(geometry),
            "properties": {
                "id": record.id,
                "level": record.level,
                "code": record.code,
                "name": record.name,
                "iso3": record.country_iso3,
            },
        }
        logger.debug(f"Geometry {area_id}: tolerance {used_tolerance} m ({degrees:.6f} deg)")
        return shell

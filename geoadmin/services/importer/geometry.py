"""
Geometry Normalization

Pure transforms applied to every upstream geometry before it reaches the
store:

- ring orientation: exterior rings counter-clockwise, holes clockwise, which
  is what the geography predicate engine assumes
- spatial reference: stamped as EPSG:4326
- fingerprint: WKT text used only for change detection

The orientation pass recurses by geometry kind
(Polygon -> MultiPolygon -> GeometryCollection); other kinds pass through.

Author: GeoAdmin Project
License: AGPL-3.0
"""

from typing import Optional

import shapely
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

SRID_WGS84 = 4326


def normalize_orientation(geometry: BaseGeometry) -> BaseGeometry:
    """Return `geometry` with CCW shells and CW holes at every polygon level."""
    if isinstance(geometry, Polygon):
        return orient(geometry, sign=1.0)
    if isinstance(geometry, MultiPolygon):
        return MultiPolygon([orient(polygon, sign=1.0) for polygon in geometry.geoms])
    if isinstance(geometry, GeometryCollection):
        return GeometryCollection([normalize_orientation(part) for part in geometry.geoms])
    return geometry


def ensure_srid_4326(geometry: BaseGeometry) -> BaseGeometry:
    return shapely.set_srid(geometry, SRID_WGS84)


def prepare_geometry(geometry: Optional[BaseGeometry]) -> Optional[BaseGeometry]:
    """Orientation + SRID normalization; None stays None."""
    if geometry is None or geometry.is_empty:
        return None
    return ensure_srid_4326(normalize_orientation(geometry))


def fingerprint(geometry: Optional[BaseGeometry]) -> Optional[str]:
    """WKT mirror of a geometry. Two geometries differ iff their text differs."""
    if geometry is None:
        return None
    return geometry.wkt

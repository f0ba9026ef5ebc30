"""
Geometry Normalization Tests

Author: GeoAdmin Project
License: AGPL-3.0
"""

import shapely
from shapely.geometry import GeometryCollection, LineString, MultiPolygon, Point, Polygon

from geoadmin.services.importer.geometry import (
    ensure_srid_4326,
    fingerprint,
    normalize_orientation,
    prepare_geometry,
)

# Clockwise shell with a counter-clockwise hole
CW_SHELL = [(0, 0), (0, 10), (10, 10), (10, 0), (0, 0)]
CCW_HOLE = [(2, 2), (4, 2), (4, 4), (2, 4), (2, 2)]


def test_polygon_shell_becomes_ccw_and_holes_cw():
    polygon = normalize_orientation(Polygon(CW_SHELL, [CCW_HOLE]))
    assert polygon.exterior.is_ccw
    assert not polygon.interiors[0].is_ccw


def test_multipolygon_each_part_oriented():
    multi = MultiPolygon([Polygon(CW_SHELL), Polygon([(20, 20), (20, 30), (30, 30), (30, 20), (20, 20)])])
    result = normalize_orientation(multi)
    assert isinstance(result, MultiPolygon)
    assert all(part.exterior.is_ccw for part in result.geoms)


def test_collection_recurses():
    collection = GeometryCollection([Polygon(CW_SHELL), Point(1, 1)])
    result = normalize_orientation(collection)
    assert result.geoms[0].exterior.is_ccw
    assert result.geoms[1].equals(Point(1, 1))


def test_other_kinds_pass_through():
    line = LineString([(0, 0), (1, 1)])
    assert normalize_orientation(line) is line


def test_orientation_keeps_area():
    polygon = Polygon(CW_SHELL, [CCW_HOLE])
    assert normalize_orientation(polygon).area == polygon.area


def test_srid_stamped():
    assert shapely.get_srid(ensure_srid_4326(Point(1, 2))) == 4326


def test_prepare_none_and_empty():
    assert prepare_geometry(None) is None
    assert prepare_geometry(Polygon()) is None


def test_prepare_orients_and_stamps():
    prepared = prepare_geometry(Polygon(CW_SHELL))
    assert prepared.exterior.is_ccw
    assert shapely.get_srid(prepared) == 4326


def test_fingerprint_is_wkt():
    polygon = prepare_geometry(Polygon(CW_SHELL))
    assert fingerprint(polygon) == polygon.wkt
    assert fingerprint(polygon).startswith("POLYGON")
    assert fingerprint(None) is None


def test_fingerprint_detects_change():
    a = prepare_geometry(Polygon(CW_SHELL))
    b = prepare_geometry(Polygon([(0, 0), (0, 11), (10, 10), (10, 0), (0, 0)]))
    assert fingerprint(a) != fingerprint(b)
    assert fingerprint(a) == fingerprint(prepare_geometry(Polygon(CW_SHELL)))

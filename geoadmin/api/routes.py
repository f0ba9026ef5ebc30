"""
@file routes.py
@brief FastAPI endpoint definitions for the GeoAdmin backend

@details
Provides RESTful endpoints under /api/geo for:
- Boundary import from the ArcGIS FeatureServer (summary with typed errors)
- Paged listing, detail and geometry of administrative areas
- Point -> administrative path resolution (iterative and single-query)
- Address -> point -> path resolution through the geocoder
- Per-level inspection of an imported country

Geometry projections are cached in Redis and invalidated after every import.

@author GeoAdmin Project
@date 2026-10-08
@version 1.0
@license AGPL-3.0

@see services.importer.pipeline for the import algorithm
@see services.resolver for point resolution
@see api.dependencies for store/service wiring
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from starlette.concurrency import run_in_threadpool

from geoadmin.api.dependencies import get_geocoder, get_import_service, get_resolver, get_store
from geoadmin.core.cache import cache, geometry_cache_key
from geoadmin.core.config import get_settings
from geoadmin.schemas.admin_area import (
    AdminAreaDetail,
    AdminAreaGeoJson,
    AdminAreaGeometry,
    AdminAreaListItem,
    AdminAreaPage,
    AdminSummary,
    LevelSummary,
    ResolveFromAddressRequest,
    ResolveFromAddressResponse,
    ResolvePointResponse,
)
from geoadmin.schemas.import_summary import ImportSummary
from geoadmin.services.arcgis.errors import NoCandidateError
from geoadmin.services.arcgis.geocoding import ArcgisGeocodingService
from geoadmin.services.importer.pipeline import AdminImportService
from geoadmin.services.resolver import HierarchyResolver, normalize_iso3
from geoadmin.services.store.base import AdminAreaStore

## @brief FastAPI router instance for API endpoints
router = APIRouter(prefix=get_settings().api_prefix, tags=["GeoAdmin"])

## @brief Module-level logger for request/response debugging
logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


def _require_iso3(iso3: Optional[str]) -> str:
    if iso3 is None or not iso3.strip():
        raise HTTPException(status_code=400, detail="iso3 is required")
    return normalize_iso3(iso3)


def _validate_point(lat: float, lon: float) -> None:
    if not -90 <= lat <= 90:
        raise HTTPException(status_code=400, detail="lat must be between -90 and 90")
    if not -180 <= lon <= 180:
        raise HTTPException(status_code=400, detail="lon must be between -180 and 180")


# ----------------------------------------------------------------------------
# Import
# ----------------------------------------------------------------------------

@router.post("/import/esri", response_model=ImportSummary)
async def import_esri(
    hard_reset: bool = Query(False, alias="hardReset"),
    iso3: Optional[str] = Query(None),
    max_level: Optional[int] = Query(None, alias="maxLevel"),
    service: AdminImportService = Depends(get_import_service),
):
    """
    @brief Import (or refresh) administrative boundaries

    @param hardReset Delete every admin area first
    @param iso3 Restrict levels >= 1 to one country
    @param maxLevel Deepest level to import, 0..MAX_LEVEL_LIMIT

    @return ImportSummary (totals, per-country breakdown, typed errors)

    @throws HTTPException(400): maxLevel out of range
    """
    settings = get_settings()
    if max_level is None:
        max_level = settings.default_max_level
    if not 0 <= max_level <= settings.max_level_limit:
        raise HTTPException(
            status_code=400,
            detail=f"maxLevel must be between 0 and {settings.max_level_limit}",
        )
    iso3 = normalize_iso3(iso3) if iso3 and iso3.strip() else None

    logger.info(f"Import requested: iso3={iso3}, maxLevel={max_level}, hardReset={hard_reset}")
    summary = await run_in_threadpool(service.import_all, hard_reset, iso3, max_level)

    await cache.invalidate_geometries()
    return summary


# ----------------------------------------------------------------------------
# Listing and detail
# ----------------------------------------------------------------------------

@router.get("/admin-areas", response_model=AdminAreaPage)
def list_admin_areas(
    country_iso3: Optional[str] = Query(None, alias="countryIso3"),
    level: Optional[int] = Query(None),
    parent_id: Optional[int] = Query(None, alias="parentId"),
    q: Optional[str] = Query(None),
    skip: int = Query(0),
    take: int = Query(50),
    store: AdminAreaStore = Depends(get_store),
):
    """
    @brief Paged, filtered listing ordered by name

    @details skip < 0 becomes 0; take is clamped to 1..200; q matches name or code
    """
    skip = max(skip, 0)
    take = min(max(take, 1), MAX_PAGE_SIZE)
    country_iso3 = normalize_iso3(country_iso3) if country_iso3 and country_iso3.strip() else None
    q = q.strip() if q and q.strip() else None

    total, rows = store.search(country_iso3, level, parent_id, q, skip, take)
    items = [
        AdminAreaListItem(
            id=row.id,
            level=row.level,
            parent_id=row.parent_id,
            code=row.code,
            name=row.name,
            level_label=row.level_label,
        )
        for row in rows
    ]
    return AdminAreaPage(items=items, total=total, skip=skip, take=take)


@router.get("/admin-areas/{area_id}", response_model=AdminAreaDetail)
def get_admin_area(area_id: int, store: AdminAreaStore = Depends(get_store)):
    row = store.get(area_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Admin area {area_id} not found")
    return AdminAreaDetail(
        id=row.id,
        country_iso3=row.country_iso3,
        level=row.level,
        parent_id=row.parent_id,
        code=row.code,
        name=row.name,
        level_label=row.level_label,
        source=row.source,
        updated_at=row.updated_at,
        has_geometry=row.has_geometry,
    )


@router.get("/admin-areas/{area_id}/geometry-geojson", response_model=AdminAreaGeoJson)
async def get_geometry_geojson(
    area_id: int,
    zoom: Optional[float] = Query(None),
    tolerance_meters: Optional[float] = Query(None, alias="toleranceMeters"),
    resolver: HierarchyResolver = Depends(get_resolver),
):
    """
    @brief GeoJSON Feature of an area, simplified for the map zoom

    @details
    Cached in Redis for GEOMETRY_CACHE_TTL seconds.

    @return 200 with the Feature, 204 when the area has no geometry
    @throws HTTPException(404): unknown id
    """
    cache_key = geometry_cache_key(area_id, zoom, tolerance_meters)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    result = await run_in_threadpool(resolver.get_geometry_geojson, area_id, zoom, tolerance_meters)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Admin area {area_id} not found")
    if result.geojson is None:
        return Response(status_code=204)

    payload = result.model_dump(mode="json")
    await cache.set(cache_key, payload, ttl=get_settings().geometry_cache_ttl)
    return payload


@router.get("/admin-areas/{area_id}/geometry", response_model=AdminAreaGeometry)
def get_geometry_wkt(area_id: int, store: AdminAreaStore = Depends(get_store)):
    """
    @brief WKT debug mirror of the stored geometry (404 unknown, 204 none)
    """
    row = store.get(area_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Admin area {area_id} not found")
    if not row.geometry_wkt or not row.geometry_wkt.strip():
        return Response(status_code=204)
    return AdminAreaGeometry(
        id=row.id,
        country_iso3=row.country_iso3,
        level=row.level,
        code=row.code,
        name=row.name,
        geometry_wkt=row.geometry_wkt,
    )


# ----------------------------------------------------------------------------
# Resolve
# ----------------------------------------------------------------------------

@router.get("/resolve-point", response_model=ResolvePointResponse)
def resolve_point(
    lat: float = Query(...),
    lon: float = Query(...),
    iso3: Optional[str] = Query(None),
    resolver: HierarchyResolver = Depends(get_resolver),
):
    """
    @brief Administrative path (root first) of the deepest area containing the point

    @details One store lookup per ancestor.
    """
    _validate_point(lat, lon)
    return resolver.resolve_point(lat, lon, _require_iso3(iso3))


@router.get("/resolve-point-cte", response_model=ResolvePointResponse)
def resolve_point_cte(
    lat: float = Query(...),
    lon: float = Query(...),
    iso3: Optional[str] = Query(None),
    resolver: HierarchyResolver = Depends(get_resolver),
):
    """
    @brief Same as /resolve-point, ancestors fetched by one recursive query
    """
    _validate_point(lat, lon)
    return resolver.resolve_point_single_query(lat, lon, _require_iso3(iso3))


@router.post("/resolve-from-address", response_model=ResolveFromAddressResponse)
def resolve_from_address(
    request: ResolveFromAddressRequest,
    resolver: HierarchyResolver = Depends(get_resolver),
    geocoder: ArcgisGeocodingService = Depends(get_geocoder),
):
    """
    @brief Geocode an address, then resolve its administrative path

    @throws HTTPException(400): blank address or iso3
    @throws HTTPException(404): the geocoder found no candidate
    """
    if not request.address.strip():
        raise HTTPException(status_code=400, detail="address is required")
    iso3 = _require_iso3(request.iso3)

    try:
        lat, lon = geocoder.geocode(request.address, request.language)
    except NoCandidateError as e:
        raise HTTPException(status_code=404, detail=e.message)

    return ResolveFromAddressResponse(
        address=request.address,
        lat=lat,
        lon=lon,
        result=resolver.resolve_point(lat, lon, iso3),
    )


# ----------------------------------------------------------------------------
# Inspection
# ----------------------------------------------------------------------------

@router.get("/admin-summary/{iso3}", response_model=AdminSummary)
def admin_summary(iso3: str, store: AdminAreaStore = Depends(get_store)):
    """
    @brief Row count and distinct level labels per level of a country
    """
    iso3 = _require_iso3(iso3)
    levels = [LevelSummary(**entry) for entry in store.level_summary(iso3)]
    return AdminSummary(country_iso3=iso3, levels=levels)

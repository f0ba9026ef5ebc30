"""
FastAPI dependencies wiring stores and services per request.

STORE_BACKEND selects the hierarchy store: "postgis" opens one SQLAlchemy
session per request, "memory" shares one process-local store.
"""

from functools import lru_cache

from fastapi import Depends

from geoadmin.core.config import get_settings
from geoadmin.services.arcgis.feature_client import FeatureServiceClient
from geoadmin.services.arcgis.geocoding import ArcgisGeocodingService
from geoadmin.services.importer.pipeline import AdminImportService
from geoadmin.services.resolver import HierarchyResolver
from geoadmin.services.store.base import AdminAreaStore
from geoadmin.services.store.memory import InMemoryAdminAreaStore


@lru_cache
def get_memory_store() -> InMemoryAdminAreaStore:
    return InMemoryAdminAreaStore()


def get_store():
    if get_settings().store_backend == "memory":
        yield get_memory_store()
        return

    from geoadmin.db.database import SessionLocal
    from geoadmin.services.store.postgis import PostgisAdminAreaStore

    db = SessionLocal()
    try:
        yield PostgisAdminAreaStore(db)
    finally:
        db.close()


@lru_cache
def get_feature_client() -> FeatureServiceClient:
    settings = get_settings()
    return FeatureServiceClient(settings.feature_service_url, timeout=settings.feature_service_timeout)


@lru_cache
def get_geocoder() -> ArcgisGeocodingService:
    settings = get_settings()
    return ArcgisGeocodingService(
        settings.geocode_base_url,
        token=settings.arcgis_auth_token,
        timeout=settings.geocode_timeout,
    )


def get_resolver(store: AdminAreaStore = Depends(get_store)) -> HierarchyResolver:
    return HierarchyResolver(store)


def get_import_service(
    store: AdminAreaStore = Depends(get_store),
    client: FeatureServiceClient = Depends(get_feature_client),
) -> AdminImportService:
    return AdminImportService(store, client, settings=get_settings())

"""
Test Configuration and Shared Fixtures

This module provides shared pytest fixtures and configuration for the test suite.
The whole suite runs without PostgreSQL, Redis or network access: the
hierarchy store is the in-memory implementation and the ArcGIS FeatureServer
is played by a scripted fake session.

Fixtures:
- settings: Settings tuned for tests (no exports, small batches)
- fast_executor: RetryExecutor that never sleeps
- feature_service: FakeFeatureService preloaded with ESP and FRA layers
- import_service: AdminImportService over a memory store and the fake service
- populated_store: memory store holding ESP -> Madrid -> Centro

Author: GeoAdmin Project
License: AGPL-3.0
"""

import json
import logging
import os
import re

import pytest
from shapely.geometry import box, mapping

# Must be set before anything calls get_settings()
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_OUTPUT", "stdout")

from geoadmin.core.config import Settings
from geoadmin.services.arcgis.feature_client import FeatureServiceClient
from geoadmin.services.arcgis.retry import RetryExecutor
from geoadmin.services.importer.exports import ImportExporter
from geoadmin.services.importer.pipeline import AdminImportService
from geoadmin.services.store.base import AdminAreaRecord
from geoadmin.services.store.memory import InMemoryAdminAreaStore

# Configure logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

FAKE_SERVICE_URL = "https://fake.example.org/arcgis/rest/services/Admin/FeatureServer"

MADRID = box(-4.0, 40.0, -3.0, 41.0)
CENTRO = box(-3.8, 40.3, -3.6, 40.5)
BARCELONA = box(1.5, 41.0, 2.5, 42.0)
ILE_DE_FRANCE = box(1.5, 48.0, 3.5, 49.5)
PARIS = box(2.2, 48.8, 2.5, 48.9)


# Mark test categories for selective running
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (slower)")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "importer: Import pipeline tests")
    config.addinivalue_line("markers", "resolver: Hierarchy resolution tests")
    config.addinivalue_line("markers", "models: Database model tests")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        path = str(item.fspath)
        if "test_api" in path:
            item.add_marker(pytest.mark.api)
        elif "test_importer" in path:
            item.add_marker(pytest.mark.importer)
            item.add_marker(pytest.mark.integration)
        elif "test_resolver" in path:
            item.add_marker(pytest.mark.resolver)
        elif "test_models" in path:
            item.add_marker(pytest.mark.models)

        if "integration" not in item.keywords:
            item.add_marker(pytest.mark.unit)


# --------------------------------------------------------------------------
# Fake ArcGIS FeatureServer
# --------------------------------------------------------------------------

class FakeResponse:
    """requests.Response stand-in: the executor only reads these three fields."""

    def __init__(self, status_code=200, reason="OK", text=""):
        self.status_code = status_code
        self.reason = reason
        self.text = text


def json_response(payload, status_code=200, reason="OK"):
    return FakeResponse(status_code, reason, json.dumps(payload))


def error_envelope(code, message, details=None):
    return json_response({"error": {"code": code, "message": message, "details": details or []}})


def feature(geometry=None, **properties):
    return {"properties": properties, "geometry": mapping(geometry) if geometry is not None else None}


def default_layers():
    """Two countries; ESP goes down to districts, FRA to level 3."""
    return {
        0: [
            feature(adm0_cd="ESP", adm0_nm="Spain", level_label="Country"),
            feature(adm0_cd="FRA", adm0_nm="France", level_label="Country"),
        ],
        1: [
            feature(MADRID, adm0_cd="ESP", adm1_cd="ESP-MD", adm1_nm="Madrid", level_label="Province"),
            feature(BARCELONA, adm0_cd="ESP", adm1_cd="ESP-B", adm1_nm="Barcelona", level_label="Province"),
            feature(ILE_DE_FRANCE, adm0_cd="FRA", adm1_cd="FRA-IDF", adm1_nm="Ile-de-France",
                    level_label="Region"),
        ],
        2: [
            feature(CENTRO, adm0_cd="ESP", adm1_cd="ESP-MD", adm2_cd="ESP-MD-C", adm2_nm="Centro",
                    level_label="District"),
            feature(PARIS, adm0_cd="FRA", adm1_cd="FRA-IDF", adm2_cd="FRA-75", adm2_nm="Paris",
                    level_label="Department"),
        ],
        3: [
            feature(PARIS, adm0_cd="FRA", adm2_cd="FRA-75", adm3_cd="FRA-75-1", adm3_nm="Paris 1er",
                    level_label="Arrondissement"),
        ],
    }


class FakeFeatureService:
    """
    Scripted FeatureServer answering ids and features queries per layer.

    Scripted responses are consumed first, per (level, kind[, iso3]); after
    that the service answers from `layers`. Every call is recorded.
    """

    WHERE_ISO3 = re.compile(r"adm0_cd='([A-Z]{3})'")

    def __init__(self, layers=None):
        self.layers = layers if layers is not None else default_layers()
        self.scripted = {}
        self.calls = []

    def script(self, level, kind, *responses, iso3=None):
        self.scripted.setdefault((level, kind, iso3), []).extend(responses)

    def post(self, url, data=None, timeout=None):
        level = int(url.rstrip("/").split("/")[-2])
        kind = "ids" if data.get("returnIdsOnly") == "true" else "features"
        iso3 = self._iso3_of(level, kind, data)
        self.calls.append((level, kind, iso3, dict(data)))

        for key in ((level, kind, iso3), (level, kind, None)):
            queue = self.scripted.get(key)
            if queue:
                return queue.pop(0)

        if kind == "ids":
            return json_response({"objectIdFieldName": "OBJECTID", "objectIds": self._match(level, data["where"])})
        return json_response(self._collection(level, data))

    def calls_for(self, level, kind=None):
        return [c for c in self.calls if c[0] == level and (kind is None or c[1] == kind)]

    def _rows(self, level):
        return list(enumerate(self.layers.get(level, []), start=1))

    def _match(self, level, where):
        if where == "1=1":
            return [oid for oid, _ in self._rows(level)]
        iso3 = self.WHERE_ISO3.search(where).group(1)
        return [oid for oid, row in self._rows(level) if row["properties"].get("adm0_cd") == iso3]

    def _iso3_of(self, level, kind, data):
        if kind == "ids":
            found = self.WHERE_ISO3.search(data.get("where", ""))
            return found.group(1) if found else None
        ids = [int(i) for i in data.get("objectIds", "").split(",") if i]
        rows = dict(self._rows(level))
        if ids and ids[0] in rows:
            return rows[ids[0]]["properties"].get("adm0_cd") if level > 0 else None
        return None

    def _collection(self, level, data):
        wanted = {int(i) for i in data["objectIds"].split(",") if i}
        fields = None if data.get("outFields", "*") == "*" else set(data["outFields"].split(","))
        with_geometry = data.get("returnGeometry") == "true"
        features = []
        for oid, row in self._rows(level):
            if oid not in wanted:
                continue
            properties = dict(row["properties"], OBJECTID=oid)
            if fields is not None:
                properties = {k: v for k, v in properties.items() if k in fields}
            features.append({
                "type": "Feature",
                "id": oid,
                "geometry": row["geometry"] if with_geometry else None,
                "properties": properties,
            })
        return {"type": "FeatureCollection", "features": features}


# --------------------------------------------------------------------------
# Fixtures
# --------------------------------------------------------------------------

@pytest.fixture
def settings():
    """Settings with exports disabled and a breaker that can trip from level 2."""
    return Settings(
        store_backend="memory",
        import_export_dir=None,
        import_max_retries=3,
        breaker_level_threshold=2,
        breaker_failure_threshold=3,
        default_max_level=3,
        max_error_payload_chars=200,
    )


@pytest.fixture
def fast_executor():
    return RetryExecutor(max_attempts=3, base_delay=0.0, jitter=0.0, sleep=lambda seconds: None)


@pytest.fixture
def memory_store():
    return InMemoryAdminAreaStore()


@pytest.fixture
def feature_service():
    return FakeFeatureService()


@pytest.fixture
def feature_client(feature_service):
    return FeatureServiceClient(FAKE_SERVICE_URL, session=feature_service)


@pytest.fixture
def import_service(memory_store, feature_client, fast_executor, settings):
    return AdminImportService(
        memory_store,
        feature_client,
        executor=fast_executor,
        settings=settings,
        exporter=ImportExporter(None),
    )


@pytest.fixture
def populated_store():
    """
    ESP (no geometry) -> Madrid -> Centro, plus Barcelona.

    Returns:
        InMemoryAdminAreaStore: store with ids assigned in that order
    """
    store = InMemoryAdminAreaStore()
    spain = AdminAreaRecord(country_iso3="ESP", level=0, code="ESP", name="Spain", level_label="Country")
    store.save_level([spain], [])

    madrid = AdminAreaRecord(country_iso3="ESP", level=1, code="ESP-MD", name="Madrid", parent_id=spain.id,
                             level_label="Province", geometry=MADRID, geometry_wkt=MADRID.wkt)
    barcelona = AdminAreaRecord(country_iso3="ESP", level=1, code="ESP-B", name="Barcelona",
                                parent_id=spain.id, level_label="Province",
                                geometry=BARCELONA, geometry_wkt=BARCELONA.wkt)
    store.save_level([madrid, barcelona], [])

    centro = AdminAreaRecord(country_iso3="ESP", level=2, code="ESP-MD-C", name="Centro", parent_id=madrid.id,
                             level_label="District", geometry=CENTRO, geometry_wkt=CENTRO.wkt)
    store.save_level([centro], [])
    return store

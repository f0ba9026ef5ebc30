"""
In-Memory Store Tests

Author: GeoAdmin Project
License: AGPL-3.0
"""

import pytest

from geoadmin.services.store.base import AdminAreaRecord
from geoadmin.services.store.memory import InMemoryAdminAreaStore
from tests.conftest import CENTRO


class TestWrites:

    def test_save_assigns_ids_and_timestamps(self):
        store = InMemoryAdminAreaStore()
        records = [
            AdminAreaRecord(country_iso3="ESP", level=0, code="ESP", name="Spain"),
            AdminAreaRecord(country_iso3="FRA", level=0, code="FRA", name="France"),
        ]
        store.save_level(records, [])
        assert [r.id for r in records] == [1, 2]
        assert all(r.updated_at is not None for r in records)

    def test_duplicate_key_rejected(self, populated_store):
        with pytest.raises(ValueError):
            populated_store.save_level([AdminAreaRecord(country_iso3="ESP", level=1, code="ESP-MD", name="x")], [])
        assert populated_store.count() == 4

    def test_same_code_other_country_allowed(self, populated_store):
        populated_store.save_level([AdminAreaRecord(country_iso3="PRT", level=1, code="ESP-MD", name="x")], [])
        assert populated_store.count() == 5

    def test_update_unknown_id_rejected(self, populated_store):
        ghost = AdminAreaRecord(country_iso3="ESP", level=1, code="ESP-Z", name="Ghost", id=999)
        with pytest.raises(KeyError):
            populated_store.save_level([], [ghost])

    def test_update(self, populated_store):
        madrid = populated_store.areas_by_code("ESP", 1)["ESP-MD"]
        madrid.name = "Comunidad de Madrid"
        populated_store.save_level([], [madrid])
        assert populated_store.get(madrid.id).name == "Comunidad de Madrid"

    def test_reads_are_copies(self, populated_store):
        madrid = populated_store.areas_by_code("ESP", 1)["ESP-MD"]
        madrid.name = "changed"
        assert populated_store.get(madrid.id).name == "Madrid"

    def test_clear(self, populated_store):
        assert populated_store.clear() == 4
        assert populated_store.count() == 0


class TestReads:

    def test_areas_by_code_without_geometry(self, populated_store):
        rows = populated_store.areas_by_code("ESP", 1)
        assert set(rows) == {"ESP-MD", "ESP-B"}
        assert rows["ESP-MD"].geometry is None
        assert rows["ESP-MD"].has_geometry
        assert rows["ESP-MD"].geometry_wkt is not None

    def test_country_codes(self, populated_store):
        populated_store.save_level([AdminAreaRecord(country_iso3="FRA", level=0, code="FRA", name="France")], [])
        assert populated_store.country_codes() == ["ESP", "FRA"]
        assert populated_store.country_codes("FRA") == ["FRA"]
        assert populated_store.country_codes("ITA") == []

    def test_count_by_country(self, populated_store):
        assert populated_store.count("ESP") == 4
        assert populated_store.count("FRA") == 0

    def test_find_leaf_deepest(self, populated_store):
        assert populated_store.find_leaf("ESP", -3.7, 40.4).code == "ESP-MD-C"
        assert populated_store.find_leaf("ESP", -3.1, 40.9).code == "ESP-MD"
        assert populated_store.find_leaf("ESP", 10.0, 10.0) is None

    def test_find_leaf_on_boundary(self, populated_store):
        assert populated_store.find_leaf("ESP", -4.0, 40.5).code == "ESP-MD"

    def test_ancestors(self, populated_store):
        centro = populated_store.areas_by_code("ESP", 2)["ESP-MD-C"]
        chain = populated_store.ancestors(centro.id)
        assert sorted(r.code for r in chain) == ["ESP", "ESP-MD", "ESP-MD-C"]
        assert populated_store.ancestors(12345) == []

    def test_simplified_geometry(self, populated_store):
        centro = populated_store.areas_by_code("ESP", 2)["ESP-MD-C"]
        assert populated_store.simplified_geometry(centro.id, 0).equals(CENTRO)
        assert populated_store.simplified_geometry(9999, 0.1) is None

    def test_search(self, populated_store):
        total, rows = populated_store.search(country_iso3="ESP", level=1)
        assert total == 2
        assert [r.name for r in rows] == ["Barcelona", "Madrid"]

        total, rows = populated_store.search(q="madr")
        assert total == 1

        total, rows = populated_store.search(q="esp-md")
        assert {r.code for r in rows} == {"ESP-MD", "ESP-MD-C"}

        total, rows = populated_store.search(skip=1, take=2)
        assert total == 4
        assert len(rows) == 2

    def test_search_by_parent(self, populated_store):
        madrid = populated_store.areas_by_code("ESP", 1)["ESP-MD"]
        total, rows = populated_store.search(parent_id=madrid.id)
        assert [r.code for r in rows] == ["ESP-MD-C"]

    def test_level_summary(self, populated_store):
        assert populated_store.level_summary("ESP") == [
            {"level": 0, "count": 1, "level_labels": ["Country"]},
            {"level": 1, "count": 2, "level_labels": ["Province"]},
            {"level": 2, "count": 1, "level_labels": ["District"]},
        ]
        assert populated_store.level_summary("FRA") == []

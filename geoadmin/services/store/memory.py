"""
In-Memory Hierarchy Store

Process-local implementation of AdminAreaStore backed by shapely geometries.
Used when STORE_BACKEND=memory (demos, local development without PostGIS)
and by the test suite. Reads hand out copies, so callers can mutate records
freely until they call save_level.

Author: GeoAdmin Project
License: AGPL-3.0
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import shapely
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from geoadmin.services.store.base import AdminAreaRecord, AdminAreaStore

logger = logging.getLogger(__name__)


class InMemoryAdminAreaStore(AdminAreaStore):

    def __init__(self):
        self._rows: Dict[int, AdminAreaRecord] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def ping(self) -> None:
        return None

    def clear(self) -> int:
        with self._lock:
            deleted = len(self._rows)
            self._rows.clear()
            return deleted

    def areas_by_code(self, country_iso3: Optional[str], level: int) -> Dict[str, AdminAreaRecord]:
        with self._lock:
            return {
                row.code: _copy(row, with_geometry=False)
                for row in self._rows.values()
                if row.level == level and (country_iso3 is None or row.country_iso3 == country_iso3)
            }

    def country_codes(self, iso3_filter: Optional[str] = None) -> List[str]:
        with self._lock:
            codes = {
                row.country_iso3
                for row in self._rows.values()
                if row.level == 0 and (iso3_filter is None or row.country_iso3 == iso3_filter)
            }
        return sorted(codes)

    def save_level(self, inserts: Sequence[AdminAreaRecord], updates: Sequence[AdminAreaRecord]) -> None:
        now = datetime.now(timezone.utc)
        with self._lock:
            taken = {(r.country_iso3, r.level, r.code) for r in self._rows.values()}
            for record in inserts:
                key = (record.country_iso3, record.level, record.code)
                if key in taken:
                    raise ValueError(f"Duplicate admin area {key}")
                taken.add(key)

            for record in updates:
                if record.id not in self._rows:
                    raise KeyError(f"Admin area {record.id} does not exist")

            for record in inserts:
                record.id = self._next_id
                self._next_id += 1
                record.updated_at = now
                self._rows[record.id] = _copy(record, with_geometry=True)

            for record in updates:
                record.updated_at = now
                self._rows[record.id] = _copy(record, with_geometry=True)

    def count(self, country_iso3: Optional[str] = None) -> int:
        with self._lock:
            if country_iso3 is None:
                return len(self._rows)
            return sum(1 for row in self._rows.values() if row.country_iso3 == country_iso3)

    def find_leaf(self, country_iso3: str, lon: float, lat: float) -> Optional[AdminAreaRecord]:
        point = Point(lon, lat)
        with self._lock:
            matches = [
                row for row in self._rows.values()
                if row.country_iso3 == country_iso3
                and row.geometry is not None
                and row.geometry.intersects(point)
            ]
            if not matches:
                return None
            leaf = max(matches, key=lambda row: row.level)
            return _copy(leaf, with_geometry=False)

    def get(self, area_id: int) -> Optional[AdminAreaRecord]:
        with self._lock:
            row = self._rows.get(area_id)
            return _copy(row, with_geometry=False) if row is not None else None

    def ancestors(self, leaf_id: int) -> List[AdminAreaRecord]:
        with self._lock:
            chain = []
            seen = set()
            current = self._rows.get(leaf_id)
            while current is not None and current.id not in seen:
                seen.add(current.id)
                chain.append(_copy(current, with_geometry=False))
                current = self._rows.get(current.parent_id) if current.parent_id is not None else None
        # A bulk result carries no ordering guarantee
        return sorted(chain, key=lambda row: row.id)

    def simplified_geometry(self, area_id: int, tolerance_degrees: float) -> Optional[BaseGeometry]:
        with self._lock:
            row = self._rows.get(area_id)
            geometry = row.geometry if row is not None else None
        if geometry is None:
            return None
        if tolerance_degrees > 0:
            geometry = geometry.simplify(tolerance_degrees, preserve_topology=True)
        return shapely.set_srid(geometry, 4326)

    def search(
        self,
        country_iso3: Optional[str] = None,
        level: Optional[int] = None,
        parent_id: Optional[int] = None,
        q: Optional[str] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[int, List[AdminAreaRecord]]:
        needle = q.lower() if q else None
        with self._lock:
            rows = [
                row for row in self._rows.values()
                if (country_iso3 is None or row.country_iso3 == country_iso3)
                and (level is None or row.level == level)
                and (parent_id is None or row.parent_id == parent_id)
                and (needle is None or needle in row.name.lower() or needle in row.code.lower())
            ]
            rows.sort(key=lambda row: row.name)
            page = [_copy(row, with_geometry=False) for row in rows[skip:skip + take]]
        return len(rows), page

    def level_summary(self, country_iso3: str) -> List[Dict[str, Any]]:
        levels: Dict[int, Dict[str, Any]] = {}
        with self._lock:
            for row in self._rows.values():
                if row.country_iso3 != country_iso3:
                    continue
                entry = levels.setdefault(row.level, {"level": row.level, "count": 0, "level_labels": []})
                entry["count"] += 1
                if row.level_label is not None and row.level_label not in entry["level_labels"]:
                    entry["level_labels"].append(row.level_label)
        return [levels[level] for level in sorted(levels)]


def _copy(row: AdminAreaRecord, with_geometry: bool) -> AdminAreaRecord:
    return replace(
        row,
        geometry=row.geometry if with_geometry else None,
        has_geometry=row.geometry is not None,
    )

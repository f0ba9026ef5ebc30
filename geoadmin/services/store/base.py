"""
@file base.py
@brief Hierarchy store contract shared by the importer and the resolver

@details
The administrative tree is index-based: every row is keyed by a surrogate id
and points to its parent by plain id value. Services exchange rows as
AdminAreaRecord values and never hold ORM objects, so the same pipeline and
resolver run on top of PostGIS or the in-memory store.

Primitives:
- keyed lookup by (country, level) -> {code: record}, batch write per level
- spatial predicate: deepest row of a country intersecting a point
- ancestor walk in one round trip (unordered result)
- topology-preserving simplification
- bulk delete for hard reset

@author GeoAdmin Project
@date 2026-10-03
@version 1.0
@license AGPL-3.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from shapely.geometry.base import BaseGeometry


@dataclass
class AdminAreaRecord:
    """
    One node of the administrative tree.

    Attributes:
        country_iso3: Root scoping key (ISO 3166 alpha-3)
        level: Depth in the tree, 0 = country
        code: Upstream code, unique per (country, level)
        name: Display name
        parent_id: Id of the level-1 row in the same country; None at level 0
                   or when the upstream parent code had no match
        level_label: Human label of the tier ("Province", ...)
        geometry: Polygon/MultiPolygon in EPSG:4326, only loaded when needed
        geometry_wkt: WKT fingerprint of geometry (change detection only)
        has_geometry: Whether the stored row has a geometry
        source: Provenance
        updated_at: Last insert/update time
        id: Surrogate id, None until persisted
    """

    country_iso3: str
    level: int
    code: str
    name: str
    parent_id: Optional[int] = None
    level_label: Optional[str] = None
    geometry: Optional[BaseGeometry] = field(default=None, repr=False)
    geometry_wkt: Optional[str] = field(default=None, repr=False)
    has_geometry: bool = False
    source: Optional[str] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None


class StoreUnavailableError(Exception):
    """The backing store cannot be reached."""


class AdminAreaStore(ABC):
    """Query primitives over the AdminArea tree."""

    @abstractmethod
    def ping(self) -> None:
        """Raise StoreUnavailableError if the store cannot be reached."""

    def recover(self) -> None:
        """Make the store usable again after a failed operation (e.g. roll back an aborted transaction)."""

    @abstractmethod
    def clear(self) -> int:
        """Delete every row. Returns the number of rows deleted."""

    @abstractmethod
    def areas_by_code(self, country_iso3: Optional[str], level: int) -> Dict[str, AdminAreaRecord]:
        """Rows at `level` (of one country, or all when None) keyed by code. Geometry is not loaded."""

    @abstractmethod
    def country_codes(self, iso3_filter: Optional[str] = None) -> List[str]:
        """ISO3 codes of the level-0 rows, optionally restricted to one country."""

    @abstractmethod
    def save_level(self, inserts: Sequence[AdminAreaRecord], updates: Sequence[AdminAreaRecord]) -> None:
        """Persist one level's changes in a single batch write. Assigns ids to `inserts`."""

    @abstractmethod
    def count(self, country_iso3: Optional[str] = None) -> int:
        """Number of rows, optionally for one country."""

    @abstractmethod
    def find_leaf(self, country_iso3: str, lon: float, lat: float) -> Optional[AdminAreaRecord]:
        """Deepest row of the country whose geometry intersects the point."""

    @abstractmethod
    def get(self, area_id: int) -> Optional[AdminAreaRecord]:
        """Row by id, without geometry."""

    @abstractmethod
    def ancestors(self, leaf_id: int) -> List[AdminAreaRecord]:
        """The leaf and all its ancestors in one round trip, in no particular order."""

    @abstractmethod
    def simplified_geometry(self, area_id: int, tolerance_degrees: float) -> Optional[BaseGeometry]:
        """Geometry of a row, simplified with topology preservation when tolerance > 0."""

    @abstractmethod
    def search(
        self,
        country_iso3: Optional[str] = None,
        level: Optional[int] = None,
        parent_id: Optional[int] = None,
        q: Optional[str] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[int, List[AdminAreaRecord]]:
        """Filtered page of rows ordered by name, plus the total match count."""

    @abstractmethod
    def level_summary(self, country_iso3: str) -> List[Dict[str, Any]]:
        """Per-level counts and distinct level labels of a country, ordered by level."""

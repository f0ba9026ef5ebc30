from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field


class ResolvedAdminArea(BaseModel):
    """One node of a resolved path. The synthetic country root has no id."""

    id: Optional[int] = None
    level: int
    parent_id: Optional[int] = None
    code: str
    name: str
    level_label: Optional[str] = None

    @computed_field
    @property
    def exists_in_db(self) -> bool:
        return self.id is not None and self.id > 0


class ResolvePointResponse(BaseModel):
    country_iso3: str
    path: List[ResolvedAdminArea]


class ResolveFromAddressRequest(BaseModel):
    address: str = Field(..., min_length=1)
    iso3: str = Field(..., min_length=1)
    language: Optional[str] = None


class ResolveFromAddressResponse(BaseModel):
    address: str
    lat: float
    lon: float
    result: ResolvePointResponse


class AdminAreaListItem(BaseModel):
    id: int
    level: int
    parent_id: Optional[int] = None
    code: str
    name: str
    level_label: Optional[str] = None


class AdminAreaDetail(AdminAreaListItem):
    country_iso3: str
    source: Optional[str] = None
    updated_at: Optional[datetime] = None
    has_geometry: bool = False


class AdminAreaPage(BaseModel):
    items: List[AdminAreaListItem]
    total: int
    skip: int
    take: int


class AdminAreaGeometry(BaseModel):
    """WKT debug mirror of a stored geometry."""

    id: int
    country_iso3: str
    level: int
    code: str
    name: str
    geometry_wkt: str


class AdminAreaGeoJson(BaseModel):
    id: int
    country_iso3: str
    level: int
    code: str
    name: str
    geojson: Optional[Dict[str, Any]] = None  # GeoJSON Feature, None when the row has no geometry
    simplify_tolerance_meters: Optional[float] = None
    zoom: Optional[float] = None


class LevelSummary(BaseModel):
    level: int
    count: int
    level_labels: List[str] = Field(default_factory=list)


class AdminSummary(BaseModel):
    country_iso3: str
    levels: List[LevelSummary]

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from geoadmin.services.importer.errors import ImportStepFailure


class ImportErrorEntry(BaseModel):
    """One typed failure recorded during an import run."""

    iso3: str
    level: int
    stage: str  # ids | features | parse | circuit_breaker | unknown
    http_status: Optional[int] = None
    http_reason: Optional[str] = None
    arcgis_code: Optional[int] = None
    arcgis_message: Optional[str] = None
    arcgis_details: Optional[List[str]] = None
    payload: Optional[str] = None
    message: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_failure(cls, failure: ImportStepFailure) -> "ImportErrorEntry":
        return cls(
            iso3=failure.iso3,
            level=failure.level,
            stage=failure.stage.value,
            http_status=failure.http_status,
            http_reason=failure.http_reason,
            arcgis_code=failure.upstream_code,
            arcgis_message=failure.upstream_message,
            arcgis_details=failure.upstream_details,
            payload=failure.payload or None,
            message=failure.message,
            occurred_at=failure.occurred_at,
        )


class CountrySummary(BaseModel):
    iso3: str
    inserted: int = 0
    updated: int = 0
    total_in_db: int = 0
    duration_ms: int = 0
    levels_imported: List[int] = Field(default_factory=list)
    circuit_breaker_opened: bool = False
    circuit_breaker_opened_at_level: Optional[int] = None


class ImportSummary(BaseModel):
    iso3_filter: Optional[str] = None  # None => every country
    max_level: int
    inserted: int = 0
    updated: int = 0
    total_in_db: int = 0
    duration_ms: int = 0
    countries: List[CountrySummary] = Field(default_factory=list)
    errors: List[ImportErrorEntry] = Field(default_factory=list)

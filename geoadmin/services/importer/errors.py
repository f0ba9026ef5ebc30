"""
Import Step Outcomes

Values returned by one import step (a level of one country). The pipeline
inspects the outcome type and appends failures to the summary, so error
accumulation is plain data flow:

- LevelCounts        the level was written; inserted/updated counts
- ImportStepFailure  the level failed at a known stage; import moves on
- BreakerOpen        the country's breaker opened; remaining levels are skipped

Author: GeoAdmin Project
License: AGPL-3.0
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from geoadmin.services.arcgis.errors import UpstreamError

TRUNCATION_SUFFIX = "…(truncated)"


class ImportStage(str, Enum):
    IDS = "ids"
    FEATURES = "features"
    PARSE = "parse"
    CIRCUIT_BREAKER = "circuit_breaker"
    UNKNOWN = "unknown"


def truncate_payload(payload: Optional[str], max_chars: int = 1500) -> str:
    """Clip a raw response body for storage in error records."""
    if payload is None or not payload.strip():
        return ""
    if len(payload) <= max_chars:
        return payload
    return payload[:max_chars] + TRUNCATION_SUFFIX


@dataclass(frozen=True)
class LevelCounts:
    inserted: int = 0
    updated: int = 0


@dataclass(frozen=True)
class ImportStepFailure:
    iso3: str
    level: int
    stage: ImportStage
    message: str
    payload: str = ""
    http_status: Optional[int] = None
    http_reason: Optional[str] = None
    upstream_error: Optional[UpstreamError] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def upstream_code(self) -> Optional[int]:
        return self.upstream_error.code if self.upstream_error else None

    @property
    def upstream_message(self) -> Optional[str]:
        return self.upstream_error.message if self.upstream_error else None

    @property
    def upstream_details(self) -> Optional[List[str]]:
        return list(self.upstream_error.details) if self.upstream_error else None


@dataclass(frozen=True)
class BreakerOpen:
    iso3: str
    level: int
    message: str
    payload: str = ""

    def as_failure(self) -> ImportStepFailure:
        return ImportStepFailure(
            iso3=self.iso3,
            level=self.level,
            stage=ImportStage.CIRCUIT_BREAKER,
            message=self.message,
            payload=self.payload,
        )


StepOutcome = Union[LevelCounts, ImportStepFailure, BreakerOpen]

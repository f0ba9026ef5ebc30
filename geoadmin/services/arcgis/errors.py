"""
ArcGIS Transport Errors

Exceptions raised by the HTTP layer that talks to the ArcGIS feature and
geocoding services. The import pipeline turns these into typed step
failures; nothing above the pipeline ever sees them.

Hierarchy:
- ArcgisError
  - HttpStatusError            non-2xx response, not retried
    - RetriesExhausted         last transient failure after the final attempt
  - TransientHttpError         retryable status (502/503/504, optionally 429)
  - UpstreamApiError           HTTP 200 whose body is {"error": {...}}
  - FeatureParseError          body is not a usable (Geo)JSON payload
  - GeocodingError             geocoder transport or payload failure
    - NoCandidateError         geocoder found no candidate
- ImportCancelled              caller asked to stop; never retried

Author: GeoAdmin Project
License: AGPL-3.0
"""

import json
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class UpstreamError:
    """Structured error envelope returned by ArcGIS inside a 200 response."""

    code: Optional[int]
    message: str
    details: List[str] = field(default_factory=list)

    def describe(self) -> str:
        details = f" Details: {' | '.join(self.details)}" if self.details else ""
        return f"code={self.code}, message={self.message}.{details}"


class ArcgisError(Exception):
    """Base class for feature/geocoding service failures."""

    def __init__(self, message: str, body: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.body = body


class HttpStatusError(ArcgisError):
    def __init__(self, status: int, reason: Optional[str], body: Optional[str] = None,
                 upstream_error: Optional[UpstreamError] = None):
        message = f"HTTP {status} {reason or ''}".rstrip()
        super().__init__(message, body)
        self.status = status
        self.reason = reason
        self.upstream_error = upstream_error


class TransientHttpError(HttpStatusError):
    """Retryable gateway/availability failure."""


class RetriesExhausted(HttpStatusError):
    """Every attempt failed with a transient status."""

    def __init__(self, last: TransientHttpError, attempts: int):
        super().__init__(last.status, last.reason, last.body)
        self.last = last
        self.attempts = attempts
        self.message = f"{last.message} after {attempts} attempts"
        self.args = (self.message,)


class UpstreamApiError(ArcgisError):
    def __init__(self, error: UpstreamError, body: Optional[str] = None):
        super().__init__(error.describe(), body)
        self.error = error


class FeatureParseError(ArcgisError):
    pass


class GeocodingError(ArcgisError):
    pass


class NoCandidateError(GeocodingError):
    """The geocoder answered but found no candidate for the address."""


class ImportCancelled(Exception):
    """Raised when the cancellation token is set."""


def parse_error_envelope(body: Optional[str]) -> Optional[UpstreamError]:
    """
    Return the ArcGIS error envelope carried by a response body, if any.

    ArcGIS answers many failures with HTTP 200 and {"error": {"code", "message",
    "details"}}; anything that is not JSON or has no "error" object yields None.
    """
    if not body or not body.strip():
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if not isinstance(payload, dict) or not isinstance(payload.get("error"), dict):
        return None

    error = payload["error"]
    code = error.get("code")
    try:
        code = int(code) if code is not None else None
    except (TypeError, ValueError):
        code = None
    details = error.get("details") or []
    if not isinstance(details, list):
        details = [details]
    return UpstreamError(
        code=code,
        message=str(error.get("message") or ""),
        details=[str(d) for d in details],
    )

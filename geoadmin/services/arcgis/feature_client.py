"""
@file feature_client.py
@brief Thin client for the ArcGIS FeatureServer holding the admin boundaries

@details
The upstream exposes one layer per administrative level
(`{base}/{level}/query`). Importing a level is a two-pass affair:

1. ids pass      POST f=json, where=..., returnIdsOnly=true
2. features pass POST f=geojson, objectIds=<batch>, outFields, returnGeometry, outSR

Requests are form-encoded POSTs because object-id batches easily exceed URL
limits. The client only builds requests and parses answers; retries and the
circuit breaker are layered on top by the import pipeline.

@author GeoAdmin Project
@date 2026-10-02
@version 1.0
@license AGPL-3.0
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import requests
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from geoadmin.services.arcgis.errors import (
    FeatureParseError,
    UpstreamApiError,
    parse_error_envelope,
)

logger = logging.getLogger(__name__)

USER_AGENT = "GeoAdmin-Boundary-Importer/1.0"


@dataclass
class Feature:
    """
    One upstream feature: attribute table plus optional geometry.

    Attribute lookup is exact first, then case-insensitive, because the
    service is not consistent about field-name casing across layers.
    """

    attributes: Dict[str, Any] = field(default_factory=dict)
    geometry: Optional[BaseGeometry] = None

    def get(self, key: str) -> Optional[str]:
        if key in self.attributes:
            return _as_text(self.attributes[key])
        lowered = key.lower()
        for name, value in self.attributes.items():
            if name.lower() == lowered:
                return _as_text(value)
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class FeatureServiceClient:
    """Client for one ArcGIS FeatureServer."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: int = 1800):
        """
        Args:
            base_url: FeatureServer URL without a trailing layer id
            session: HTTP session (one per process is enough)
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": USER_AGENT})
        self.session = session

    def layer_url(self, layer: int) -> str:
        return f"{self.base_url}/{layer}/query"

    def post_query(self, layer: int, form: Dict[str, str]) -> requests.Response:
        """POST one query form to a layer. Transport errors propagate."""
        return self.session.post(self.layer_url(layer), data=form, timeout=self.timeout)

    # ------------------------------------------------------------------
    # Request builders
    # ------------------------------------------------------------------

    @staticmethod
    def ids_form(where: str) -> Dict[str, str]:
        return {
            "f": "json",
            "where": where,
            "returnIdsOnly": "true",
            "returnCountOnly": "false",
        }

    @staticmethod
    def features_form(
        object_ids: Sequence[int],
        out_fields: str = "*",
        return_geometry: bool = True,
        out_sr: Optional[int] = None,
    ) -> Dict[str, str]:
        form = {
            "f": "geojson",
            "objectIds": ",".join(str(i) for i in object_ids),
            "outFields": out_fields,
            "returnGeometry": "true" if return_geometry else "false",
        }
        if return_geometry and out_sr is not None:
            form["outSR"] = str(out_sr)
        return form

    # ------------------------------------------------------------------
    # Response parsers
    # ------------------------------------------------------------------

    @staticmethod
    def parse_object_ids(body: str) -> List[int]:
        """
        Parse an ids-only answer.

        Raises:
            UpstreamApiError: the body is an error envelope
            FeatureParseError: the body is not JSON
        """
        upstream = parse_error_envelope(body)
        if upstream is not None:
            raise UpstreamApiError(upstream, body)
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise FeatureParseError(f"JSON parse error: {e}", body) from e
        if not isinstance(payload, dict):
            raise FeatureParseError("JSON parse error: expected an object", body)
        try:
            return [int(i) for i in payload.get("objectIds") or []]
        except (TypeError, ValueError) as e:
            raise FeatureParseError(f"JSON parse error: invalid objectIds: {e}", body) from e

    @staticmethod
    def parse_features(body: str) -> List[Feature]:
        """
        Parse a GeoJSON FeatureCollection answer.

        Raises:
            UpstreamApiError: the body is an error envelope
            FeatureParseError: the body is not a FeatureCollection or a geometry is unreadable
        """
        upstream = parse_error_envelope(body)
        if upstream is not None:
            raise UpstreamApiError(upstream, body)

        try:
            payload = json.loads(body)
        except ValueError as e:
            raise FeatureParseError(f"GeoJSON parse error: {e}", body) from e

        if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
            raise FeatureParseError("GeoJSON parse error: expected a FeatureCollection", body)

        features = []
        for raw in payload.get("features") or []:
            if not isinstance(raw, dict):
                raise FeatureParseError("GeoJSON parse error: feature is not an object", body)
            geometry = None
            if raw.get("geometry"):
                try:
                    geometry = shape(raw["geometry"])
                except Exception as e:
                    raise FeatureParseError(f"GeoJSON parse error: {e}", body) from e
            features.append(Feature(attributes=dict(raw.get("properties") or {}), geometry=geometry))
        return features


def batched(items: Sequence[int], size: int) -> Iterable[Sequence[int]]:
    """Split object ids into consecutive batches of at most `size`."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    for start in range(0, len(items), size):
        yield items[start:start + size]

"""ArcGIS World Geocoder client: free-text address to a (lat, lon) pair."""

import json
import logging
from typing import Optional, Tuple

import requests

from geoadmin.services.arcgis.errors import GeocodingError, NoCandidateError

logger = logging.getLogger(__name__)


class ArcgisGeocodingService:
    """Resolves addresses with `findAddressCandidates`, keeping only the best candidate."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def geocode(self, address: str, language: Optional[str] = None) -> Tuple[float, float]:
        """
        Geocode a single-line address.

        Args:
            address: Free-text address
            language: Optional language code passed as langCode

        Returns:
            (lat, lon) of the first candidate

        Raises:
            NoCandidateError: the geocoder found no candidate
            GeocodingError: transport failure or unreadable answer
        """
        params = {
            "f": "json",
            "singleLine": address,
            "maxLocations": 1,
            "outFields": "*",
        }
        if language:
            params["langCode"] = language
        if self.token:
            params["token"] = self.token

        logger.info(f"Geocoding address: {address!r}")
        try:
            response = self.session.get(
                f"{self.base_url}/findAddressCandidates",
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Geocoding request failed: {e}")
            raise GeocodingError(f"Geocoding request failed: {e}") from e

        try:
            payload = json.loads(response.text)
        except ValueError as e:
            raise GeocodingError("Geocoder returned invalid JSON", response.text) from e

        if not isinstance(payload, dict):
            raise GeocodingError("Geocoder returned an unexpected payload", response.text)
        candidates = payload.get("candidates") or []
        location = candidates[0].get("location") if candidates else None
        if not location:
            raise NoCandidateError("No candidates found for that address", response.text)

        # ArcGIS: x = lon, y = lat
        return float(location["y"]), float(location["x"])

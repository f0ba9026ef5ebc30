"""ArcGIS feature-service and geocoding clients."""

from geoadmin.services.arcgis.feature_client import Feature, FeatureServiceClient
from geoadmin.services.arcgis.geocoding import ArcgisGeocodingService
from geoadmin.services.arcgis.retry import RetryExecutor, backoff_delay

__all__ = ["Feature", "FeatureServiceClient", "ArcgisGeocodingService", "RetryExecutor", "backoff_delay"]

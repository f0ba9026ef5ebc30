"""
Test Suite for GeoAdmin Backend

Unit and integration tests for the administrative-boundary import pipeline,
the hierarchy resolver and the HTTP API. Nothing here needs PostgreSQL,
Redis or network access.

Test Categories:
- test_retry, test_circuit_breaker: retry policy and per-country breaker
- test_feature_client, test_geocoding: ArcGIS clients
- test_geometry: orientation, SRID and fingerprint
- test_importer: end-to-end imports against a scripted FeatureServer
- test_store, test_resolver: in-memory store and point resolution
- test_postgis_store: PostGIS statements and session handling
- test_api, test_resilience, test_cache: FastAPI endpoints and ambient layers
- test_models: ORM metadata
- test_etl: offline import command
- conftest.py: Shared fixtures and test configuration

Running Tests:
    pytest              # Run all tests
    pytest -m unit      # Fast tests only
    pytest tests/test_importer.py -v  # Run specific test file
    pytest --cov=geoadmin  # With coverage report

Author: GeoAdmin Project
License: AGPL-3.0
"""

"""
@file __init__.py
@brief GeoAdmin backend application package initialization

@details
Administrative-boundary service: imports a country -> province -> district
tree from an ArcGIS FeatureServer into PostGIS and resolves points to their
administrative path.

**Package Structure:**
- api/: FastAPI route handlers and dependencies
- core/: configuration, logging, cache, health, error handling
- db/: engine, session management and schema initialization
- models/: SQLAlchemy ORM models
- schemas/: pydantic response and summary shapes
- services/: ArcGIS clients, import pipeline, hierarchy stores, resolver
- etl/: offline import command

@author GeoAdmin Project
@date 2026-10-08
@version 1.0
@license AGPL-3.0

@see main for FastAPI application setup
@see services.importer.pipeline for the import algorithm
"""

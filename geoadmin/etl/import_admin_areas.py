"""
Administrative Boundary Import (offline)

Runs the import pipeline outside the API process:

    python -m geoadmin.etl.import_admin_areas [--hard-reset] [--iso3 ESP] [--max-level 4]

Steps:
1. Wait for PostgreSQL/PostGIS and ensure the schema exists
2. Run the import (level 0, then levels 1..max-level per country)
3. Log the summary: totals, per-country breakdown, typed errors

Ctrl+C requests cancellation; the import stops within a fraction of a second,
even mid-request (the in-flight request is abandoned on its daemon worker
thread), and the process exits with status 130. Levels already written stay
committed. Fatal setup errors exit 1.
Per-level failures do not change the exit status (they are in the summary).

Author: GeoAdmin Project
License: AGPL-3.0
"""

import argparse
import json
import logging
import signal
import sys
import threading
from typing import List, Optional

from geoadmin.core.config import get_settings
from geoadmin.core.logging import setup_logging
from geoadmin.schemas.import_summary import ImportSummary
from geoadmin.services.arcgis.errors import ImportCancelled
from geoadmin.services.arcgis.feature_client import FeatureServiceClient
from geoadmin.services.importer.pipeline import AdminImportService

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="geoadmin.etl.import_admin_areas",
        description="Import administrative boundaries from the ArcGIS FeatureServer",
    )
    parser.add_argument("--hard-reset", action="store_true",
                        help="delete every admin area before importing")
    parser.add_argument("--iso3", default=None,
                        help="only import levels >= 1 for this country (ISO 3166 alpha-3)")
    parser.add_argument("--max-level", type=int, default=settings.default_max_level,
                        help=f"deepest level to import (0..{settings.max_level_limit})")
    parser.add_argument("--summary-json", default=None,
                        help="also write the import summary to this JSON file")
    args = parser.parse_args(argv)

    if not 0 <= args.max_level <= settings.max_level_limit:
        parser.error(f"--max-level must be between 0 and {settings.max_level_limit}")
    if args.iso3 is not None:
        args.iso3 = args.iso3.strip().upper() or None
    return args


def log_summary(summary: ImportSummary) -> None:
    logger.info(f"Inserted: {summary.inserted}  Updated: {summary.updated}  "
                f"Total in store: {summary.total_in_db}  Duration: {summary.duration_ms} ms")
    for country in summary.countries:
        breaker = (f", breaker OPEN at level {country.circuit_breaker_opened_at_level}"
                   if country.circuit_breaker_opened else "")
        logger.info(f"  {country.iso3}: +{country.inserted} ~{country.updated} "
                    f"(levels {country.levels_imported}, {country.total_in_db} rows, "
                    f"{country.duration_ms} ms{breaker})")
    for error in summary.errors:
        logger.warning(f"  ✗ {error.iso3} level {error.level} [{error.stage}] {error.message[:200]}")


def build_service(store) -> AdminImportService:
    settings = get_settings()
    client = FeatureServiceClient(settings.feature_service_url, timeout=settings.feature_service_timeout)
    return AdminImportService(store, client, settings=settings)


def run_import(args: argparse.Namespace, cancel_event: threading.Event) -> int:
    settings = get_settings()

    if settings.store_backend == "memory":
        logger.error("The offline import needs STORE_BACKEND=postgis")
        return 1

    from geoadmin.db.database import SessionLocal
    from geoadmin.db.init_db import create_schema, wait_for_database
    from geoadmin.services.store.postgis import PostgisAdminAreaStore

    if not wait_for_database():
        return 1
    create_schema()

    db = SessionLocal()
    try:
        service = build_service(PostgisAdminAreaStore(db))
        summary = service.import_all(
            hard_reset=args.hard_reset,
            iso3_filter=args.iso3,
            max_level=args.max_level,
            cancel_event=cancel_event,
        )
    finally:
        db.close()

    log_summary(summary)
    if args.summary_json:
        with open(args.summary_json, "w", encoding="utf-8") as f:
            json.dump(summary.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        logger.info(f"Summary written to {args.summary_json}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = parse_args(argv)

    cancel_event = threading.Event()

    def request_cancel(signum, frame):
        logger.warning("Cancellation requested, stopping after the current request...")
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, request_cancel)

    try:
        return run_import(args, cancel_event)
    except ImportCancelled:
        logger.warning("Import cancelled")
        return 130
    except Exception as e:
        logger.critical(f"CRITICAL ERROR: import aborted: {e}", exc_info=True)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)


if __name__ == "__main__":
    sys.exit(main())

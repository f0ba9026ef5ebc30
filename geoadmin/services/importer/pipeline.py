"""
@file pipeline.py
@brief Administrative boundary import pipeline

@details
Populates or refreshes the AdminArea tree from the upstream FeatureServer,
level by level, country by country.

**Run layout:**
1. Optional hard reset (whole table)
2. Level 0 (countries), unconditionally, for every country
3. For each target country, levels 1..max_level in increasing order;
   level L resolves parents against level L-1, which is already committed

**Per level:**
1. ids pass: object ids matching adm0_cd='ISO3'
2. features pass: batches of ids (smaller batches for heavy levels), each
   batch through the retry executor, each outcome fed to the country breaker
3. diff-upsert keyed by code; rows change only when parent, name, label or
   the WKT fingerprint differ
4. one batch write for the level

Each level step returns a value (LevelCounts, ImportStepFailure or
BreakerOpen). Failures accumulate in the summary; a BreakerOpen stops the
remaining levels of that country only. Only setup errors (store unreachable)
and cancellation escape import_all.

@author GeoAdmin Project
@date 2026-10-05
@version 1.0
@license AGPL-3.0

@see services.arcgis.retry for the retry policy
@see services.importer.circuit_breaker for the breaker state machine
"""

import logging
import threading
import time
from typing import List, Optional, Sequence, Union

from sqlalchemy.exc import OperationalError

from geoadmin.core.config import Settings, get_settings
from geoadmin.schemas.import_summary import CountrySummary, ImportErrorEntry, ImportSummary
from geoadmin.services.arcgis.errors import (
    FeatureParseError,
    HttpStatusError,
    ImportCancelled,
    RetriesExhausted,
    TransientHttpError,
    UpstreamApiError,
    UpstreamError,
)
from geoadmin.services.arcgis.feature_client import Feature, FeatureServiceClient, batched
from geoadmin.services.arcgis.retry import RetryExecutor
from geoadmin.services.importer.circuit_breaker import CircuitOpenError, CountryCircuitBreaker
from geoadmin.services.importer.errors import (
    BreakerOpen,
    ImportStage,
    ImportStepFailure,
    LevelCounts,
    StepOutcome,
    truncate_payload,
)
from geoadmin.services.importer.exports import ImportExporter
from geoadmin.services.importer.geometry import SRID_WGS84, fingerprint, prepare_geometry
from geoadmin.services.store.base import AdminAreaRecord, AdminAreaStore

logger = logging.getLogger(__name__)

## @brief Pseudo country used for failures of the global level-0 pass
ALL_COUNTRIES = "ALL"

LEVEL0_FIELDS = "adm0_cd,adm0_nm,level_label"

Failure = Union[ImportStepFailure, BreakerOpen]


def _is_failure(value) -> bool:
    return isinstance(value, (ImportStepFailure, BreakerOpen))


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _raise_if_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ImportCancelled("Import cancelled")


class AdminImportService:
    """
    @brief Orchestrates feature client, retry executor and circuit breaker over a store

    @param store Hierarchy store receiving the rows
    @param client Feature service client
    @param executor Retry executor; built from settings when omitted
    @param settings Runtime settings; process settings when omitted
    @param exporter Debug exporter; built from IMPORT_EXPORT_DIR when omitted
    """

    def __init__(
        self,
        store: AdminAreaStore,
        client: FeatureServiceClient,
        executor: Optional[RetryExecutor] = None,
        settings: Optional[Settings] = None,
        exporter: Optional[ImportExporter] = None,
    ):
        self.store = store
        self.client = client
        self.settings = settings or get_settings()
        self.executor = executor or RetryExecutor.from_settings(self.settings)
        self.exporter = exporter or ImportExporter(self.settings.import_export_dir)

    # ------------------------------------------------------------------
    # Whole run
    # ------------------------------------------------------------------

    def import_all(
        self,
        hard_reset: bool = False,
        iso3_filter: Optional[str] = None,
        max_level: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportSummary:
        """
        @brief Import level 0 and levels 1..max_level of every target country

        @param hard_reset Delete every AdminArea row first
        @param iso3_filter Restrict levels >= 1 to one country
        @param max_level Deepest level to import
        @param cancel_event Cancellation token
        @return ImportSummary with totals, per-country breakdown and typed errors
        @throws StoreUnavailableError / OperationalError the store cannot be used at all
        @throws ImportCancelled cancellation requested
        """
        if max_level is None:
            max_level = self.settings.default_max_level
        iso3_filter = iso3_filter.strip().upper() if iso3_filter and iso3_filter.strip() else None

        started = time.monotonic()
        summary = ImportSummary(iso3_filter=iso3_filter, max_level=max_level)

        logger.info("=" * 70)
        logger.info(f"STARTING ADMIN BOUNDARY IMPORT (iso3={iso3_filter or 'ALL'}, "
                    f"max_level={max_level}, hard_reset={hard_reset})")
        logger.info("=" * 70)

        try:
            self.store.ping()
            if hard_reset:
                deleted = self.store.clear()
                logger.info(f"Hard reset: {deleted} rows deleted")
        except Exception as e:
            logger.error(f"Import aborted, store unavailable: {e}")
            raise

        # STEP 1: countries
        logger.info("\n[LEVEL 0] Importing countries...")
        outcome = self._run_level0(cancel_event)
        if isinstance(outcome, LevelCounts):
            summary.inserted += outcome.inserted
            summary.updated += outcome.updated
            logger.info(f"  → level 0: {outcome.inserted} inserted, {outcome.updated} updated")
        else:
            self._record(summary, outcome)

        # STEP 2: countries to descend into
        try:
            countries = self.store.country_codes(iso3_filter)
        except OperationalError as e:
            logger.error(f"Import aborted, cannot enumerate countries: {e}")
            raise

        by_iso = {}
        for iso3 in countries:
            by_iso[iso3] = CountrySummary(iso3=iso3)
            summary.countries.append(by_iso[iso3])

        if iso3_filter and not countries:
            logger.warning(f"Country {iso3_filter} not found among level-0 rows")

        for iso3 in countries:
            self._import_country(iso3, max_level, by_iso[iso3], summary, cancel_event)

        summary.total_in_db = self.store.count()
        summary.duration_ms = int((time.monotonic() - started) * 1000)

        logger.info("\n" + "=" * 70)
        logger.info(f"✓ IMPORT FINISHED: {summary.inserted} inserted, {summary.updated} updated, "
                    f"{summary.total_in_db} in store, {len(summary.errors)} errors, "
                    f"{summary.duration_ms} ms")
        logger.info("=" * 70)
        return summary

    def _import_country(
        self,
        iso3: str,
        max_level: int,
        country: CountrySummary,
        summary: ImportSummary,
        cancel_event: Optional[threading.Event],
    ) -> None:
        started = time.monotonic()
        breaker = self.new_breaker(iso3)
        logger.info(f"\n[{iso3}] Importing levels 1..{max_level}")

        for level in range(1, max_level + 1):
            if breaker.is_open:
                break
            _raise_if_cancelled(cancel_event)

            try:
                outcome = self.import_level_for_country(level, iso3, breaker, cancel_event)
            except ImportCancelled:
                raise
            except Exception as e:
                logger.exception(f"[{iso3}] level {level}: unexpected failure")
                self._recover_store()
                outcome = ImportStepFailure(iso3=iso3, level=level, stage=ImportStage.UNKNOWN, message=str(e))

            if isinstance(outcome, BreakerOpen):
                country.circuit_breaker_opened = True
                country.circuit_breaker_opened_at_level = outcome.level
                self._record(summary, outcome)
                break
            if isinstance(outcome, ImportStepFailure):
                self._record(summary, outcome)
                continue

            summary.inserted += outcome.inserted
            summary.updated += outcome.updated
            country.inserted += outcome.inserted
            country.updated += outcome.updated
            country.levels_imported.append(level)
            logger.info(f"  → [{iso3}] level {level}: {outcome.inserted} inserted, {outcome.updated} updated")

        country.duration_ms = int((time.monotonic() - started) * 1000)
        try:
            country.total_in_db = self.store.count(iso3)
        except Exception as e:
            logger.warning(f"[{iso3}] row count unavailable: {e}")
            self._recover_store()

    def _run_level0(self, cancel_event: Optional[threading.Event]) -> StepOutcome:
        try:
            return self.import_level0(cancel_event)
        except (ImportCancelled, OperationalError):
            raise
        except Exception as e:
            logger.exception("Level 0: unexpected failure")
            self._recover_store()
            return ImportStepFailure(iso3=ALL_COUNTRIES, level=0, stage=ImportStage.UNKNOWN, message=str(e))

    def _recover_store(self) -> None:
        try:
            self.store.recover()
        except Exception as e:
            logger.error(f"Store recovery failed: {e}")

    def _record(self, summary: ImportSummary, outcome: Failure) -> None:
        failure = outcome.as_failure() if isinstance(outcome, BreakerOpen) else outcome
        logger.warning(f"  ✗ [{failure.iso3}] level {failure.level} ({failure.stage.value}): {failure.message}")
        summary.errors.append(ImportErrorEntry.from_failure(failure))

    def new_breaker(self, iso3: str) -> CountryCircuitBreaker:
        return CountryCircuitBreaker(
            iso3,
            level_threshold=self.settings.breaker_level_threshold,
            failure_threshold=self.settings.breaker_failure_threshold,
        )

    # ------------------------------------------------------------------
    # Level steps
    # ------------------------------------------------------------------

    def import_level0(self, cancel_event: Optional[threading.Event] = None) -> StepOutcome:
        """Countries: attributes only, compared on name and label."""
        level = 0
        object_ids = self._fetch_ids(level, "1=1", ALL_COUNTRIES, None, cancel_event)
        if _is_failure(object_ids):
            return object_ids

        features = self._fetch_features(
            level, object_ids, LEVEL0_FIELDS, False, None, ALL_COUNTRIES, None, cancel_event
        )
        if _is_failure(features):
            return features
        self.exporter.dump_fields(ALL_COUNTRIES, level, features)

        existing = self.store.areas_by_code(None, level)
        inserts: List[AdminAreaRecord] = []
        updates: List[AdminAreaRecord] = []
        seen = set()

        for feature in features:
            iso3 = feature.get("adm0_cd")
            name = feature.get("adm0_nm")
            label = feature.get("level_label")
            if _blank(iso3) or _blank(name):
                continue
            if iso3 in seen:
                logger.warning(f"Level 0: duplicate country code {iso3} ignored")
                continue
            seen.add(iso3)

            row = existing.get(iso3)
            if row is None:
                inserts.append(AdminAreaRecord(
                    country_iso3=iso3,
                    level=level,
                    code=iso3,
                    name=name,
                    level_label=label,
                    source=self.settings.import_source,
                ))
            elif row.name != name or row.level_label != label:
                row.name = name
                row.level_label = label
                row.source = self.settings.import_source
                updates.append(row)

        self.store.save_level(inserts, updates)
        return LevelCounts(inserted=len(inserts), updated=len(updates))

    def import_level_for_country(
        self,
        level: int,
        iso3: str,
        breaker: CountryCircuitBreaker,
        cancel_event: Optional[threading.Event] = None,
    ) -> StepOutcome:
        """
        @brief Fetch and upsert one level of one country

        @param level Level >= 1
        @param iso3 Country code
        @param breaker The country's breaker, shared by all its levels
        @return LevelCounts, ImportStepFailure or BreakerOpen
        """
        if breaker.is_open:
            return breaker.check(level, "circuit already open")

        where = "adm0_cd='{}'".format(iso3.replace("'", "''"))
        object_ids = self._fetch_ids(level, where, iso3, breaker, cancel_event)
        if _is_failure(object_ids):
            return object_ids

        features = self._fetch_features(level, object_ids, "*", True, SRID_WGS84, iso3, breaker, cancel_event)
        if _is_failure(features):
            return features
        self.exporter.dump_fields(iso3, level, features)

        try:
            return self._upsert_level(level, iso3, features)
        except Exception:
            self.exporter.discard(iso3, level)
            raise

    def _upsert_level(self, level: int, iso3: str, features: Sequence[Feature]) -> LevelCounts:
        parents = self.store.areas_by_code(iso3, level - 1)
        existing = self.store.areas_by_code(iso3, level)

        inserts: List[AdminAreaRecord] = []
        updates: List[AdminAreaRecord] = []
        seen = set()
        orphans = 0

        for feature in features:
            code = feature.get(f"adm{level}_cd") or feature.get(f"adm{level}_nm")
            name = feature.get(f"adm{level}_nm")
            if _blank(code) or _blank(name):
                continue
            if code in seen:
                logger.warning(f"[{iso3}] level {level}: duplicate code {code} ignored")
                continue
            seen.add(code)

            parent = parents.get(feature.get(f"adm{level - 1}_cd") or "")
            parent_id = parent.id if parent is not None else None
            if parent_id is None:
                orphans += 1
            label = feature.get("level_label")

            geometry = prepare_geometry(feature.geometry)
            wkt = fingerprint(geometry)

            row = existing.get(code)
            if row is None:
                inserts.append(AdminAreaRecord(
                    country_iso3=iso3,
                    level=level,
                    code=code,
                    name=name,
                    parent_id=parent_id,
                    level_label=label,
                    geometry=geometry,
                    geometry_wkt=wkt,
                    has_geometry=geometry is not None,
                    source=self.settings.import_source,
                ))
            elif (row.parent_id, row.name, row.level_label, row.geometry_wkt) != (parent_id, name, label, wkt):
                row.parent_id = parent_id
                row.name = name
                row.level_label = label
                row.geometry = geometry
                row.geometry_wkt = wkt
                row.has_geometry = geometry is not None
                row.source = self.settings.import_source
                updates.append(row)

            self.exporter.add_row(iso3, level, feature, code, name, geometry)

        if orphans:
            logger.warning(f"[{iso3}] level {level}: {orphans} areas without a matching parent")

        self.store.save_level(inserts, updates)
        self.exporter.write_csv(iso3, level)
        return LevelCounts(inserted=len(inserts), updated=len(updates))

    # ------------------------------------------------------------------
    # Upstream passes
    # ------------------------------------------------------------------

    def _fetch_ids(
        self,
        level: int,
        where: str,
        iso3: str,
        breaker: Optional[CountryCircuitBreaker],
        cancel_event: Optional[threading.Event],
    ) -> Union[List[int], Failure]:
        body = self._post(level, FeatureServiceClient.ids_form(where), ImportStage.IDS, iso3, breaker, cancel_event)
        if _is_failure(body):
            return body
        try:
            return FeatureServiceClient.parse_object_ids(body)
        except UpstreamApiError as e:
            return self._fail(iso3, level, ImportStage.IDS, self._envelope_message(e.error, body),
                              body, breaker, upstream_error=e.error)
        except FeatureParseError as e:
            return self._fail(iso3, level, ImportStage.PARSE, e.message, body, breaker)

    def _fetch_features(
        self,
        level: int,
        object_ids: Sequence[int],
        out_fields: str,
        return_geometry: bool,
        out_sr: Optional[int],
        iso3: str,
        breaker: Optional[CountryCircuitBreaker],
        cancel_event: Optional[threading.Event],
    ) -> Union[List[Feature], Failure]:
        if not object_ids:
            return []

        batch_size = (self.settings.import_heavy_batch_size
                      if level >= self.settings.import_heavy_level
                      else self.settings.import_batch_size)
        if breaker is not None:
            breaker.enter_level(level)

        features: List[Feature] = []
        for batch in batched(list(object_ids), batch_size):
            form = FeatureServiceClient.features_form(batch, out_fields, return_geometry, out_sr)
            body = self._post(level, form, ImportStage.FEATURES, iso3, breaker, cancel_event)
            if _is_failure(body):
                return body
            try:
                parsed = FeatureServiceClient.parse_features(body)
            except UpstreamApiError as e:
                return self._fail(iso3, level, ImportStage.FEATURES, self._envelope_message(e.error, body),
                                  body, breaker, upstream_error=e.error)
            except FeatureParseError as e:
                return self._fail(iso3, level, ImportStage.PARSE, e.message, body, breaker)

            if breaker is not None:
                breaker.record_success(level)
            features.extend(parsed)

        logger.debug(f"[{iso3}] level {level}: {len(features)} features in "
                     f"{-(-len(object_ids) // batch_size)} batches")
        return features

    def _post(
        self,
        level: int,
        form,
        stage: ImportStage,
        iso3: str,
        breaker: Optional[CountryCircuitBreaker],
        cancel_event: Optional[threading.Event],
    ) -> Union[str, Failure]:
        """One request through the retry executor; HTTP exceptions become step values."""

        def on_transient_failure(error: TransientHttpError) -> None:
            if breaker is None:
                return
            signal = breaker.fail(level, error.message, self._truncate(error.body))
            if signal is not None:
                raise CircuitOpenError(signal)

        try:
            return self.executor.execute(
                lambda: self.client.post_query(level, form),
                on_transient_failure=on_transient_failure,
                cancel_event=cancel_event,
            )
        except CircuitOpenError as e:
            return e.signal
        except RetriesExhausted as e:
            # Every attempt already counted by on_transient_failure
            return ImportStepFailure(
                iso3=iso3,
                level=level,
                stage=stage,
                message=e.message,
                payload=self._truncate(e.body),
                http_status=e.status,
                http_reason=e.reason,
            )
        except HttpStatusError as e:
            if e.upstream_error is not None:
                message = f"{e.message} | ArcGIS: {self._envelope_message(e.upstream_error, e.body)}"
            else:
                message = f"{e.message}. Payload: {self._truncate(e.body)}"
            return self._fail(iso3, level, stage, message, e.body, breaker,
                              http_status=e.status, http_reason=e.reason, upstream_error=e.upstream_error)

    def _fail(
        self,
        iso3: str,
        level: int,
        stage: ImportStage,
        message: str,
        body: Optional[str],
        breaker: Optional[CountryCircuitBreaker],
        http_status: Optional[int] = None,
        http_reason: Optional[str] = None,
        upstream_error: Optional[UpstreamError] = None,
    ) -> Failure:
        """Count a failure against the breaker; the breaker signal wins over the step failure."""
        payload = self._truncate(body)
        if breaker is not None:
            signal = breaker.fail(level, message, payload)
            if signal is not None:
                return signal
        return ImportStepFailure(
            iso3=iso3,
            level=level,
            stage=stage,
            message=message,
            payload=payload,
            http_status=http_status,
            http_reason=http_reason,
            upstream_error=upstream_error,
        )

    def _envelope_message(self, error: UpstreamError, body: Optional[str]) -> str:
        return f"{error.describe()} Payload: {self._truncate(body)}"

    def _truncate(self, body: Optional[str]) -> str:
        return truncate_payload(body, self.settings.max_error_payload_chars)

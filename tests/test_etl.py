"""
Offline Import Command Tests

Argument parsing, summary logging and exit codes of
geoadmin.etl.import_admin_areas. The database steps are patched out.

Author: GeoAdmin Project
License: AGPL-3.0
"""

import json
import logging
from unittest.mock import MagicMock, patch

import pytest

from geoadmin.etl import import_admin_areas as cli
from geoadmin.schemas.import_summary import CountrySummary, ImportErrorEntry, ImportSummary
from geoadmin.services.arcgis.errors import ImportCancelled


def _summary():
    return ImportSummary(
        max_level=2,
        inserted=3,
        total_in_db=3,
        countries=[CountrySummary(iso3="ESP", inserted=2, levels_imported=[1],
                                  circuit_breaker_opened=True, circuit_breaker_opened_at_level=2)],
        errors=[ImportErrorEntry(iso3="ESP", level=2, stage="circuit_breaker", message="Circuit breaker OPEN")],
    )


class TestParseArgs:

    def test_defaults(self):
        args = cli.parse_args([])
        assert args.hard_reset is False
        assert args.iso3 is None
        assert args.max_level == 4

    def test_flags(self):
        args = cli.parse_args(["--hard-reset", "--iso3", " esp ", "--max-level", "2"])
        assert args.hard_reset is True
        assert args.iso3 == "ESP"
        assert args.max_level == 2

    @pytest.mark.parametrize("level", ["-1", "26"])
    def test_max_level_out_of_range(self, level):
        with pytest.raises(SystemExit):
            cli.parse_args(["--max-level", level])


def test_log_summary(caplog):
    with caplog.at_level(logging.INFO, logger="geoadmin.etl.import_admin_areas"):
        cli.log_summary(_summary())
    assert "Inserted: 3" in caplog.text
    assert "breaker OPEN at level 2" in caplog.text
    assert "circuit_breaker" in caplog.text


class TestMain:

    def test_memory_backend_refused(self):
        # conftest selects STORE_BACKEND=memory
        assert cli.main(["--max-level", "1"]) == 1

    def test_success_passes_arguments(self, tmp_path):
        out = tmp_path / "summary.json"
        with patch.object(cli, "run_import", return_value=0) as run_import:
            assert cli.main(["--summary-json", str(out)]) == 0
            args, cancel_event = run_import.call_args[0]
            assert args.summary_json == str(out)
            assert not cancel_event.is_set()

    def test_cancelled_exit_code(self):
        with patch.object(cli, "run_import", side_effect=ImportCancelled("stop")):
            assert cli.main([]) == 130

    def test_fatal_error_exit_code(self):
        with patch.object(cli, "run_import", side_effect=RuntimeError("store unavailable")):
            assert cli.main([]) == 1


def test_run_import_against_patched_database(tmp_path, monkeypatch):
    settings = MagicMock(store_backend="postgis")
    monkeypatch.setattr(cli, "get_settings", lambda: settings)

    service = MagicMock()
    service.import_all.return_value = _summary()
    session = MagicMock()

    with patch("geoadmin.db.init_db.wait_for_database", return_value=True), \
            patch("geoadmin.db.init_db.create_schema") as create_schema, \
            patch("geoadmin.db.database.SessionLocal", return_value=session), \
            patch.object(cli, "build_service", return_value=service):
        out = tmp_path / "summary.json"
        args = MagicMock(hard_reset=True, iso3="ESP", max_level=2, summary_json=str(out))
        assert cli.run_import(args, cancel_event=None) == 0

    create_schema.assert_called_once()
    service.import_all.assert_called_once_with(hard_reset=True, iso3_filter="ESP", max_level=2, cancel_event=None)
    session.close.assert_called_once()
    assert json.loads(out.read_text(encoding="utf-8"))["inserted"] == 3

"""Tests for the command line consumer and logging setup."""
from __future__ import annotations

import asyncio
from datetime import date
import json
import logging
from unittest.mock import patch

from hostwatch.config import load_config
from hostwatch.logging_utils import TRACE_LEVEL, log_file_path, resolve_log_level
from hostwatch.main import SnapshotReporter, build_parser, run, summarize
from tests.fakes import FakeProvider


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.config is None
    assert args.once is False
    assert args.interval_ms is None
    assert args.verbose == 0


def test_parser_options():
    args = build_parser().parse_args(["--once", "-vv", "--interval-ms", "500"])
    assert args.once is True
    assert args.verbose == 2
    assert args.interval_ms == 500


def test_resolve_log_level():
    assert resolve_log_level(2, "INFO") == TRACE_LEVEL
    assert resolve_log_level(1, "INFO") == logging.DEBUG
    assert resolve_log_level(0, "warning") == logging.WARNING
    assert resolve_log_level(0, "nonsense") == logging.INFO


def test_log_file_name(tmp_path):
    assert log_file_path(tmp_path, date(2026, 3, 4)) == tmp_path / "hostwatch-2026-03-04.log"


def test_summarize_error_snapshot():
    snapshot = {"timestamp": "t", "status": "error", "error": "boom"}
    assert summarize(snapshot) == "status=error error=boom"


def test_reporter_dumps_json(tmp_path, caplog):
    dump = tmp_path / "snapshot.json"
    reporter = SnapshotReporter(str(dump))
    snapshot = {"timestamp": "2026-01-01T00:00:00+00:00", "status": "error", "error": "boom"}

    with caplog.at_level(logging.INFO):
        reporter(snapshot)

    assert json.loads(dump.read_text()) == snapshot
    assert "status=error" in caplog.text
    assert "Schema validation failed" not in caplog.text


def test_reporter_warns_on_schema_errors(caplog):
    with caplog.at_level(logging.WARNING):
        SnapshotReporter()({"timestamp": "t", "status": "bogus"})
    assert "Schema validation failed" in caplog.text


def test_run_once_prints_snapshot(capsys):
    config = load_config(None)
    with patch("hostwatch.main.PsutilProvider", return_value=FakeProvider()), \
         patch("hostwatch.drivers.run_command", return_value=None):
        asyncio.run(run(config, SnapshotReporter(), once=True))

    snapshot = json.loads(capsys.readouterr().out)
    assert snapshot["status"] == "success"
    assert snapshot["system"]["hostname"] == "testhost"
    assert "cpu=42%" in summarize(snapshot)

"""
Tests for the utils package - ids, time helpers, logging and rate counters.
"""

import re
from datetime import datetime, timezone, timedelta

import pytest

import hs.utils.log as log_module
from hs.utils.ids import new_report_id, split_report_id, time_key
from hs.utils.log import log_line, setup_logging
from hs.utils.rate import rate_inc, rate_maybe_log, rate_reset, rate_snapshot
from hs.utils.time import ensure_utc, parse_iso, to_iso


class TestIds:
    """Tests for record ids."""

    def test_time_key_format(self):
        ts = datetime(2026, 7, 4, 21, 0, 5, 123456, tzinfo=timezone.utc)
        assert time_key(ts) == "20260704210005123"

    def test_report_id_carries_partition(self):
        rid = new_report_id("grid:4760:-12233", datetime(2026, 7, 4, tzinfo=timezone.utc))
        local, partition = split_report_id(rid)
        assert partition == "grid:4760:-12233"
        assert re.fullmatch(r"20260704000000000_[0-9a-f]{16}", local)

    def test_ids_sort_by_time(self):
        t = datetime(2026, 7, 4, tzinfo=timezone.utc)
        assert new_report_id("p", t) < new_report_id("p", t + timedelta(milliseconds=1))

    def test_malformed_id(self):
        with pytest.raises(ValueError):
            split_report_id("no-partition-here")


class TestTime:
    """Tests for time helpers."""

    def test_naive_taken_as_utc(self):
        assert ensure_utc(datetime(2026, 1, 1)).tzinfo == timezone.utc

    def test_parse_z_suffix(self):
        assert parse_iso("2026-07-04T21:00:00Z") == datetime(2026, 7, 4, 21, tzinfo=timezone.utc)
        assert parse_iso(None) is None

    def test_offsets_normalized(self):
        ts = parse_iso("2026-07-04T23:00:00+02:00")
        assert to_iso(ts) == "2026-07-04T21:00:00+00:00"


class TestLogLine:
    """Tests for the log wrapper."""

    def test_prefix_and_level(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(log_module, "BOT_LOG_PATH", None)
        monkeypatch.setattr(log_module, "LOG_DIR", None)
        path = setup_logging(tmp_path, "test.log")

        log_line("INGEST | created id=x")
        log_line("store down", "WARN")

        lines = path.read_text(encoding="utf-8").splitlines()
        rx = re.compile(r"^\d{4}-\d{2}-\d{2} // \d{2}:\d{2}:\d{2}[+-]\d{2}:\d{2} - (.*)$")
        assert rx.match(lines[0]).group(1) == "INGEST | created id=x"
        assert rx.match(lines[1]).group(1) == "WARN | store down"
        assert "INGEST | created id=x" in capsys.readouterr().out


class TestRate:
    """Tests for hourly counters."""

    def test_counts_and_window(self, monkeypatch):
        monkeypatch.setattr(log_module, "BOT_LOG_PATH", None)
        rate_reset()
        rate_inc("created")
        rate_inc("merged", 2)
        rate_inc("bogus")
        assert rate_snapshot()["merged"] == 2

        assert rate_maybe_log(now=1000.0) is False   # opens the window
        assert rate_maybe_log(now=2000.0) is False
        assert rate_maybe_log(now=1000.0 + 3600.0) is True
        assert rate_snapshot()["created"] == 0
        rate_reset()

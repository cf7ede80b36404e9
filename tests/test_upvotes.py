"""
Tests for upvotes.py - one upvote per (record, user).
"""

import threading
from datetime import timedelta

import pytest

from hs.adapters.geocode import GridCellResolver
from hs.core.config import EngineSettings
from hs.core.engine import ReportEngine
from hs.core.errors import ConflictExhausted, ReportNotFound, ValidationError
from hs.domain.merge import new_record

from conftest import ManualClock, T0


class TestUpvote:
    """Tests for the upvote path."""

    def test_first_upvote_counts(self, engine, make_sub):
        rec = engine.submit_report(make_sub())
        res = engine.upvote(rec.id, "u5")
        assert res.upvote_count == 1
        assert not res.already_upvoted

    def test_second_upvote_same_user(self, engine, make_sub):
        rec = engine.submit_report(make_sub())
        engine.upvote(rec.id, "u5")
        res = engine.upvote(rec.id, "u5")
        assert res.already_upvoted
        assert res.upvote_count == 1

    def test_different_users(self, engine, make_sub):
        rec = engine.submit_report(make_sub())
        engine.upvote(rec.id, "u5")
        res = engine.upvote(rec.id, "u6")
        assert res.upvote_count == 2

    def test_unknown_report(self, engine):
        with pytest.raises(ReportNotFound):
            engine.upvote("20260704210000000_abcd@grid:1:1", "u5")

    def test_missing_user(self, engine, make_sub):
        rec = engine.submit_report(make_sub())
        with pytest.raises(ValidationError):
            engine.upvote(rec.id, "  ")

    def test_concurrent_same_user_counts_once(self, engine, make_sub):
        rec = engine.submit_report(make_sub())
        n = 8
        barrier = threading.Barrier(n)
        results = []

        def worker():
            barrier.wait()
            results.append(engine.upvote(rec.id, "u5"))

        threads = [threading.Thread(target=worker) for _ in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if not r.already_upvoted) == 1
        assert engine.get_report(rec.id).upvote_count == 1


class TestUpvoteStatus:
    """Tests for status reads."""

    def test_status(self, engine, make_sub):
        rec = engine.submit_report(make_sub())
        assert not engine.get_upvote_status(rec.id, "u5").has_upvoted
        engine.upvote(rec.id, "u5")
        status = engine.get_upvote_status(rec.id, "u5")
        assert status.has_upvoted
        assert status.upvote_count == 1
        assert not engine.get_upvote_status(rec.id, "u6").has_upvoted


class TestUpvoteConflicts:
    """Claim release when the increment keeps losing."""

    def test_exhausted_increment_releases_claim(self, taxonomy, flaky_store, make_sub):
        engine = ReportEngine(taxonomy, flaky_store, GridCellResolver(), EngineSettings(), ManualClock())
        rec = engine.submit_report(make_sub())

        flaky_store.conflicts = 3
        flaky_store.conflict_prefix = "report:"
        with pytest.raises(ConflictExhausted):
            engine.upvote(rec.id, "u5")
        assert not engine.get_upvote_status(rec.id, "u5").has_upvoted
        assert engine.get_report(rec.id).upvote_count == 0

        res = engine.upvote(rec.id, "u5")
        assert not res.already_upvoted
        assert res.upvote_count == 1


class TestUpvotesAcrossFolds:
    """Upvotes on two racing founders once one is folded into the other."""

    def _two_records(self, engine, make_sub):
        a = engine.submit_report(make_sub(user="u1"))
        b = new_record(make_sub(user="u2", at=T0 + timedelta(seconds=5)), a.partition_key)
        engine.repo.insert_report(b)
        return a, b

    def test_user_on_both_sides_counts_once(self, engine, make_sub):
        a, b = self._two_records(engine, make_sub)
        engine.upvote(a.id, "voter")
        engine.upvote(b.id, "voter")
        engine.upvote(b.id, "only-b")

        assert engine.merger.fold(b.id, a.id) is True

        status = engine.get_upvote_status(a.id, "voter")
        assert status.has_upvoted
        assert status.upvote_count == 2
        assert engine.get_upvote_status(a.id, "only-b").has_upvoted

    def test_no_second_upvote_through_retired_id(self, engine, make_sub):
        a, b = self._two_records(engine, make_sub)
        engine.upvote(b.id, "voter")
        engine.merger.fold(b.id, a.id)

        res = engine.upvote(a.id, "voter")
        assert res.already_upvoted
        assert res.upvote_count == 1
        assert engine.upvote(b.id, "voter").already_upvoted

"""
Tests for comments.py - append-only comment threads.
"""

import pytest

from hs.core.errors import ReportNotFound, ValidationError
from hs.core.models import OriginKind

from conftest import T0


class TestAddComment:
    """Tests for posting comments."""

    def test_add_and_list(self, engine, make_sub):
        rec = engine.submit_report(make_sub())
        c = engine.add_comment(rec.id, "u7", "  Still going on  ")
        assert c.text == "Still going on"
        assert c.origin == OriginKind.USER_AUTHORED
        assert engine.list_comments(rec.id) == [c]

    def test_comment_advances_last_updated(self, engine, clock, make_sub):
        rec = engine.submit_report(make_sub())
        clock.advance(600)
        engine.add_comment(rec.id, "u7", "again")
        assert engine.get_report(rec.id).last_updated_at == clock.now

    def test_unknown_report(self, engine):
        with pytest.raises(ReportNotFound):
            engine.add_comment("20260704210000000_abcd@grid:1:1", "u7", "hello")
        with pytest.raises(ReportNotFound):
            engine.add_comment("not-an-id", "u7", "hello")

    def test_validation_before_store_access(self, engine, make_sub):
        rec = engine.submit_report(make_sub())
        with pytest.raises(ValidationError):
            engine.add_comment(rec.id, "u7", "")
        with pytest.raises(ValidationError):
            engine.add_comment(rec.id, "", "hello")
        assert engine.list_comments(rec.id) == []


class TestListComments:
    """Tests for ordering."""

    def test_ordered_by_creation_time(self, engine, clock, make_sub):
        rec = engine.submit_report(make_sub())
        texts = []
        for i in range(5):
            clock.advance(10)
            engine.add_comment(rec.id, f"u{i}", f"comment {i}")
            texts.append(f"comment {i}")

        listed = engine.list_comments(rec.id)
        assert [c.text for c in listed] == texts
        stamps = [c.created_at for c in listed]
        assert stamps == sorted(stamps)
        assert stamps[0] > T0

    def test_merge_comments_are_interleaved_by_time(self, engine, clock, make_sub):
        rec = engine.submit_report(make_sub(user="u1"))
        clock.advance(5)
        engine.add_comment(rec.id, "u9", "user comment")
        clock.advance(5)
        engine.submit_report(make_sub(user="u2", description="second report"))

        listed = engine.list_comments(rec.id)
        assert [c.origin for c in listed] == [OriginKind.USER_AUTHORED, OriginKind.MERGE_DERIVED]
        assert listed[1].text == "second report"

    def test_thread_survives_many_comments(self, engine, make_sub):
        """Comments are never truncated."""
        rec = engine.submit_report(make_sub())
        for i in range(12):
            engine.add_comment(rec.id, "u1", f"c{i}")
        assert len(engine.list_comments(rec.id)) == 12

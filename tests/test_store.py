"""
Tests for store.py - partitioned store with per-row compare-and-swap.

These tests verify:
- Conditional insert (ABSENT) and conditional update (token)
- Range scans by prefix and row timestamp, ordered by key
- Isolation of stored documents from caller mutation
- JSON file persistence across instances
"""

import pytest

from hs.adapters.store import ABSENT, InMemoryStore, JsonFileStore
from hs.core.errors import StoreConflict, StoreUnavailable


class TestConditionalWrites:
    """Tests for put() preconditions."""

    def test_insert_if_absent(self, store):
        tok = store.put("p1", "report:a", {"v": 1}, expected=ABSENT)
        assert store.get("p1", "report:a") == ({"v": 1}, tok)

    def test_insert_if_absent_conflicts_when_present(self, store):
        store.put("p1", "report:a", {"v": 1}, expected=ABSENT)
        with pytest.raises(StoreConflict):
            store.put("p1", "report:a", {"v": 2}, expected=ABSENT)
        assert store.get("p1", "report:a")[0] == {"v": 1}

    def test_update_with_current_token(self, store):
        tok = store.put("p1", "k", {"v": 1})
        tok2 = store.put("p1", "k", {"v": 2}, expected=tok)
        assert tok2 != tok
        assert store.get("p1", "k") == ({"v": 2}, tok2)

    def test_update_with_stale_token_conflicts(self, store):
        tok = store.put("p1", "k", {"v": 1})
        store.put("p1", "k", {"v": 2}, expected=tok)
        with pytest.raises(StoreConflict):
            store.put("p1", "k", {"v": 3}, expected=tok)

    def test_update_of_missing_row_conflicts(self, store):
        with pytest.raises(StoreConflict):
            store.put("p1", "k", {"v": 1}, expected="1")

    def test_partitions_are_separate(self, store):
        store.put("p1", "k", {"v": 1}, expected=ABSENT)
        store.put("p2", "k", {"v": 2}, expected=ABSENT)
        assert store.get("p1", "k")[0] == {"v": 1}
        assert store.partitions() == ["p1", "p2"]

    def test_documents_are_copied(self, store):
        doc = {"items": [1]}
        store.put("p1", "k", doc)
        doc["items"].append(2)
        got, _ = store.get("p1", "k")
        got["items"].append(3)
        assert store.get("p1", "k")[0] == {"items": [1]}


class TestScan:
    """Tests for range scans."""

    def test_prefix_and_key_order(self, store):
        store.put("p", "report:b", {"n": "b"})
        store.put("p", "comment:x", {"n": "x"})
        store.put("p", "report:a", {"n": "a"})
        keys = [k for k, _, _ in store.scan("p", "report:")]
        assert keys == ["report:a", "report:b"]

    def test_since_filters_on_row_timestamp(self, store):
        store.put("p", "report:old", {}, ts=100.0)
        store.put("p", "report:new", {}, ts=200.0)
        keys = [k for k, _, _ in store.scan("p", "report:", since=150.0)]
        assert keys == ["report:new"]

    def test_unknown_partition_is_empty(self, store):
        assert list(store.scan("nowhere")) == []


class TestJsonFileStore:
    """Tests for file persistence."""

    def test_reload_keeps_rows_and_tokens(self, tmp_path):
        path = tmp_path / "store.json"
        s1 = JsonFileStore(path)
        tok = s1.put("p", "report:a", {"v": 1}, expected=ABSENT, ts=123.0)

        s2 = JsonFileStore(path)
        assert s2.get("p", "report:a") == ({"v": 1}, tok)
        assert [k for k, _, _ in s2.scan("p", since=100.0)] == ["report:a"]
        # token counter continues, old tokens stay valid
        tok2 = s2.put("p", "report:a", {"v": 2}, expected=tok)
        assert tok2 != tok

    def test_missing_file_starts_empty(self, tmp_path):
        s = JsonFileStore(tmp_path / "absent.json")
        assert s.partitions() == []

    def test_save_failure_is_unavailable(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        s = JsonFileStore(blocker / "store.json")
        with pytest.raises(StoreUnavailable):
            s.put("p", "k", {"v": 1})

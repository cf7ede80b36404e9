"""
Tests for candidates.py - spatial/temporal candidate search.
"""

from dataclasses import replace
from datetime import timedelta

from hs.adapters.geocode import GridCellResolver
from hs.adapters.repository import ReportRepository
from hs.core.config import EngineSettings
from hs.domain.candidates import CandidateIndex
from hs.domain.geo import offset
from hs.domain.merge import new_record

from conftest import T0


def _index(store):
    return CandidateIndex(ReportRepository(store), GridCellResolver(), EngineSettings())


def _seed(store, sub):
    resolver = GridCellResolver()
    rec = new_record(sub, resolver.resolve_cell(sub.location.lat, sub.location.lon))
    ReportRepository(store).insert_report(rec)
    return rec


class TestFindCandidates:
    """Tests for candidate search."""

    def test_finds_record_in_neighbouring_cell(self, store, make_sub):
        index = _index(store)
        here = make_sub()
        there = replace(make_sub(), location=offset(here.location, 0, 800))
        assert index.resolver.resolve_cell(here.location.lat, here.location.lon) != \
            index.resolver.resolve_cell(there.location.lat, there.location.lon)
        rec = _seed(store, there)

        found = index.find_candidates(here.location, here.category, T0)
        assert [r.id for r in found] == [rec.id]

    def test_excludes_other_major(self, store, make_sub):
        _seed(store, make_sub(leaf="Street racing"))
        sub = make_sub()
        assert _index(store).find_candidates(sub.location, sub.category, T0) == []

    def test_excludes_beyond_max_match_radius(self, store, make_sub):
        sub = make_sub()
        _seed(store, replace(sub, location=offset(sub.location, 1200, 0)))
        assert _index(store).find_candidates(sub.location, sub.category, T0) == []

    def test_excludes_outside_time_window(self, store, make_sub):
        _seed(store, make_sub(at=T0 - timedelta(hours=7)))
        sub = make_sub()
        assert _index(store).find_candidates(sub.location, sub.category, T0) == []

    def test_excludes_retired_and_withdrawn(self, store, make_sub):
        repo = ReportRepository(store)
        a = _seed(store, make_sub())
        b = _seed(store, make_sub())
        a.merged_into = b.id
        repo.update_report(a)
        b.withdrawn = True
        repo.update_report(b)
        sub = make_sub()
        assert _index(store).find_candidates(sub.location, sub.category, T0) == []

    def test_home_cell_first(self, make_sub, store):
        index = _index(store)
        sub = make_sub()
        cells = index.candidate_cells(sub.location)
        assert cells[0] == index.resolver.resolve_cell(sub.location.lat, sub.location.lon)
        assert len(cells) == len(set(cells))

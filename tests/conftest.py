"""
Shared fixtures: a small category taxonomy, a manual clock, a store double
that injects conflicts and outages, and a ready-to-use engine.
"""

from datetime import datetime, timedelta

import pytest

from hs.adapters.geocode import GridCellResolver
from hs.adapters.store import InMemoryStore
from hs.core.config import EngineSettings
from hs.core.engine import ReportEngine
from hs.core.errors import StoreConflict, StoreUnavailable
from hs.core.models import BlastRadius, Location, SubReport
from hs.domain.taxonomy import CategoryTaxonomy
from hs.utils.time import UTC


TAXONOMY_DATA = {
    "Celebrations, Entertainment & Gatherings": {
        "Holidays & Cultural Celebrations": [
            "Fireworks (legal displays)",
            "Fireworks (illegal / residential)",
            "Holiday parades",
        ],
        "Music, Arts & Performance": [
            "Concerts (outdoor)",
            "Street performers / buskers",
        ],
    },
    "Public Nuisances & Quality-of-Life Issues": {
        "Noise & Disturbances": [
            "Illegal fireworks",
            "Loud parties",
            "Street racing",
        ],
    },
}

T0 = datetime(2026, 7, 4, 21, 0, 0, tzinfo=UTC)


class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FlakyStore(InMemoryStore):
    """
    InMemoryStore that can be told to fail.

    conflicts:        number of upcoming puts (on keys starting with
                      conflict_prefix) rejected with StoreConflict
    down_prefix:      when set, every call touching a key with this prefix
                      raises StoreUnavailable ("" means the whole store)
    """

    def __init__(self):
        super().__init__()
        self.conflicts = 0
        self.conflict_prefix = ""
        self.down_prefix = None
        self.put_calls = 0

    def _check_down(self, key: str) -> None:
        if self.down_prefix is not None and key.startswith(self.down_prefix):
            raise StoreUnavailable(f"injected outage on {key}")

    def get(self, partition, key):
        self._check_down(key)
        return super().get(partition, key)

    def put(self, partition, key, doc, expected=None, ts=None):
        self.put_calls += 1
        self._check_down(key)
        if self.conflicts > 0 and key.startswith(self.conflict_prefix):
            self.conflicts -= 1
            raise StoreConflict(partition, key)
        return super().put(partition, key, doc, expected=expected, ts=ts)

    def scan(self, partition, prefix="", since=None):
        self._check_down(prefix)
        return super().scan(partition, prefix, since)


@pytest.fixture
def taxonomy():
    return CategoryTaxonomy(TAXONOMY_DATA)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def engine(taxonomy, store, clock, settings):
    return ReportEngine(taxonomy, store, GridCellResolver(), settings, clock)


@pytest.fixture
def make_sub(taxonomy):
    """Factory for valid sub-reports."""
    def _make(leaf="Fireworks (illegal / residential)", lat=47.60, lon=-122.33, user="u1",
              at=T0, description="Loud bangs", blast=BlastRadius.SMALL, **kw):
        return SubReport(
            location=Location(lat, lon),
            category=taxonomy.resolve(leaf),
            description=description,
            reporter_id=user,
            submitted_at=at,
            blast_radius=blast,
            **kw,
        )
    return _make

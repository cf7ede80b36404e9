from datetime import datetime, timedelta
from typing import Dict, List

from ..adapters.geocode import sanitize_partition
from ..adapters.repository import ReportRepository
from ..core.config import EngineSettings
from ..core.models import CanonicalReport, Category, Location, MapBounds
from .geo import distance_m, offset, ring_points

class CandidateIndex:
    """
    Finds live records that could describe the same occurrence as a new
    sub-report: same major category, inside the max match radius, last
    written within the trailing time window.
    """

    def __init__(self, repo: ReportRepository, resolver, settings: EngineSettings):
        self.repo = repo
        self.resolver = resolver
        self.settings = settings

    def candidate_cells(self, location: Location) -> List[str]:
        """Partition keys covering the scan radius around `location` (home cell first)."""
        r = self.settings.scan_radius_m
        cells: Dict[str, None] = {}
        for p in ring_points(location, r):
            cells.setdefault(sanitize_partition(self.resolver.resolve_cell(p.lat, p.lon)), None)

        # resolvers that can enumerate cells cover the whole scan square
        lister = getattr(self.resolver, "cells_in_bounds", None)
        if lister is not None:
            sw, ne = offset(location, -r, -r), offset(location, r, r)
            square = MapBounds(sw.lat, ne.lat, min(sw.lon, ne.lon), max(sw.lon, ne.lon))
            for cell in lister(square) or []:
                cells.setdefault(cell, None)
        return list(cells)

    def find_candidates(self, location: Location, category: Category,
                        submitted_at: datetime) -> List[CanonicalReport]:
        since = submitted_at - timedelta(seconds=self.settings.time_window_s)
        found: Dict[str, CanonicalReport] = {}
        for cell in self.candidate_cells(location):
            for rec in self.repo.scan_reports(cell, since):
                if not rec.is_live:
                    continue
                if rec.category.major != category.major:
                    continue
                if distance_m(rec.location, location) > self.settings.max_match_radius_m:
                    continue
                found[rec.id] = rec
        return list(found.values())

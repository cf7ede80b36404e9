from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..adapters.codec import sub_report_from_wire
from ..adapters.geocode import GridCellResolver, make_resolver, sanitize_partition
from ..adapters.repository import ReportRepository
from ..adapters.store import InMemoryStore, JsonFileStore, PartitionedStore
from ..domain.candidates import CandidateIndex
from ..domain.comments import CommentAggregator
from ..domain.geo import grid_points
from ..domain.merge import MergeTransactionManager
from ..domain.scoring import MatchScorer
from ..domain.taxonomy import CategoryTaxonomy
from ..domain.upvotes import UpvoteLedger
from ..domain.validate import require_valid, validate_user_id
from ..utils.log import log_line
from ..utils.time import now_utc
from .config import EngineSettings
from .errors import ValidationError
from .models import (
    CanonicalReport, Comment, IngestOutcome, MapBounds, SubReport, UpvoteResult, UpvoteStatus,
)

class ReportEngine:
    """
    Entry point for submissions and the read paths around them.

    Collaborators are injected: the category taxonomy, the partitioned store,
    the reverse-geocode resolver (coordinates -> partition key) and a clock.
    """

    def __init__(self, taxonomy: CategoryTaxonomy, store: Optional[PartitionedStore] = None,
                 resolver=None, settings: Optional[EngineSettings] = None,
                 clock: Callable[[], datetime] = now_utc):
        self.taxonomy = taxonomy
        self.store = store if store is not None else InMemoryStore()
        self.resolver = resolver if resolver is not None else GridCellResolver()
        self.settings = settings or EngineSettings()
        self.clock = clock

        self.repo = ReportRepository(self.store)
        self.index = CandidateIndex(self.repo, self.resolver, self.settings)
        self.scorer = MatchScorer(self.settings)
        self.comments = CommentAggregator(self.repo, clock, self.settings.max_attempts)
        self.upvotes = UpvoteLedger(self.repo, clock, self.settings.max_attempts)
        self.merger = MergeTransactionManager(
            self.repo, self.index, self.scorer, self.comments, self.settings, clock
        )

    @classmethod
    def from_cfg(cls, cfg: Dict[str, Any], store: Optional[PartitionedStore] = None) -> "ReportEngine":
        taxonomy = CategoryTaxonomy.from_file(Path(cfg.get("taxonomy_path") or "taxonomy.json"))
        if not len(taxonomy):
            log_line("ENGINE | taxonomy is empty, every submission will be rejected", "WARN")
        if store is None:
            store = JsonFileStore(Path(cfg.get("store_path") or "store.json"))
        return cls(taxonomy, store, make_resolver(cfg), EngineSettings.from_cfg(cfg))

    # ---------- write paths ----------

    def partition_for(self, sub: SubReport) -> str:
        cell = sanitize_partition(self.resolver.resolve_cell(sub.location.lat, sub.location.lon))
        if not cell:
            raise ValidationError("unresolvable_location")
        return cell

    def ingest_report(self, sub: SubReport) -> IngestOutcome:
        require_valid(sub, self.taxonomy)
        return self.merger.ingest(sub, self.partition_for(sub))

    def submit_report(self, sub: SubReport) -> CanonicalReport:
        return self.ingest_report(sub).report

    def submit(self, payload: Dict[str, Any], user_id: str) -> CanonicalReport:
        """Wire payload + verified user id -> canonical record."""
        user_id = validate_user_id(user_id)
        sub = sub_report_from_wire(payload, user_id, self.taxonomy, now=self.clock())
        return self.submit_report(sub)

    def upvote(self, report_id: str, user_id: str) -> UpvoteResult:
        return self.upvotes.upvote(report_id, user_id)

    def add_comment(self, report_id: str, author_id: str, text: str) -> Comment:
        return self.comments.add_comment(report_id, author_id, text)

    def remove_contribution(self, report_id: str, sub_report_id: str, user_id: str) -> CanonicalReport:
        return self.merger.remove_contribution(report_id, sub_report_id, user_id)

    # ---------- read paths ----------

    def get_report(self, report_id: str) -> CanonicalReport:
        """Live view of a record, following merge redirects."""
        return self.repo.resolve_report(report_id)

    def get_upvote_status(self, report_id: str, user_id: str) -> UpvoteStatus:
        return self.upvotes.check_status(report_id, user_id)

    def list_comments(self, report_id: str) -> List[Comment]:
        return self.comments.list_comments(report_id)

    def cells_in_bounds(self, bounds: MapBounds) -> List[str]:
        _check_bounds(bounds)
        lister = getattr(self.resolver, "cells_in_bounds", None)
        if lister is not None:
            cells = lister(bounds)
            if cells is not None:
                return list(cells)
        seen: Dict[str, None] = {}
        for p in grid_points(bounds):
            seen.setdefault(sanitize_partition(self.resolver.resolve_cell(p.lat, p.lon)), None)
        return list(seen)

    def query_reports(self, bounds: Optional[MapBounds] = None, cells: Optional[Iterable[str]] = None,
                      since: Optional[datetime] = None) -> List[CanonicalReport]:
        """
        Live records in the given bounds (or cells), created at or after `since`,
        oldest first.
        """
        if bounds is None and cells is None:
            raise ValidationError("missing_bounds")
        cell_list = list(cells) if cells is not None else self.cells_in_bounds(bounds)

        found: Dict[str, CanonicalReport] = {}
        for cell in cell_list:
            # row ts is last_updated_at >= created_at, so the scan bound is safe
            for rec in self.repo.scan_reports(cell, since):
                if not rec.is_live:
                    continue
                if bounds is not None and not bounds.contains(rec.location):
                    continue
                if since is not None and rec.created_at < since:
                    continue
                found[rec.id] = rec
        return sorted(found.values(), key=lambda r: (r.created_at, r.id))

    def reports_for_user(self, user_id: str, bounds: Optional[MapBounds] = None,
                         cells: Optional[Iterable[str]] = None) -> List[CanonicalReport]:
        """
        Live records in the area holding at least one contribution by user_id,
        oldest first. The user's own sub_report_ids are in each record's history
        (what remove_contribution takes).
        """
        user_id = validate_user_id(user_id)
        return [
            rec for rec in self.query_reports(bounds, cells)
            if any(h.reporter_id == user_id for h in rec.history)
        ]


def _check_bounds(bounds: MapBounds) -> None:
    if bounds.min_lat > bounds.max_lat or bounds.min_lon > bounds.max_lon:
        raise ValidationError("invalid_bounds")

from typing import Iterable, Optional

from ..core.config import EngineSettings
from ..core.constants import TIER_LEAF, TIER_SUB, TIER_MAJOR
from ..core.models import CanonicalReport, Category, SubReport
from ..utils.time import to_epoch
from .geo import distance_m

def category_tier(existing: Category, incoming: Category) -> Optional[float]:
    """1.0 same leaf, 0.75 same sub-category, 0.25 same major, None otherwise."""
    if existing.major != incoming.major:
        return None
    if existing.leaf == incoming.leaf:
        return TIER_LEAF
    if existing.sub == incoming.sub:
        return TIER_SUB
    return TIER_MAJOR


class MatchScorer:
    """Pure scoring of candidates against one sub-report. No I/O."""

    def __init__(self, settings: EngineSettings):
        self.settings = settings

    def pair_radius(self, candidate: CanonicalReport, sub: SubReport) -> float:
        s = self.settings
        r = max(s.match_radius_m, candidate.radius_m, sub.blast_radius.meters)
        return min(r, s.max_match_radius_m)

    def recency(self, candidate: CanonicalReport, sub: SubReport) -> float:
        age = to_epoch(sub.submitted_at) - to_epoch(candidate.last_updated_at)
        r = 1.0 - age / self.settings.time_window_s
        return max(0.0, min(1.0, r))

    def score_candidate(self, candidate: CanonicalReport, sub: SubReport) -> Optional[float]:
        """Score in [0, 1], or None if the candidate is disqualified."""
        if not candidate.is_live:
            return None
        tier = category_tier(candidate.category, sub.category)
        if tier is None:
            return None
        radius = self.pair_radius(candidate, sub)
        d = distance_m(candidate.location, sub.location)
        if d > radius:
            return None
        s = self.settings
        return (s.weight_category * tier
                + s.weight_distance * (1.0 - d / radius)
                + s.weight_recency * self.recency(candidate, sub))

    def select_best_match(self, candidates: Iterable[CanonicalReport],
                          sub: SubReport) -> Optional[CanonicalReport]:
        """
        Highest score at or above the threshold wins.
        Ties: most recent last_updated_at, then oldest id.
        None means the sub-report should found a new record.
        """
        best = None
        best_key = None
        for c in candidates:
            score = self.score_candidate(c, sub)
            if score is None or score < self.settings.accept_threshold:
                continue
            key = (score, to_epoch(c.last_updated_at))
            if (best is None or key > best_key
                    or (key == best_key and c.id < best.id)):
                best, best_key = c, key
        return best

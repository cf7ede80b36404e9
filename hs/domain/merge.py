"""
Merge transaction manager.

Every write to a canonical record is a read / modify / conditional-write
cycle against the record's concurrency token. A lost race restarts the whole
cycle (candidate search included) up to `max_attempts` times.

Two submissions for the same occurrence can both find no candidate and both
create a record. After a creation commits, the creator searches again and
folds every matching live record into the oldest one:

    1. retire the newer record (merged_into = oldest), conditional write
    2. add its aggregate to the oldest record, own retry loop
    3. append a merge-derived comment with the retired record's description

If step 2 cannot land, step 1 is undone so the newer record is live again.
A record left retired without its aggregate in the target (the undo itself
failed) is finished by the next fold() of the same pair. Users who upvoted
both records count once on the survivor.

The last founder to commit always sees the others, so racing founders end
up as one live record whose merged_count counts every submission.
"""
import math
from datetime import datetime
from typing import Callable, List, Optional

from ..adapters.repository import ReportRepository
from ..core.config import EngineSettings
from ..core.errors import (
    ConflictExhausted, DerivedCommentWriteFailure, EngineError, ReportNotFound,
    StoreConflict, ValidationError,
)
from ..core.models import (
    CanonicalReport, Contribution, IngestAction, IngestOutcome, Location, SubReport,
)
from ..utils.ids import new_report_id
from ..utils.log import log_line
from ..utils.rate import rate_inc
from ..utils.time import now_utc
from .candidates import CandidateIndex
from .comments import CommentAggregator
from .geo import distance_m
from .scoring import MatchScorer
from .validate import validate_user_id

def _refit_envelope(rec: CanonicalReport, point: Location, accuracy_m: int, cap: float) -> None:
    """
    Take `point` into the record's envelope. A strictly more precise point
    becomes the new location. The radius covers every contribution, capped.
    """
    relocated = False
    if accuracy_m < rec.accuracy_m:
        rec.location = point
        rec.accuracy_m = accuracy_m
        relocated = True

    farthest = max([distance_m(rec.location, h.location) for h in rec.history] + [0.0])
    base = rec.accuracy_m if relocated else rec.radius_m
    rec.radius_m = int(min(cap, max(base, rec.accuracy_m, math.ceil(farthest))))

def _merge_media(into: List[str], extra: List[str]) -> List[str]:
    media = list(into or [])
    seen = set(media)
    for m in extra or []:
        if m and m not in seen:
            media.append(m)
            seen.add(m)
    return media

def _max_noise(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)

def apply_merge(rec: CanonicalReport, sub: SubReport, cap: float) -> CanonicalReport:
    """Fold one sub-report into a record (in place). Founder's category and description stay."""
    rec.merged_count += 1
    rec.contributor_ids.add(sub.reporter_id)
    rec.history.append(Contribution.from_sub_report(sub))
    if sub.submitted_at > rec.last_updated_at:
        rec.last_updated_at = sub.submitted_at
    rec.media = _merge_media(rec.media, sub.media)
    rec.noise_level = _max_noise(rec.noise_level, sub.noise_level)
    _refit_envelope(rec, sub.location, sub.blast_radius.meters, cap)
    return rec

def apply_fold(target: CanonicalReport, source: CanonicalReport, cap: float,
               shared_upvotes: int = 0) -> CanonicalReport:
    """
    Add a retired record's aggregate to the target (in place).
    `shared_upvotes` users upvoted both sides and are counted once.
    """
    known = {h.sub_report_id for h in target.history}
    added = [h for h in source.history if h.sub_report_id not in known]
    target.history.extend(added)
    target.merged_count += len(added)
    target.contributor_ids |= source.contributor_ids
    target.upvote_count += max(0, source.upvote_count - shared_upvotes)
    for rid in [source.id] + list(source.folded_ids):
        if rid not in target.folded_ids:
            target.folded_ids.append(rid)
    if source.last_updated_at > target.last_updated_at:
        target.last_updated_at = source.last_updated_at
    target.media = _merge_media(target.media, source.media)
    target.noise_level = _max_noise(target.noise_level, source.noise_level)
    _refit_envelope(target, source.location, source.accuracy_m, cap)
    return target

def new_record(sub: SubReport, partition_key: str) -> CanonicalReport:
    meters = sub.blast_radius.meters
    return CanonicalReport(
        id=new_report_id(partition_key, sub.submitted_at),
        partition_key=partition_key,
        location=sub.location,
        category=sub.category,
        description=sub.description.strip(),
        created_at=sub.submitted_at,
        last_updated_at=sub.submitted_at,
        accuracy_m=meters,
        radius_m=meters,
        merged_count=1,
        contributor_ids={sub.reporter_id},
        upvote_count=0,
        history=[Contribution.from_sub_report(sub)],
        media=list(sub.media),
        noise_level=sub.noise_level,
    )


class MergeTransactionManager:
    def __init__(self, repo: ReportRepository, index: CandidateIndex, scorer: MatchScorer,
                 comments: CommentAggregator, settings: EngineSettings,
                 clock: Callable[[], datetime] = now_utc):
        self.repo = repo
        self.index = index
        self.scorer = scorer
        self.comments = comments
        self.settings = settings
        self.clock = clock

    # ---------- ingest ----------

    def ingest(self, sub: SubReport, partition_key: str) -> IngestOutcome:
        cap = self.settings.max_match_radius_m
        for attempt in range(1, self.settings.max_attempts + 1):
            candidates = self.index.find_candidates(sub.location, sub.category, sub.submitted_at)
            match = self.scorer.select_best_match(candidates, sub)

            if match is None:
                rec = new_record(sub, partition_key)
                try:
                    self.repo.insert_report(rec)
                except StoreConflict:
                    rate_inc("conflicts")
                    log_line(f"INGEST | insert conflict id={rec.id} attempt={attempt}")
                    continue
                rate_inc("created")
                log_line(f"INGEST | created id={rec.id} leaf={rec.category.leaf!r} attempt={attempt}")
                final = self._reconcile(rec, sub)
                action = IngestAction.CREATED if final.id == rec.id else IngestAction.MERGED
                return IngestOutcome(final, action, attempt)

            try:
                fresh = self.repo.resolve_report(match.id)
            except ReportNotFound:
                continue
            score = self.scorer.score_candidate(fresh, sub)
            if score is None or score < self.settings.accept_threshold:
                # moved or retired under us; search again
                rate_inc("conflicts")
                continue

            apply_merge(fresh, sub, cap)
            try:
                self.repo.update_report(fresh)
            except StoreConflict:
                rate_inc("conflicts")
                log_line(f"INGEST | merge conflict id={fresh.id} attempt={attempt}")
                continue

            rate_inc("merged")
            log_line(
                f"INGEST | merged into id={fresh.id} count={fresh.merged_count} "
                f"contributors={len(fresh.contributor_ids)} attempt={attempt}"
            )
            self._derived_comment(fresh.id, sub.description.strip(), sub.sub_report_id)
            return IngestOutcome(fresh, IngestAction.MERGED, attempt)

        rate_inc("exhausted")
        log_line(f"INGEST | gave up sub={sub.sub_report_id} attempts={self.settings.max_attempts}", "WARN")
        raise ConflictExhausted("ingest", self.settings.max_attempts)

    def _derived_comment(self, report_id: str, text: str, source_sub_report_id: Optional[str]) -> None:
        try:
            self.comments.add_merge_comment(report_id, text, source_sub_report_id)
        except EngineError as e:
            failure = DerivedCommentWriteFailure(report_id, e)
            rate_inc("comment_fail")
            log_line(f"COMMENT | {failure}", "WARN")

    # ---------- founding-race reconciliation ----------

    def _reconcile(self, rec: CanonicalReport, sub: SubReport) -> CanonicalReport:
        try:
            candidates = self.index.find_candidates(rec.location, rec.category, sub.submitted_at)
        except EngineError as e:
            log_line(f"FOLD | candidate scan failed id={rec.id} err={e!r}", "WARN")
            return rec

        group = [rec.id]
        for c in candidates:
            if c.id == rec.id:
                continue
            score = self.scorer.score_candidate(c, sub)
            if score is not None and score >= self.settings.accept_threshold:
                group.append(c.id)
        if len(group) == 1:
            return rec

        target_id = min(group)
        for rid in sorted(group):
            if rid != target_id:
                self.fold(rid, target_id)

        return self._settled(rec)

    def _settled(self, rec: CanonicalReport) -> CanonicalReport:
        """The record now holding rec's contributions (rec itself, or its fold target)."""
        for resumed in (False, True):
            try:
                final = self.repo.resolve_report(rec.id)
                if final.id == rec.id or rec.id in final.folded_ids:
                    return final
                # retired, but the aggregate never reached the target
                raw = self.repo.get_report(rec.id)
            except EngineError as e:
                log_line(f"FOLD | reread failed id={rec.id} err={e!r}", "WARN")
                return rec
            if raw is None or not raw.merged_into or resumed:
                return raw or rec
            self.fold(rec.id, raw.merged_into)
        return rec

    def fold(self, source_id: str, target_id: str) -> bool:
        """
        Retire source into target. Returns True if this call moved the
        aggregate. Failures are logged, never raised.

        A source already retired into target whose aggregate is missing
        from the target (an earlier fold died between its two writes) is
        picked up again, so calling fold() twice is safe.
        """
        try:
            return self._fold(source_id, target_id)
        except EngineError as e:
            log_line(f"FOLD | failed source={source_id} target={target_id} err={e!r}", "ERROR")
            return False

    def _retire(self, source_id: str, target_id: str) -> Optional[CanonicalReport]:
        for _ in range(self.settings.fold_max_attempts):
            src = self.repo.get_report(source_id)
            if src is None or src.withdrawn:
                return None
            if src.merged_into:
                # ours to finish if it points at the same target
                return src if src.merged_into == target_id else None
            src.merged_into = target_id
            try:
                self.repo.update_report(src)
                return src
            except StoreConflict:
                rate_inc("conflicts")
        log_line(f"FOLD | retire gave up source={source_id}", "WARN")
        return None

    def _undo_retire(self, src: CanonicalReport, target_id: str) -> None:
        """Put the source back in service when its aggregate never reached the target."""
        try:
            tgt = self.repo.resolve_report(target_id)
            if src.id in tgt.folded_ids:
                return
            cur = self.repo.get_report(src.id)
            if cur is None or cur.merged_into != target_id:
                return
            cur.merged_into = None
            self.repo.update_report(cur)
            log_line(f"FOLD | retire undone source={src.id} target={target_id}", "WARN")
        except EngineError as e:
            log_line(f"FOLD | undo failed source={src.id} target={target_id} err={e!r}", "ERROR")

    def _shared_upvoters(self, src: CanonicalReport, tgt: CanonicalReport) -> int:
        voters = set()
        for rid in [src.id] + list(src.folded_ids):
            voters |= self.repo.counted_upvoters(rid)
        if not voters:
            return 0
        shared = set()
        for rid in [tgt.id] + list(tgt.folded_ids):
            shared |= voters & self.repo.counted_upvoters(rid)
        return len(shared)

    def _fold(self, source_id: str, target_id: str) -> bool:
        cap = self.settings.max_match_radius_m
        src = self._retire(source_id, target_id)
        if src is None:
            return False

        tgt = None
        try:
            for _ in range(self.settings.fold_max_attempts):
                cur = self.repo.resolve_report(target_id)
                if cur.id == src.id:
                    log_line(f"FOLD | redirect loop source={source_id}", "ERROR")
                    return False
                if src.id in cur.folded_ids:
                    # another caller finished this fold
                    return False
                if cur.withdrawn:
                    break
                apply_fold(cur, src, cap, self._shared_upvoters(src, cur))
                try:
                    self.repo.update_report(cur)
                    tgt = cur
                    break
                except StoreConflict:
                    rate_inc("conflicts")
        except EngineError:
            self._undo_retire(src, target_id)
            raise

        if tgt is None:
            log_line(
                f"FOLD | aggregate not applied source={source_id} target={target_id} "
                f"count={src.merged_count}", "ERROR"
            )
            self._undo_retire(src, target_id)
            return False

        rate_inc("folded")
        log_line(f"FOLD | folded source={source_id} into={tgt.id} count={tgt.merged_count}")
        first = src.history[0].sub_report_id if src.history else None
        self._derived_comment(tgt.id, src.description, first)
        return True

    # ---------- contribution removal ----------

    def remove_contribution(self, report_id: str, sub_report_id: str, user_id: str) -> CanonicalReport:
        """
        Take one sub-report back out of a record. Only its submitter may do so.
        The record is withdrawn (not deleted) when nothing is left.
        """
        user_id = validate_user_id(user_id)
        for attempt in range(1, self.settings.max_attempts + 1):
            rec = self.repo.resolve_report(report_id)
            if rec.withdrawn:
                raise ReportNotFound(report_id)

            entry = next((h for h in rec.history if h.sub_report_id == sub_report_id), None)
            if entry is None:
                raise ValidationError("unknown_contribution")
            if entry.reporter_id != user_id:
                raise ValidationError("not_contributor")

            rec.history.remove(entry)
            rec.merged_count = len(rec.history)
            rec.contributor_ids = {h.reporter_id for h in rec.history}
            if not rec.history:
                rec.withdrawn = True
            now = self.clock()
            if now > rec.last_updated_at:
                rec.last_updated_at = now

            try:
                self.repo.update_report(rec)
            except StoreConflict:
                rate_inc("conflicts")
                continue

            state = "withdrawn" if rec.withdrawn else f"count={rec.merged_count}"
            log_line(f"REMOVE | id={rec.id} sub={sub_report_id} user={user_id} {state} attempt={attempt}")
            return rec

        raise ConflictExhausted("remove_contribution", self.settings.max_attempts)

from datetime import datetime
from typing import Callable

from ..adapters.repository import ReportRepository
from ..adapters.store import ABSENT
from ..core.constants import MAX_ATTEMPTS
from ..core.errors import ConflictExhausted, ReportNotFound, StoreConflict
from ..core.models import CanonicalReport, UpvoteResult, UpvoteStatus
from ..utils.log import log_line
from ..utils.time import now_utc
from .validate import validate_user_id

class UpvoteLedger:
    """
    One upvote per (record, user).

    The (record, user) row is inserted uncounted, then claimed with a
    conditional write. Only the claimer increments the record's counter, so
    concurrent calls for the same pair increment at most once. If the
    increment keeps losing races the claim is released and a later call
    picks it up again.
    """

    def __init__(self, repo: ReportRepository, clock: Callable[[], datetime] = now_utc,
                 max_attempts: int = MAX_ATTEMPTS):
        self.repo = repo
        self.clock = clock
        self.max_attempts = max_attempts

    def _live(self, report_id: str) -> CanonicalReport:
        rec = self.repo.resolve_report(report_id)
        if rec.withdrawn:
            raise ReportNotFound(report_id)
        return rec

    def _counted(self, rec: CanonicalReport, user_id: str) -> bool:
        for rid in [rec.id] + list(rec.folded_ids):
            row = self.repo.get_upvote(rid, user_id)
            if row is not None and row[0].get("counted"):
                return True
        return False

    def upvote(self, report_id: str, user_id: str) -> UpvoteResult:
        user_id = validate_user_id(user_id)
        rec = self._live(report_id)
        if self._counted(rec, user_id):
            return UpvoteResult(rec.upvote_count, already_upvoted=True)

        now = self.clock()
        try:
            self.repo.put_upvote(rec.id, user_id, False, now, expected=ABSENT)
        except StoreConflict:
            pass  # row exists, claim below decides

        doc, token = self.repo.get_upvote(rec.id, user_id)
        if doc.get("counted"):
            return UpvoteResult(self._live(rec.id).upvote_count, already_upvoted=True)
        try:
            claim = self.repo.put_upvote(rec.id, user_id, True, now, expected=token)
        except StoreConflict:
            return UpvoteResult(self._live(rec.id).upvote_count, already_upvoted=True)

        for _ in range(self.max_attempts):
            cur = self._live(rec.id)
            cur.upvote_count += 1
            if now > cur.last_updated_at:
                cur.last_updated_at = now
            try:
                self.repo.update_report(cur)
            except StoreConflict:
                continue
            log_line(f"UPVOTE | id={cur.id} user={user_id} count={cur.upvote_count}")
            return UpvoteResult(cur.upvote_count, already_upvoted=False)

        try:
            self.repo.put_upvote(rec.id, user_id, False, now, expected=claim)
        except StoreConflict:
            log_line(f"UPVOTE | claim release lost id={rec.id} user={user_id}", "ERROR")
        log_line(f"UPVOTE | gave up id={rec.id} user={user_id}", "WARN")
        raise ConflictExhausted("upvote", self.max_attempts)

    def check_status(self, report_id: str, user_id: str) -> UpvoteStatus:
        user_id = validate_user_id(user_id)
        rec = self._live(report_id)
        return UpvoteStatus(rec.upvote_count, self._counted(rec, user_id))

from datetime import datetime
from typing import Callable, List, Optional

from ..adapters.repository import ReportRepository
from ..core.constants import MERGE_AUTHOR, MAX_ATTEMPTS
from ..core.errors import ReportNotFound, StoreConflict
from ..core.models import CanonicalReport, Comment, OriginKind
from ..utils.ids import new_local_id
from ..utils.log import log_line
from ..utils.time import now_utc
from .validate import validate_comment_text, validate_user_id

# Comment keys carry a random suffix; a clash only happens on a duplicate draw
_INSERT_ATTEMPTS = 3

class CommentAggregator:
    """
    Append-only comment threads. Comments live in their own rows next to the
    record, so posting one never contends with merges on the record row.
    """

    def __init__(self, repo: ReportRepository, clock: Callable[[], datetime] = now_utc,
                 max_attempts: int = MAX_ATTEMPTS):
        self.repo = repo
        self.clock = clock
        self.max_attempts = max_attempts

    def _insert(self, report_id: str, author_id: str, text: str, created_at: datetime,
                origin: OriginKind, source_sub_report_id: Optional[str] = None) -> Comment:
        last_err = None
        for _ in range(_INSERT_ATTEMPTS):
            comment = Comment(
                comment_id=new_local_id(created_at),
                report_id=report_id,
                author_id=author_id,
                text=text,
                created_at=created_at,
                origin=origin,
                source_sub_report_id=source_sub_report_id,
            )
            try:
                self.repo.insert_comment(comment)
                return comment
            except StoreConflict as e:
                last_err = e
        raise last_err

    def _touch(self, rec: CanonicalReport, when: datetime) -> None:
        """Best effort: advance last_updated_at. Losing every race is fine."""
        for _ in range(self.max_attempts):
            if rec.last_updated_at >= when:
                return
            rec.last_updated_at = when
            try:
                self.repo.update_report(rec)
                return
            except StoreConflict:
                fresh = self.repo.get_report(rec.id)
                if fresh is None or not fresh.is_live:
                    return
                rec = fresh
        log_line(f"COMMENT | touch gave up id={rec.id}", "WARN")

    def add_comment(self, report_id: str, author_id: str, text: str) -> Comment:
        text = validate_comment_text(text)
        author_id = validate_user_id(author_id)
        rec = self.repo.resolve_report(report_id)
        if rec.withdrawn:
            raise ReportNotFound(report_id)

        now = self.clock()
        comment = self._insert(rec.id, author_id, text, now, OriginKind.USER_AUTHORED)
        self._touch(rec, now)
        log_line(f"COMMENT | added id={rec.id} author={author_id} len={len(text)}")
        return comment

    def add_merge_comment(self, report_id: str, text: str, source_sub_report_id: Optional[str],
                          created_at: Optional[datetime] = None) -> Comment:
        """Merge-derived comment carrying a folded-in description. Errors propagate."""
        return self._insert(report_id, MERGE_AUTHOR, text, created_at or self.clock(),
                            OriginKind.MERGE_DERIVED, source_sub_report_id)

    def list_comments(self, report_id: str) -> List[Comment]:
        """
        The thread of a record (and of any record folded into it),
        ordered by (created_at, key).
        """
        rec = self.repo.resolve_report(report_id)
        rows = []
        for rid in [rec.id] + list(rec.folded_ids):
            rows.extend(self.repo.scan_comments(rid))
        rows.sort(key=lambda kc: (kc[1].created_at, kc[0]))
        return [c for _, c in rows]

from datetime import datetime
from typing import Dict, Any, List, Optional, Set, Tuple

from ..core.constants import KEY_REPORT, KEY_COMMENT, KEY_UPVOTE, MAX_REDIRECT_HOPS
from ..core.errors import ReportNotFound
from ..core.models import CanonicalReport, Comment
from ..utils.ids import split_report_id
from ..utils.time import to_epoch
from .codec import (
    report_to_doc, report_from_doc, comment_to_doc, comment_from_doc, upvote_doc,
)
from .store import ABSENT, PartitionedStore

# Row layout inside a partition:
#   report:<local>                          canonical record
#   comment:<local>:<time_key>_<hex>        one row per comment
#   upvote:<local>:<user_id>                one row per (report, user)

def report_key(local_id: str) -> str:
    return f"{KEY_REPORT}{local_id}"

def comment_prefix(local_id: str) -> str:
    return f"{KEY_COMMENT}{local_id}:"

def upvote_prefix(local_id: str) -> str:
    return f"{KEY_UPVOTE}{local_id}:"

def upvote_key(local_id: str, user_id: str) -> str:
    return f"{upvote_prefix(local_id)}{user_id}"


class ReportRepository:
    """Typed access to records, comments and upvote rows on a PartitionedStore."""

    def __init__(self, store: PartitionedStore):
        self.store = store

    # ---------- records ----------

    def get_report(self, report_id: str) -> Optional[CanonicalReport]:
        """Fresh read with its concurrency token. No redirect following."""
        try:
            local, partition = split_report_id(report_id)
        except ValueError:
            return None
        got = self.store.get(partition, report_key(local))
        if got is None:
            return None
        doc, token = got
        return report_from_doc(doc, token)

    def resolve_report(self, report_id: str, max_hops: int = MAX_REDIRECT_HOPS) -> CanonicalReport:
        """
        Read a record and follow merged_into redirects to the live target.
        Withdrawn records are returned as-is; callers decide what to do with them.
        """
        current = report_id
        for _ in range(max_hops + 1):
            rec = self.get_report(current)
            if rec is None:
                raise ReportNotFound(report_id)
            if not rec.merged_into:
                return rec
            current = rec.merged_into
        raise ReportNotFound(report_id)

    def insert_report(self, report: CanonicalReport) -> str:
        local, partition = split_report_id(report.id)
        token = self.store.put(partition, report_key(local), report_to_doc(report),
                               expected=ABSENT, ts=to_epoch(report.last_updated_at))
        report.concurrency_token = token
        return token

    def update_report(self, report: CanonicalReport) -> str:
        """Conditional write against report.concurrency_token. Raises StoreConflict."""
        local, partition = split_report_id(report.id)
        token = self.store.put(partition, report_key(local), report_to_doc(report),
                               expected=report.concurrency_token, ts=to_epoch(report.last_updated_at))
        report.concurrency_token = token
        return token

    def scan_reports(self, partition: str, since: Optional[datetime] = None) -> List[CanonicalReport]:
        """Records in one partition whose last write is at or after `since`."""
        since_ts = to_epoch(since) if since is not None else None
        return [
            report_from_doc(doc, token)
            for _, doc, token in self.store.scan(partition, KEY_REPORT, since_ts)
        ]

    # ---------- comments ----------

    def insert_comment(self, comment: Comment) -> None:
        local, partition = split_report_id(comment.report_id)
        key = comment_prefix(local) + comment.comment_id
        self.store.put(partition, key, comment_to_doc(comment),
                       expected=ABSENT, ts=to_epoch(comment.created_at))

    def scan_comments(self, report_id: str) -> List[Tuple[str, Comment]]:
        local, partition = split_report_id(report_id)
        return [
            (key, comment_from_doc(doc))
            for key, doc, _ in self.store.scan(partition, comment_prefix(local))
        ]

    # ---------- upvotes ----------

    def get_upvote(self, report_id: str, user_id: str) -> Optional[Tuple[Dict[str, Any], str]]:
        local, partition = split_report_id(report_id)
        return self.store.get(partition, upvote_key(local, user_id))

    def put_upvote(self, report_id: str, user_id: str, counted: bool, created_at: datetime,
                   expected=ABSENT) -> str:
        local, partition = split_report_id(report_id)
        return self.store.put(partition, upvote_key(local, user_id),
                              upvote_doc(report_id, user_id, counted, created_at),
                              expected=expected, ts=to_epoch(created_at))

    def counted_upvoters(self, report_id: str) -> Set[str]:
        """Users whose upvote on this record (not its folded ones) was counted."""
        local, partition = split_report_id(report_id)
        return {
            str(doc.get("user_id"))
            for _, doc, _ in self.store.scan(partition, upvote_prefix(local))
            if doc.get("counted")
        }

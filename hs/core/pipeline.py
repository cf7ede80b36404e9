from typing import List, Dict, Any

from ..adapters.codec import sub_report_from_wire
from ..domain.validate import validate_user_id
from ..utils.log import log_line
from ..utils.rate import rate_maybe_log
from ..utils.time import now_iso, now_utc
from .constants import MAX_INBOX_ATTEMPTS
from .engine import ReportEngine
from .errors import EngineError, ValidationError
from .models import IngestAction, IntakeResult

# inbox bookkeeping keys (everything else in a flat item is the payload)
_META_KEYS = ("id", "user_id", "payload", "attempts", "last_error")

class IntakePipeline:
    """
    Drains the submission inbox into the engine.

    Inbox items look like {"user_id": "...", "payload": {...}} (or a flat
    payload carrying "user_id"). Invalid items move to `rejected` with their
    reason; retryable failures stay in `pending` with an attempt count until
    `max_inbox_attempts` is reached.
    """

    def __init__(self, cfg: Dict[str, Any], engine: ReportEngine,
                 pending: List[Dict[str, Any]], rejected: List[Dict[str, Any]]):
        self.cfg = cfg
        self.engine = engine
        self.pending = pending
        self.rejected = rejected
        self.max_attempts = int(cfg.get("max_inbox_attempts", MAX_INBOX_ATTEMPTS))
        self.result = IntakeResult()

    def run_cycle(self) -> IntakeResult:
        """Run one pass over the inbox."""
        self.result = IntakeResult()
        still_pending = []
        for item in self.pending:
            if not self._handle_item(item):
                still_pending.append(item)
        self.pending = still_pending
        rate_maybe_log()
        return self.result

    def _payload(self, item: Dict[str, Any]) -> Dict[str, Any]:
        if isinstance(item.get("payload"), dict):
            return item["payload"]
        return {k: v for k, v in item.items() if k not in _META_KEYS}

    def _reject(self, item: Dict[str, Any], reason: str) -> None:
        self.rejected.append({"item": item, "reason": reason, "rejected_at": now_iso()})
        self.result.rejected_count += 1
        log_line(f"INTAKE | rejected item={item.get('id')} reason={reason}")

    def _handle_item(self, item: Dict[str, Any]) -> bool:
        """Returns True when the item leaves the inbox."""
        self.result.processed_count += 1
        if not isinstance(item, dict):
            self.rejected.append({"item": item, "reason": "invalid_item", "rejected_at": now_iso()})
            self.result.rejected_count += 1
            return True

        try:
            user_id = validate_user_id(item.get("user_id"))
            sub = sub_report_from_wire(self._payload(item), user_id, self.engine.taxonomy, now=now_utc())
            outcome = self.engine.ingest_report(sub)
        except ValidationError as e:
            self._reject(item, e.reason)
            return True
        except EngineError as e:
            if not e.retryable:
                self._reject(item, type(e).__name__)
                return True
            attempts = int(item.get("attempts") or 0) + 1
            item["attempts"] = attempts
            item["last_error"] = repr(e)
            if attempts >= self.max_attempts:
                self.result.dropped_count += 1
                self._reject(item, f"gave_up:{type(e).__name__}")
                return True
            self.result.retry_count += 1
            self.result.errors.append(repr(e))
            log_line(f"INTAKE | retry later item={item.get('id')} attempts={attempts} err={e!r}", "WARN")
            return False

        if outcome.action == IngestAction.CREATED:
            self.result.created_count += 1
        else:
            self.result.merged_count += 1
        log_line(
            f"INTAKE | {outcome.action.value} item={item.get('id')} report={outcome.report.id} "
            f"count={outcome.report.merged_count}"
        )
        return True

class EngineError(Exception):
    """Base class for everything the engine raises on purpose."""
    retryable = False


class ValidationError(EngineError):
    """Malformed submission or request, rejected before any store access."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ReportNotFound(EngineError):
    def __init__(self, report_id: str):
        super().__init__(f"report not found: {report_id}")
        self.report_id = report_id


class ConflictExhausted(EngineError):
    """Optimistic writes kept losing; the caller may resubmit."""
    retryable = True

    def __init__(self, operation: str, attempts: int):
        super().__init__(f"{operation}: gave up after {attempts} conflicting attempts")
        self.operation = operation
        self.attempts = attempts


class StoreError(EngineError):
    """Failure reported by the partitioned store."""


class StoreUnavailable(StoreError):
    """I/O failure against the store. Transient."""
    retryable = True


class StoreConflict(StoreError):
    """Conditional write rejected (stale token, or row already present)."""
    retryable = True

    def __init__(self, partition: str, key: str):
        super().__init__(f"conditional write rejected: {partition}/{key}")
        self.partition = partition
        self.key = key


class DerivedCommentWriteFailure(EngineError):
    """Merge committed but its merge-derived comment could not be appended."""

    def __init__(self, report_id: str, cause: Exception):
        super().__init__(f"derived comment for {report_id} not written: {cause!r}")
        self.report_id = report_id
        self.cause = cause

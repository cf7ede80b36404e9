import uuid
from datetime import datetime
from typing import Optional, Tuple

from .time import ensure_utc, now_utc

# "<yyyyMMddHHmmssfff>_<hex>@<partition>"
PARTITION_SEP = "@"

def time_key(ts: Optional[datetime] = None) -> str:
    """Sortable millisecond timestamp: yyyyMMddHHmmssfff."""
    ts = ensure_utc(ts or now_utc())
    return ts.strftime("%Y%m%d%H%M%S") + f"{ts.microsecond // 1000:03d}"

def new_local_id(ts: Optional[datetime] = None) -> str:
    return f"{time_key(ts)}_{uuid.uuid4().hex[:16]}"

def new_report_id(partition_key: str, ts: Optional[datetime] = None) -> str:
    return f"{new_local_id(ts)}{PARTITION_SEP}{partition_key}"

def split_report_id(report_id: str) -> Tuple[str, str]:
    """Returns (local_id, partition_key). Raises ValueError on malformed ids."""
    local, sep, partition = str(report_id or "").partition(PARTITION_SEP)
    if not sep or not local or not partition:
        raise ValueError(f"malformed report id: {report_id!r}")
    return local, partition

def new_sub_report_id() -> str:
    return uuid.uuid4().hex

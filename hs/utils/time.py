from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc

def now_utc() -> datetime:
    return datetime.now(UTC)

def now_iso() -> str:
    """Local time, human readable (no 'T', no timezone suffix)."""
    return datetime.now().strftime("%Y-%m-%d // %H:%M:%S")

def ensure_utc(ts: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)

def to_iso(ts: datetime) -> str:
    return ensure_utc(ts).isoformat()

def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    v = str(value).strip()
    if v.endswith("Z"):
        v = v[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(v))

def to_epoch(ts: datetime) -> float:
    return ensure_utc(ts).timestamp()

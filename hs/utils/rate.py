import threading
import time

from .log import log_line

RATE_WINDOW_S = 3600.0  # 60 minutes

_RATE_LOCK = threading.Lock()

RATE_STATE = {
    "t0": None,
    "next_log": None,
    "created": 0,
    "merged": 0,
    "folded": 0,
    "conflicts": 0,
    "exhausted": 0,
    "comment_fail": 0,
}

_COUNTERS = ("created", "merged", "folded", "conflicts", "exhausted", "comment_fail")

def rate_inc(kind: str, n: int = 1) -> None:
    if kind not in _COUNTERS:
        return
    with _RATE_LOCK:
        RATE_STATE[kind] = int(RATE_STATE.get(kind, 0) or 0) + n

def rate_snapshot() -> dict:
    with _RATE_LOCK:
        return {k: int(RATE_STATE.get(k, 0) or 0) for k in _COUNTERS}

def rate_reset() -> None:
    with _RATE_LOCK:
        RATE_STATE["t0"] = None
        RATE_STATE["next_log"] = None
        for k in _COUNTERS:
            RATE_STATE[k] = 0

def rate_maybe_log(now: float = None) -> bool:
    """Emit one RATE line per window and reset the counters. Returns True if logged."""
    now = time.time() if now is None else now
    with _RATE_LOCK:
        if RATE_STATE.get("t0") is None:
            RATE_STATE["t0"] = now
            RATE_STATE["next_log"] = now + RATE_WINDOW_S

        if now < float(RATE_STATE.get("next_log") or 0):
            return False

        counts = {k: int(RATE_STATE.get(k, 0) or 0) for k in _COUNTERS}
        RATE_STATE["t0"] = now
        RATE_STATE["next_log"] = now + RATE_WINDOW_S
        for k in _COUNTERS:
            RATE_STATE[k] = 0

    w = int(RATE_WINDOW_S // 60)
    log_line(
        f"RATE | window={w}m | "
        f"created={counts['created']} merged={counts['merged']} folded={counts['folded']} | "
        f"conflicts={counts['conflicts']} exhausted={counts['exhausted']} | "
        f"comment_fail={counts['comment_fail']}"
    )
    return True

import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Any

# Set by setup_logging() (or directly by the runner)
LOG_DIR: Optional[Path] = None
BOT_LOG_PATH: Optional[Path] = None

_LOG_LOCK = threading.Lock()

def setup_logging(log_dir: Path, log_name: Optional[str] = None) -> Path:
    """
    Point log_line() at a dated file inside log_dir.
    Returns the resolved log path.
    """
    global LOG_DIR, BOT_LOG_PATH
    LOG_DIR = Path(log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    if not log_name:
        log_name = f"intake-{datetime.now().astimezone().strftime('%Y-%m-%d')}.log"
    BOT_LOG_PATH = LOG_DIR / log_name
    return BOT_LOG_PATH

def _append(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")

def _stamp() -> str:
    """YYYY-MM-DD // HH:MM:SS+ZZ:ZZ in local time."""
    s = datetime.now().astimezone().strftime("%Y-%m-%d // %H:%M:%S%z")
    return s[:-2] + ":" + s[-2:]

def log_line(msg: Any, level: str = "INFO") -> None:
    """
    Logging wrapper (single timestamp, readable):
    - Prefix every line with: YYYY-MM-DD // HH:MM:SS+ZZ:ZZ -
    - Non-INFO levels are tagged in front of the message ("WARN | ...").
    """
    line = str(msg).strip()
    lvl = str(level or "INFO").upper()
    if lvl != "INFO" and not line.startswith(f"{lvl} |"):
        line = f"{lvl} | {line}"

    with _LOG_LOCK:
        full = f"{_stamp()} - {line}"
        if BOT_LOG_PATH:
            _append(BOT_LOG_PATH, full)

        print(full, flush=True)

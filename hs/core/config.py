from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

from . import constants as C
from ..utils.files import load_json

DEFAULT_CONFIG: Dict[str, Any] = {
    # matching policy
    "match_radius_m": C.MATCH_RADIUS_M,
    "max_match_radius_m": C.MAX_MATCH_RADIUS_M,
    "scan_radius_m": C.SCAN_RADIUS_M,
    "time_window_s": C.TIME_WINDOW_S,
    "accept_threshold": C.ACCEPT_THRESHOLD,
    "weight_category": C.WEIGHT_CATEGORY,
    "weight_distance": C.WEIGHT_DISTANCE,
    "weight_recency": C.WEIGHT_RECENCY,
    # concurrency
    "max_attempts": C.MAX_ATTEMPTS,
    "fold_max_attempts": C.FOLD_MAX_ATTEMPTS,
    # partitioning
    "geocoder": "grid",            # "grid" | "nominatim"
    "grid_cell_deg": C.GRID_CELL_DEG,
    "user_agent": "HideAndSeekIntake/1.0",
    # files (relative to the working directory)
    "store_path": "store.json",
    "inbox_path": "pending.json",
    "rejected_path": "rejected.json",
    "taxonomy_path": "taxonomy.json",
    "log_dir": "logs",
    # runner
    "loop_delay_s": C.LOOP_DELAY_S,
    "max_inbox_attempts": C.MAX_INBOX_ATTEMPTS,
}

def load_config(path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """config.json merged over DEFAULT_CONFIG. Missing or broken file means defaults."""
    cfg = dict(DEFAULT_CONFIG)
    if path is not None:
        data = load_json(Path(path), {})
        if isinstance(data, dict):
            cfg.update(data)
    if overrides:
        cfg.update(overrides)
    return cfg

@dataclass(frozen=True)
class EngineSettings:
    """Typed view of the matching/concurrency policy."""
    match_radius_m: float = C.MATCH_RADIUS_M
    max_match_radius_m: float = C.MAX_MATCH_RADIUS_M
    scan_radius_m: float = C.SCAN_RADIUS_M
    time_window_s: float = C.TIME_WINDOW_S
    accept_threshold: float = C.ACCEPT_THRESHOLD
    weight_category: float = C.WEIGHT_CATEGORY
    weight_distance: float = C.WEIGHT_DISTANCE
    weight_recency: float = C.WEIGHT_RECENCY
    max_attempts: int = C.MAX_ATTEMPTS
    fold_max_attempts: int = C.FOLD_MAX_ATTEMPTS

    def __post_init__(self):
        if self.match_radius_m > self.max_match_radius_m:
            raise ValueError("match_radius_m must not exceed max_match_radius_m")
        if self.scan_radius_m <= self.max_match_radius_m:
            raise ValueError("scan_radius_m must be larger than max_match_radius_m")
        if self.time_window_s <= 0:
            raise ValueError("time_window_s must be positive")
        if self.max_attempts < 1 or self.fold_max_attempts < 1:
            raise ValueError("attempt bounds must be >= 1")

    @classmethod
    def from_cfg(cls, cfg: Dict[str, Any]) -> "EngineSettings":
        return cls(
            match_radius_m=float(cfg.get("match_radius_m", C.MATCH_RADIUS_M)),
            max_match_radius_m=float(cfg.get("max_match_radius_m", C.MAX_MATCH_RADIUS_M)),
            scan_radius_m=float(cfg.get("scan_radius_m", C.SCAN_RADIUS_M)),
            time_window_s=float(cfg.get("time_window_s", C.TIME_WINDOW_S)),
            accept_threshold=float(cfg.get("accept_threshold", C.ACCEPT_THRESHOLD)),
            weight_category=float(cfg.get("weight_category", C.WEIGHT_CATEGORY)),
            weight_distance=float(cfg.get("weight_distance", C.WEIGHT_DISTANCE)),
            weight_recency=float(cfg.get("weight_recency", C.WEIGHT_RECENCY)),
            max_attempts=int(cfg.get("max_attempts", C.MAX_ATTEMPTS)),
            fold_max_attempts=int(cfg.get("fold_max_attempts", C.FOLD_MAX_ATTEMPTS)),
        )

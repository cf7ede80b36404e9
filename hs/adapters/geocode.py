import math
import re
import threading
from typing import Dict, Any, List, Optional, Tuple

import requests

from ..core.constants import GRID_CELL_DEG, NOMINATIM_TIMEOUT_S
from ..core.models import MapBounds
from ..utils.ids import PARTITION_SEP
from ..utils.log import log_line

NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"

# Above this many cells, bounds queries fall back to sampling
MAX_BOUNDS_CELLS = 2500

def sanitize_partition(value: str) -> str:
    """Partition keys end up inside report ids; keep them short and separator-free."""
    v = str(value or "").strip().replace(PARTITION_SEP, "_")
    v = re.sub(r"\s+", "", v)
    return v[:64]


class GridCellResolver:
    """Deterministic lat/lon grid. Cell ids look like 'grid:4760:-12233'."""

    def __init__(self, cell_deg: float = GRID_CELL_DEG):
        if cell_deg <= 0:
            raise ValueError("cell_deg must be positive")
        self.cell_deg = float(cell_deg)

    def _index(self, lat: float, lon: float) -> Tuple[int, int]:
        # small epsilon so values sitting exactly on a line don't flip on float noise
        return (int(math.floor(lat / self.cell_deg + 1e-9)),
                int(math.floor(lon / self.cell_deg + 1e-9)))

    def resolve_cell(self, lat: float, lon: float) -> str:
        i, j = self._index(lat, lon)
        return f"grid:{i}:{j}"

    def cells_in_bounds(self, bounds: MapBounds) -> Optional[List[str]]:
        """Every cell touching the bounds, or None if there are too many to list."""
        i0, j0 = self._index(bounds.min_lat, bounds.min_lon)
        i1, j1 = self._index(bounds.max_lat, bounds.max_lon)
        if (i1 - i0 + 1) * (j1 - j0 + 1) > MAX_BOUNDS_CELLS:
            return None
        return [f"grid:{i}:{j}" for i in range(i0, i1 + 1) for j in range(j0, j1 + 1)]


class NominatimCellResolver:
    """
    Postcode cells via OpenStreetMap reverse geocoding.

    Results are cached per grid cell so nearby points cost one request.
    Any failure (HTTP, timeout, no postcode in the answer) falls back to the
    grid cell id, and that answer is cached too so a process never puts the
    same spot in two partitions.
    """

    def __init__(self, user_agent: str, cell_deg: float = GRID_CELL_DEG,
                 timeout_s: float = NOMINATIM_TIMEOUT_S, url: str = NOMINATIM_REVERSE_URL):
        self.user_agent = user_agent
        self.timeout_s = timeout_s
        self.url = url
        self.grid = GridCellResolver(cell_deg)
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _lookup(self, lat: float, lon: float) -> Optional[str]:
        headers = {"User-Agent": self.user_agent}
        params = {"lat": lat, "lon": lon, "format": "jsonv2", "zoom": 18, "addressdetails": 1}
        try:
            r = requests.get(self.url, params=params, headers=headers, timeout=self.timeout_s)
            r.raise_for_status()
            data: Dict[str, Any] = r.json() or {}
        except (requests.RequestException, ValueError) as e:
            log_line(f"GEOCODE | reverse failed lat={lat:.5f} lon={lon:.5f} err={e!r}", "WARN")
            return None

        addr = data.get("address") or {}
        postcode = addr.get("postcode")
        if not postcode:
            return None
        cc = str(addr.get("country_code") or "xx").lower()
        return sanitize_partition(f"{cc}-{postcode}")

    def resolve_cell(self, lat: float, lon: float) -> str:
        grid_key = self.grid.resolve_cell(lat, lon)
        with self._lock:
            hit = self._cache.get(grid_key)
        if hit:
            return hit

        cell = self._lookup(lat, lon)
        if not cell:
            log_line(f"GEOCODE | fallback to grid cell={grid_key}")
            cell = grid_key

        with self._lock:
            # first answer wins if two threads raced on the same cell
            return self._cache.setdefault(grid_key, cell)


def make_resolver(cfg: Dict[str, Any]):
    kind = str(cfg.get("geocoder") or "grid").lower()
    cell_deg = float(cfg.get("grid_cell_deg") or GRID_CELL_DEG)
    if kind == "nominatim":
        return NominatimCellResolver(str(cfg.get("user_agent") or "HideAndSeekIntake/1.0"), cell_deg)
    if kind != "grid":
        log_line(f"GEOCODE | unknown geocoder={kind!r}, using grid", "WARN")
    return GridCellResolver(cell_deg)

import math
from typing import List, Tuple

from ..core.models import Location, MapBounds

R_EARTH_M = 6371000.0

def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * R_EARTH_M * math.asin(min(1.0, math.sqrt(a)))

def distance_m(a: Location, b: Location) -> float:
    return haversine_m(a.lat, a.lon, b.lat, b.lon)

def offset(loc: Location, north_m: float, east_m: float) -> Location:
    """
    Move a point by (north_m, east_m) meters.
    Equirectangular approximation, fine for the few-km scan radius.
    """
    dlat = math.degrees(north_m / R_EARTH_M)
    coslat = max(math.cos(math.radians(loc.lat)), 1e-6)
    dlon = math.degrees(east_m / (R_EARTH_M * coslat))
    lat = max(-90.0, min(90.0, loc.lat + dlat))
    lon = ((loc.lon + dlon + 180.0) % 360.0) - 180.0
    return Location(lat, lon)

_COMPASS: Tuple[Tuple[float, float], ...] = (
    (1.0, 0.0), (-1.0, 0.0), (0.0, 1.0), (0.0, -1.0),
    (0.7071, 0.7071), (0.7071, -0.7071), (-0.7071, 0.7071), (-0.7071, -0.7071),
)

def ring_points(center: Location, radius_m: float) -> List[Location]:
    """The center plus eight compass points at radius_m and at radius_m / 2."""
    pts = [center]
    for r in (radius_m / 2.0, radius_m):
        for n, e in _COMPASS:
            pts.append(offset(center, n * r, e * r))
    return pts

def grid_points(bounds: MapBounds, steps: int = 5) -> List[Location]:
    """steps x steps sample grid across the bounds plus the four corners."""
    lat_step = (bounds.max_lat - bounds.min_lat) / steps
    lon_step = (bounds.max_lon - bounds.min_lon) / steps
    pts = []
    for i in range(steps):
        for j in range(steps):
            pts.append(Location(bounds.min_lat + (i + 0.5) * lat_step,
                                bounds.min_lon + (j + 0.5) * lon_step))
    pts.extend([
        Location(bounds.min_lat, bounds.min_lon),
        Location(bounds.min_lat, bounds.max_lon),
        Location(bounds.max_lat, bounds.min_lon),
        Location(bounds.max_lat, bounds.max_lon),
    ])
    return pts

def valid_coordinates(lat: float, lon: float) -> bool:
    if lat is None or lon is None:
        return False
    if isinstance(lat, bool) or isinstance(lon, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0

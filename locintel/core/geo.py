"""
Geographic helpers shared by cache keys, the mapper and the analyses.
"""
import math
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0

# 4 decimal places is ~11 m at the equator
CACHE_KEY_PRECISION = 4

# 3 decimal places is ~100 m, used for best-effort cross-provider dedup
DEDUP_PRECISION = 3


def round_coordinates(
    latitude: float, longitude: float, precision: int = CACHE_KEY_PRECISION
) -> Tuple[str, str]:
    """Format coordinates with fixed precision so near-identical points collapse."""
    lat = f"{latitude:.{precision}f}"
    lng = f"{longitude:.{precision}f}"
    # "-0.0000" and "0.0000" must map to the same key
    if float(lat) == 0:
        lat = f"{0:.{precision}f}"
    if float(lng) == 0:
        lng = f"{0:.{precision}f}"
    return lat, lng


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def circle_area_km2(radius_km: float) -> float:
    """Area of a circle of the given radius."""
    return math.pi * radius_km ** 2


def density_per_km2(count: int, radius_km: float) -> float:
    """Count of items per square kilometre within a circle."""
    area = circle_area_km2(radius_km)
    if area <= 0:
        return 0.0
    return count / area


def safe_float(value) -> Optional[float]:
    """Coerce a provider value to float, None for missing, malformed or non-finite input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result

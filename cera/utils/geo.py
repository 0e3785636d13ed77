"""
Great-circle distance and bounding-box helpers for nearby-incident search.
"""

import math
from typing import Tuple

EARTH_RADIUS_KM = 6371.0088


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bounding_box(lat: float, lon: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Smallest lat/lon box containing the circle of `radius_km` around a point.

    Returns (min_lat, max_lat, min_lon, max_lon). Longitude bounds collapse to
    the full range near the poles or when the circle crosses the antimeridian,
    so the box is only ever a prefilter; callers must still check the exact
    distance.
    """
    dlat = math.degrees(radius_km / EARTH_RADIUS_KM)
    min_lat = max(-90.0, lat - dlat)
    max_lat = min(90.0, lat + dlat)

    if min_lat <= -90.0 or max_lat >= 90.0:
        return min_lat, max_lat, -180.0, 180.0

    # Widest longitude reached by the circle, which lies poleward of `lat`
    ratio = math.sin(radius_km / EARTH_RADIUS_KM) / math.cos(math.radians(lat))
    if ratio >= 1.0:
        return min_lat, max_lat, -180.0, 180.0
    dlon = math.degrees(math.asin(ratio))
    min_lon = lon - dlon
    max_lon = lon + dlon
    if min_lon < -180.0 or max_lon > 180.0:
        return min_lat, max_lat, -180.0, 180.0
    return min_lat, max_lat, min_lon, max_lon

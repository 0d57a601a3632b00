# haatbazaar/utils/geo.py
import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points, in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def within_radius(lat1: float, lon1: float, lat2: float, lon2: float, radius_km: float) -> bool:
    return haversine_km(lat1, lon1, lat2, lon2) <= radius_km


def distance_or_none(origin, point) -> Optional[float]:
    """Distance between two objects exposing latitude/longitude, or None if either is missing."""
    if origin is None or point is None:
        return None
    lat, lon = getattr(point, "latitude", None), getattr(point, "longitude", None)
    if lat is None or lon is None:
        return None
    return haversine_km(origin.latitude, origin.longitude, lat, lon)

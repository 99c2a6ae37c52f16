"""Spherical geometry helpers."""

import math
from typing import Tuple, Optional

from .config import EARTH_RADIUS_KM
from .errors import InvalidCoordinates

# Internal coordinate type: (lat, lon)
LatLon = Tuple[float, float]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance in kilometers between two points.

    Uses the haversine formula on a mean Earth radius of 6371 km.

    Examples:
        >>> haversine_km(-21.0, -47.0, -21.0, -47.0)
        0.0
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)

    a = (
        math.sin(d_lat / 2) * math.sin(d_lat / 2)
        + math.sin(d_lon / 2) * math.sin(d_lon / 2) * math.cos(phi1) * math.cos(phi2)
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    return haversine_km(lat1, lon1, lat2, lon2) * 1000.0


def initial_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing in degrees [0, 360), 0 = north, 90 = east."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lon = math.radians(lon2 - lon1)

    y = math.sin(d_lon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lon)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360.0) % 360.0


def is_valid_coordinate(lat: Optional[float], lon: Optional[float]) -> bool:
    """True when both values are finite numbers within WGS84 ranges."""
    if lat is None or lon is None:
        return False
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0


def require_valid(lat: Optional[float], lon: Optional[float]) -> LatLon:
    """Return ``(lat, lon)`` as floats or raise InvalidCoordinates."""
    if not is_valid_coordinate(lat, lon):
        raise InvalidCoordinates(f"Invalid coordinates: ({lat}, {lon})")
    return float(lat), float(lon)

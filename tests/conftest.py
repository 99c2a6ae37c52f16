"""Shared fixtures."""

import math
import pytest
from unittest.mock import Mock

from ridetrack.config import EARTH_RADIUS_KM


def offset(lat, lon, north_m=0.0, east_m=0.0):
    """Point displaced by meters north/east (small distances)."""
    d_lat = math.degrees(north_m / 1000.0 / EARTH_RADIUS_KM)
    d_lon = math.degrees(east_m / 1000.0 / (EARTH_RADIUS_KM * math.cos(math.radians(lat))))
    return lat + d_lat, lon + d_lon


def make_response(status_code=200, payload=None, content_type="application/json", json_error=None):
    response = Mock()
    response.status_code = status_code
    response.headers = {"Content-Type": content_type} if content_type else {}
    response.text = str(payload)[:200]
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


def route_payload(lonlat_pairs):
    return {"code": "Ok", "routes": [{"geometry": {"coordinates": [list(p) for p in lonlat_pairs]}}]}


@pytest.fixture
def route_response():
    """Factory for a successful routing response."""
    def _factory(lonlat_pairs=((-47.0, -21.0), (-47.0025, -21.0025), (-47.005, -21.005))):
        return make_response(payload=route_payload(lonlat_pairs))
    return _factory

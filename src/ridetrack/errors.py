"""Error taxonomy for the tracking engine."""

from enum import Enum
from typing import Optional


class RideTrackError(Exception):
    """Base class for tracking engine errors."""


class LocationErrorKind(Enum):
    """Reasons a position fix could not be obtained."""
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


_LOCATION_MESSAGES = {
    LocationErrorKind.PERMISSION_DENIED: "Permission to access the location was denied.",
    LocationErrorKind.POSITION_UNAVAILABLE: "Location information is unavailable.",
    LocationErrorKind.TIMEOUT: "The request to get the location timed out.",
    LocationErrorKind.UNSUPPORTED: "Geolocation is not supported on this device.",
}


class LocationError(RideTrackError):
    """
    Position stream failure.

    Reported to ``on_error`` listeners as a value; the stream stays open
    and later fixes are still delivered.
    """

    def __init__(self, kind: LocationErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or _LOCATION_MESSAGES[kind]
        super().__init__(self.message)


class RouteFetchError(RideTrackError):
    """Routing provider failed (network, HTTP status, content type or body)."""


class GeocodeError(RideTrackError):
    """Geocoding provider failed or returned no match."""


class InvalidCoordinates(RideTrackError, ValueError):
    """Latitude/longitude missing or not a finite number."""

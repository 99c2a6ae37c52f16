"""Data model shared by the tracking components."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .geo import LatLon


@dataclass(frozen=True)
class PositionSample:
    """A single position fix. Immutable once created."""
    latitude: float
    longitude: float
    timestamp: float  # seconds since epoch

    @property
    def coords(self) -> LatLon:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class RouteQuery:
    """Parameters of one routing request."""
    origin_lat: float
    origin_lon: float
    dest_lat: float
    dest_lon: float

    def as_osrm_coordinates(self) -> str:
        """Provider format 'lon,lat;lon,lat'."""
        return f"{self.origin_lon},{self.origin_lat};{self.dest_lon},{self.dest_lat}"


@dataclass(frozen=True)
class RouteResult:
    """
    Routed polyline from origin to destination.

    ``geometry`` holds (lat, lon) pairs. ``fetched_at_origin`` is the origin
    used for the request and serves as the refetch suppression reference.
    """
    geometry: Tuple[LatLon, ...]
    fetched_at_origin: PositionSample
    destination: LatLon


@dataclass
class Destination:
    """Trip destination as typed by the operator."""
    address: str
    city: str
    resolved_coords: Optional[LatLon] = None


@dataclass(frozen=True)
class AddressSuggestion:
    description: str


@dataclass(frozen=True)
class FareRule:
    destination_city: str
    fare: float
    id: Optional[str] = None


@dataclass(frozen=True)
class TripSummary:
    """Final figures of a finished trip."""
    distance_km: float
    elapsed_seconds: float
    fare: Optional[float]
    destination: Optional[Destination] = None
    path_length: int = 0


@dataclass
class TripPath:
    """Append-only sequence of samples for the active trip."""
    samples: List[PositionSample] = field(default_factory=list)

    def append(self, sample: PositionSample):
        self.samples.append(sample)

    def clear(self):
        self.samples.clear()

    def last(self) -> Optional[PositionSample]:
        return self.samples[-1] if self.samples else None

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self):
        return iter(self.samples)

    def __getitem__(self, index):
        return self.samples[index]

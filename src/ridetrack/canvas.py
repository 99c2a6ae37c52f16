"""Map canvas abstraction: the single owner of camera and overlays."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Any

from .geo import LatLon

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bounds:
    """Lat/lon bounding box."""
    south: float
    west: float
    north: float
    east: float

    @classmethod
    def from_points(cls, points: Iterable[LatLon]) -> Optional["Bounds"]:
        bounds = None
        for lat, lon in points:
            bounds = cls(lat, lon, lat, lon) if bounds is None else bounds.extend((lat, lon))
        return bounds

    def extend(self, point: LatLon) -> "Bounds":
        lat, lon = point
        return Bounds(
            south=min(self.south, lat),
            west=min(self.west, lon),
            north=max(self.north, lat),
            east=max(self.east, lon),
        )

    def contains(self, point: LatLon) -> bool:
        lat, lon = point
        return self.south <= lat <= self.north and self.west <= lon <= self.east

    @property
    def center(self) -> LatLon:
        return ((self.south + self.north) / 2, (self.west + self.east) / 2)


@dataclass(frozen=True)
class FitBoundsInstruction:
    bounds: Bounds
    padding: Tuple[int, int]
    max_zoom: int
    animate: bool = True


@dataclass(frozen=True)
class Layer:
    """
    A marker or polyline drawn on the map.

    Layers are replaced whole on every update, never patched.
    """
    kind: str  # "marker" or "polyline"
    points: Tuple[LatLon, ...]
    style: Dict[str, Any] = field(default_factory=dict)


class MapCanvas:
    """Interface implemented by the rendering layer."""

    def fit_bounds(self, instruction: FitBoundsInstruction):
        raise NotImplementedError

    def set_layer(self, name: str, layer: Optional[Layer]):
        """Replace layer ``name``; None removes it."""
        raise NotImplementedError


class RecordingCanvas(MapCanvas):
    """Headless canvas that keeps camera instructions and current layers."""

    def __init__(self):
        self.fits: List[FitBoundsInstruction] = []
        self.layers: Dict[str, Layer] = {}

    @property
    def last_fit(self) -> Optional[FitBoundsInstruction]:
        return self.fits[-1] if self.fits else None

    def fit_bounds(self, instruction: FitBoundsInstruction):
        self.fits.append(instruction)
        logger.debug(f"Fit bounds {instruction.bounds}")

    def set_layer(self, name: str, layer: Optional[Layer]):
        if layer is None:
            self.layers.pop(name, None)
        else:
            self.layers[name] = layer

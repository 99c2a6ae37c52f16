"""Map viewport that follows the trip until the operator takes over."""

import logging
from enum import Enum
from typing import Optional, Sequence

from .canvas import Bounds, FitBoundsInstruction, MapCanvas
from .config import VIEWPORT_PADDING, VIEWPORT_MAX_ZOOM, VIEWPORT_ROUTE_SAMPLE_STEP
from .geo import LatLon

logger = logging.getLogger(__name__)

# User-originated camera events that end auto-follow
USER_CAMERA_EVENTS = frozenset({"dragstart", "drag", "zoomstart", "zoom", "pan", "pinch"})

_UNSET = object()


class ViewportMode(Enum):
    AUTO_CENTER = "auto_center"
    MANUAL = "manual"


def compute_bounds(
    start: Optional[LatLon] = None,
    destination: Optional[LatLon] = None,
    position: Optional[LatLon] = None,
    route: Optional[Sequence[LatLon]] = None,
    step: int = VIEWPORT_ROUTE_SAMPLE_STEP,
) -> Optional[Bounds]:
    """
    Bounding box of all known points, or None when there are none.

    Route geometry is sampled every ``step`` vertices plus the last one.
    """
    points = [p for p in (start, destination, position) if p is not None]
    if route:
        points.extend(route[i] for i in range(0, len(route), max(1, step)))
        points.append(route[-1])
    return Bounds.from_points(points)


class ViewportController:
    """
    Two-state camera controller.

    In AUTO_CENTER every geometry update refits the map to all known
    points. Any user pan/zoom switches to MANUAL, where no camera
    instruction is issued until ``recenter()``.
    """

    def __init__(
        self,
        canvas: MapCanvas,
        padding=VIEWPORT_PADDING,
        max_zoom: int = VIEWPORT_MAX_ZOOM,
        sample_step: int = VIEWPORT_ROUTE_SAMPLE_STEP,
    ):
        self.canvas = canvas
        self.padding = tuple(padding)
        self.max_zoom = max_zoom
        self.sample_step = sample_step
        self.mode = ViewportMode.AUTO_CENTER
        self.start: Optional[LatLon] = None
        self.destination: Optional[LatLon] = None
        self.position: Optional[LatLon] = None
        self.route: Optional[Sequence[LatLon]] = None

    @property
    def auto_center(self) -> bool:
        return self.mode is ViewportMode.AUTO_CENTER

    def handle_camera_event(self, event: str, user_initiated: bool = True) -> bool:
        """Process a map camera event. Returns True if it switched to MANUAL."""
        if not user_initiated or event not in USER_CAMERA_EVENTS:
            return False
        if self.mode is ViewportMode.MANUAL:
            return False
        self.mode = ViewportMode.MANUAL
        logger.info(f"Viewport switched to manual ({event})")
        return True

    def recenter(self) -> Optional[FitBoundsInstruction]:
        """Operator asked to follow the trip again."""
        if self.mode is not ViewportMode.AUTO_CENTER:
            logger.info("Viewport recentered")
        self.mode = ViewportMode.AUTO_CENTER
        return self._fit()

    def update(
        self,
        start=_UNSET,
        destination=_UNSET,
        position=_UNSET,
        route=_UNSET,
    ) -> Optional[FitBoundsInstruction]:
        """Record changed geometry; refit when auto-centering."""
        if start is not _UNSET:
            self.start = start
        if destination is not _UNSET:
            self.destination = destination
        if position is not _UNSET:
            self.position = position
        if route is not _UNSET:
            self.route = route
        if self.mode is ViewportMode.MANUAL:
            return None
        return self._fit()

    def reset(self):
        self.mode = ViewportMode.AUTO_CENTER
        self.start = self.destination = self.position = self.route = None

    def _fit(self) -> Optional[FitBoundsInstruction]:
        bounds = compute_bounds(
            self.start, self.destination, self.position, self.route, self.sample_step,
        )
        if bounds is None:
            return None
        instruction = FitBoundsInstruction(
            bounds=bounds, padding=self.padding, max_zoom=self.max_zoom,
        )
        self.canvas.fit_bounds(instruction)
        return instruction

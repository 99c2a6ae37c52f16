"""Live ride tracking: wires position, distance, heading, route and viewport."""

import time
import logging
import threading
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from .canvas import Layer, MapCanvas, RecordingCanvas
from .errors import LocationError
from .fares import FareTable
from .geo import LatLon
from .geocoding import GeocodingService
from .heading import estimate_heading
from .models import Destination, PositionSample, TripSummary
from .position_source import PositionSource
from .routing import RouteResolver
from .tracking import DistanceAccumulator
from .viewport import ViewportController

logger = logging.getLogger(__name__)

ROUTE_STYLE = {"color": "#3b82f6", "weight": 6, "casing_color": "white", "casing_weight": 10}
STRAIGHT_LINE_STYLE = {"color": "#6b7280", "weight": 4, "dash_array": "10, 10", "opacity": 0.5}
PATH_STYLE = {"color": "#ea580c", "weight": 4, "opacity": 0.8}


class RideTracker:
    """
    Orchestrates one active trip.

    Position samples update the distance, the heading, the route from
    the live position and the viewport. Overlays on the canvas (start and
    destination markers, car marker, traveled path, route or straight-line
    fallback) are replaced whole on each change.

    Components:
        - PositionSource: device fixes
        - DistanceAccumulator: traveled distance
        - RouteResolver: routed polyline to the destination
        - ViewportController: camera follow/manual
        - GeocodingService: destination address to coordinates
        - FareTable: fixed fare for the destination city

    With ``background_routing`` the route is fetched on a daemon worker
    thread that always takes the most recent request, so at most one
    fetch is in flight and samples are never held up by the network.
    """

    def __init__(
        self,
        position_source: PositionSource,
        route_resolver: Optional[RouteResolver] = None,
        geocoder: Optional[GeocodingService] = None,
        canvas: Optional[MapCanvas] = None,
        fare_table: Optional[FareTable] = None,
        driver_name: Optional[str] = None,
        background_routing: bool = False,
        on_location_error: Optional[Callable[[LocationError], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.position_source = position_source
        self.route_resolver = route_resolver or RouteResolver()
        self.geocoder = geocoder or GeocodingService()
        self.canvas = canvas or RecordingCanvas()
        self.viewport = ViewportController(self.canvas)
        self.fare_table = fare_table or FareTable()
        self.accumulator = DistanceAccumulator()
        self.driver_name = driver_name
        self.background_routing = background_routing
        self.on_location_error = on_location_error
        self.clock = clock

        self.destination: Optional[Destination] = None
        self.start_location: Optional[LatLon] = None
        self.heading = 0.0
        self.last_location_error: Optional[LocationError] = None

        self._handle: Optional[int] = None
        self._start_time: Optional[float] = None
        self._end_time: Optional[float] = None
        self._summary: Optional[TripSummary] = None
        self._lock = threading.RLock()

        # Routing worker
        self._pending_route: Optional[Tuple[object, LatLon]] = None
        self._route_event = threading.Event()
        self._worker_stop: Optional[threading.Event] = None
        self.worker_thread: Optional[threading.Thread] = None

    # Snapshot for the display layer

    @property
    def active(self) -> bool:
        return self._start_time is not None and self._summary is None

    @property
    def finished(self) -> bool:
        return self._summary is not None

    @property
    def distance_km(self) -> float:
        return self.accumulator.distance_km

    @property
    def path(self) -> List[PositionSample]:
        return list(self.accumulator.session.path)

    @property
    def current_position(self) -> Optional[PositionSample]:
        return self.accumulator.session.last_sample

    @property
    def route_geometry(self) -> Optional[Tuple[LatLon, ...]]:
        return self.route_resolver.geometry

    @property
    def summary(self) -> Optional[TripSummary]:
        return self._summary

    def elapsed_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        end = self._end_time if self._end_time is not None else self.clock()
        return max(0.0, end - self._start_time)

    # Lifecycle

    def start(
        self,
        destination: Optional[Destination] = None,
        start_location: Optional[LatLon] = None,
    ):
        """Begin a new trip: clears the path and subscribes to positions."""
        with self._lock:
            if self.active:
                raise RuntimeError("Trip already in progress")
            self.accumulator.reset()
            self.route_resolver.reset()
            self.viewport.reset()
            self.heading = 0.0
            self.last_location_error = None
            self._summary = None
            self._end_time = None
            self._start_time = self.clock()
            self.start_location = start_location
            for name in ("car", "path", "route", "straight_line", "destination"):
                self.canvas.set_layer(name, None)

            logger.info(f"Trip started (driver={self.driver_name or '-'}, start={start_location})")

            if self.background_routing:
                self._start_worker()

            self._draw_start_marker()
            self.viewport.update(start=start_location)

            if destination is not None:
                self._apply_destination(destination)

        # Outside our lock: delivery threads take the source lock first
        self._handle = self.position_source.start(self._on_sample, self._on_location_error)

    def set_destination(self, address: str, city: str) -> Optional[LatLon]:
        """Operator changed the destination mid-trip. Returns resolved coordinates."""
        with self._lock:
            if not self.active:
                raise RuntimeError("No trip in progress")
            return self._apply_destination(Destination(address=address, city=city))

    def finish(self) -> TripSummary:
        """
        End the trip. Stops the position stream before returning and makes
        any route response still in flight be ignored.
        """
        if self._start_time is None:
            raise RuntimeError("No trip in progress")

        self.position_source.stop(self._handle)
        self._handle = None

        with self._lock:
            if self._summary is not None:
                return self._summary

            self.route_resolver.cancel()
            self._stop_worker()
            distance = self.accumulator.finish()
            self._end_time = self.clock()

            fare = None
            if self.destination is not None:
                fare = self.fare_table.fare_for_city(self.destination.city)

            self._summary = TripSummary(
                distance_km=distance,
                elapsed_seconds=self.elapsed_seconds(),
                fare=fare,
                destination=self.destination,
                path_length=len(self.accumulator.session.path),
            )
            logger.info(
                f"Trip finished: {distance:.2f} km in {self._summary.elapsed_seconds:.0f}s"
            )
            return self._summary

    # Event handlers

    def _on_sample(self, sample: PositionSample):
        with self._lock:
            if not self.active:
                return
            self.accumulator.add_sample(sample)
            self.heading = estimate_heading(self.accumulator.session.path)

            self._draw_car(sample)
            self.viewport.update(position=sample.coords)
            self._request_route()

    def _on_location_error(self, error: LocationError):
        self.last_location_error = error
        if self.on_location_error:
            self.on_location_error(error)

    # Destination

    def _apply_destination(self, destination: Destination) -> Optional[LatLon]:
        if destination.resolved_coords is None:
            destination = replace(
                destination,
                resolved_coords=self.geocoder.get_coordinates(destination.address, destination.city),
            )
        coords = destination.resolved_coords
        if coords is None:
            logger.warning(f"Could not resolve destination '{destination.address}, {destination.city}'")

        self.destination = destination
        logger.info(f"Destination set: {destination.address}, {destination.city} -> {coords}")

        self.route_resolver.set_destination(coords)
        if coords is None:
            self.canvas.set_layer("destination", None)
        else:
            self.canvas.set_layer(
                "destination",
                Layer("marker", (coords,), {"icon": "flag-checkered", "tooltip": destination.address}),
            )
        self._draw_route()
        self.viewport.update(destination=coords, route=None)
        self._request_route()
        return coords

    # Routing

    def _live_origin(self):
        return self.current_position or self.start_location

    def _request_route(self):
        origin = self._live_origin()
        coords = self.destination.resolved_coords if self.destination else None
        if origin is None or coords is None:
            return

        if self.background_routing:
            if not self.route_resolver.needs_fetch(origin, coords):
                return
            self._pending_route = (origin, coords)
            self._route_event.set()
            return

        self.route_resolver.resolve(origin, coords)
        self._after_route()

    def _after_route(self):
        self._draw_route()
        self.viewport.update(route=self.route_resolver.geometry)

    def _start_worker(self):
        # Fresh thread and events per trip; a worker still winding down
        # from the previous trip only sees its own stop event
        self._worker_stop = threading.Event()
        self._route_event = threading.Event()
        self.worker_thread = threading.Thread(
            target=self._route_worker,
            args=(self._worker_stop, self._route_event),
            daemon=True,
        )
        self.worker_thread.start()

    def _stop_worker(self):
        self._pending_route = None
        if self._worker_stop is not None:
            self._worker_stop.set()
        self._route_event.set()

    def _route_worker(self, stop_event: threading.Event, wake_event: threading.Event):
        """Background routing loop."""
        logger.info("Routing worker started")
        while not stop_event.is_set():
            wake_event.wait()
            wake_event.clear()
            if stop_event.is_set():
                break

            with self._lock:
                request = self._pending_route
                self._pending_route = None
            if request is None:
                continue

            origin, coords = request
            try:
                self.route_resolver.resolve(origin, coords)
            except Exception as e:
                logger.error(f"Error in routing worker: {e}")
                continue

            with self._lock:
                if self.active and not stop_event.is_set():
                    self._after_route()
        logger.info("Routing worker stopped")


    # Overlays

    def _draw_start_marker(self):
        if self.start_location is None:
            self.canvas.set_layer("start", None)
        else:
            self.canvas.set_layer("start", Layer("marker", (self.start_location,), {"icon": "flag"}))

    def _draw_car(self, sample: PositionSample):
        style = {"icon": "car", "rotation": self.heading}
        if self.driver_name:
            style["tooltip"] = self.driver_name
        self.canvas.set_layer("car", Layer("marker", (sample.coords,), style))
        self.canvas.set_layer(
            "path",
            Layer("polyline", tuple(s.coords for s in self.accumulator.session.path), dict(PATH_STYLE)),
        )

    def _draw_route(self):
        geometry = self.route_resolver.geometry
        origin = self._live_origin()
        coords = self.destination.resolved_coords if self.destination else None

        if geometry:
            self.canvas.set_layer("straight_line", None)
            self.canvas.set_layer("route", Layer("polyline", tuple(geometry), dict(ROUTE_STYLE)))
        elif origin is not None and coords is not None:
            origin_coords = origin.coords if isinstance(origin, PositionSample) else tuple(origin)
            self.canvas.set_layer("route", None)
            self.canvas.set_layer(
                "straight_line",
                Layer("polyline", (origin_coords, coords), dict(STRAIGHT_LINE_STYLE)),
            )
        else:
            self.canvas.set_layer("route", None)
            self.canvas.set_layer("straight_line", None)

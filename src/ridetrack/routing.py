"""Driving route resolution with provider fallback and refetch suppression."""

import time
import logging
import threading
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import requests

from .config import (
    PRIMARY_ROUTING_URL, FALLBACK_ROUTING_URL, ROUTING_PROFILE,
    ROUTING_TIMEOUT, ROUTE_REFETCH_THRESHOLD_M, DRY_RUN, USER_AGENT,
)
from .errors import RouteFetchError, InvalidCoordinates
from .geo import LatLon, haversine_m, require_valid
from .models import PositionSample, RouteQuery, RouteResult

logger = logging.getLogger(__name__)

Origin = Union[PositionSample, LatLon]


class ResolverState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RouteProvider:
    """
    OSRM-compatible routing endpoint.

    Talks HTTP to the ``/route`` service and normalizes the GeoJSON
    geometry to (lat, lon) pairs. Any failure is raised as RouteFetchError.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        profile: str = ROUTING_PROFILE,
        timeout: float = ROUTING_TIMEOUT,
    ):
        if not base_url:
            raise ValueError(f"Routing provider '{name}' has no base URL")
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout = timeout

    def build_url(self, query: RouteQuery) -> str:
        return f"{self.base_url}/route/v1/{self.profile}/{query.as_osrm_coordinates()}"

    def fetch(self, query: RouteQuery) -> Tuple[LatLon, ...]:
        """
        Fetch full route geometry for ``query``.

        Returns:
            Tuple of (lat, lon) vertices, origin first

        Raises:
            RouteFetchError: network error, non-2xx status, non-JSON
                content type, or a body without routes
        """
        url = self.build_url(query)
        try:
            response = requests.get(
                url,
                params={"overview": "full", "geometries": "geojson"},
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
            )
        except requests.exceptions.Timeout as e:
            raise RouteFetchError(f"{self.name}: timeout") from e
        except requests.exceptions.RequestException as e:
            raise RouteFetchError(f"{self.name}: connection error: {e}") from e

        if not 200 <= response.status_code < 300:
            raise RouteFetchError(f"{self.name}: HTTP error {response.status_code}")

        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            raise RouteFetchError(f"{self.name}: invalid content type ({content_type or 'none'})")

        try:
            data = response.json()
        except ValueError as e:
            raise RouteFetchError(f"{self.name}: malformed JSON") from e

        routes = data.get("routes") if isinstance(data, dict) else None
        if not routes:
            raise RouteFetchError(f"{self.name}: no routes in response")

        try:
            coordinates = routes[0]["geometry"]["coordinates"]
            # Provider emits [lon, lat]
            return tuple((float(lat), float(lon)) for lon, lat, *_ in coordinates)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise RouteFetchError(f"{self.name}: unexpected geometry format") from e


def default_providers() -> List[RouteProvider]:
    return [
        RouteProvider("primary", PRIMARY_ROUTING_URL),
        RouteProvider("fallback", FALLBACK_ROUTING_URL),
    ]


class RouteResolver:
    """
    Owns the cached route of the active trip.

    ``resolve()`` fetches a route from the live origin to the destination
    unless the origin is within ``threshold_m`` of the origin of the last
    successful fetch for the same destination. Providers are tried in
    order; when all fail the cached result is kept. Every fetch is tagged
    with a generation number, and a response whose generation is no
    longer the latest (newer request, destination change or ``cancel()``)
    is discarded.

    Attributes:
        result: Cached RouteResult or None
        state: IDLE, or FETCHING while a request is in flight
        last_outcome: SUCCEEDED or FAILED for the last settled fetch
        fetch_count: Number of fetches issued (suppressed calls excluded)
    """

    def __init__(
        self,
        providers: Optional[Sequence[RouteProvider]] = None,
        threshold_m: float = ROUTE_REFETCH_THRESHOLD_M,
        dry_run: bool = DRY_RUN,
    ):
        self.providers = list(providers) if providers is not None else default_providers()
        self.threshold_m = threshold_m
        self.dry_run = dry_run
        self.result: Optional[RouteResult] = None
        self.state = ResolverState.IDLE
        self.last_outcome: Optional[ResolverState] = None
        self.fetch_count = 0
        self._reference: Optional[PositionSample] = None
        self._destination: Optional[LatLon] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def reference_origin(self) -> Optional[PositionSample]:
        """Origin of the last successful fetch (suppression reference)."""
        return self._reference

    @property
    def destination(self) -> Optional[LatLon]:
        return self._destination

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def geometry(self) -> Optional[Tuple[LatLon, ...]]:
        return self.result.geometry if self.result else None

    def set_destination(self, destination: Optional[LatLon]):
        """
        Switch destination. Drops the cached route and the suppression
        reference so the next ``resolve()`` goes to the network.
        """
        if destination is not None:
            destination = (float(destination[0]), float(destination[1]))
        with self._lock:
            self._set_destination_locked(destination)

    def _set_destination_locked(self, destination: Optional[LatLon]):
        if destination == self._destination:
            return
        logger.info(f"Route destination changed: {self._destination} -> {destination}")
        self._destination = destination
        self._reference = None
        self.result = None
        # In-flight responses belong to the old destination
        self._generation += 1
        self.state = ResolverState.IDLE

    def cancel(self):
        """Ignore any response still in flight."""
        with self._lock:
            self._generation += 1
            self.state = ResolverState.IDLE
        logger.debug("Route resolver cancelled")

    def reset(self):
        """Forget everything, for a new trip."""
        with self._lock:
            self._generation += 1
            self._destination = None
            self._reference = None
            self.result = None
            self.state = ResolverState.IDLE
            self.last_outcome = None

    def needs_fetch(self, origin: Origin, destination: LatLon) -> bool:
        """True when ``resolve(origin, destination)`` would hit the network."""
        try:
            origin_lat, origin_lon = require_valid(*_coords(origin))
            dest = require_valid(*destination)
        except (InvalidCoordinates, TypeError, ValueError):
            return False
        with self._lock:
            if dest != self._destination or self._reference is None:
                return True
            moved = haversine_m(
                self._reference.latitude, self._reference.longitude,
                origin_lat, origin_lon,
            )
            return moved >= self.threshold_m

    def resolve(self, origin: Origin, destination: LatLon) -> Optional[RouteResult]:
        """
        Refresh the route if needed and return the cached result.

        Never raises for network or data problems: invalid coordinates are
        ignored and provider failures keep the previous result.
        """
        try:
            origin_lat, origin_lon = require_valid(*_coords(origin))
            dest = require_valid(*destination)
        except (InvalidCoordinates, TypeError, ValueError) as e:
            logger.debug(f"Skipping route resolution: {e}")
            return self.result

        with self._lock:
            self._set_destination_locked(dest)

            if self._reference is not None:
                moved = haversine_m(
                    self._reference.latitude, self._reference.longitude,
                    origin_lat, origin_lon,
                )
                if moved < self.threshold_m:
                    logger.debug(f"Moved {moved:.1f} m since last route, keeping it")
                    return self.result

            self._generation += 1
            generation = self._generation
            self.state = ResolverState.FETCHING
            self.fetch_count += 1

        origin_sample = _as_sample(origin)
        query = RouteQuery(origin_lat, origin_lon, dest[0], dest[1])
        geometry = self._fetch(query)

        with self._lock:
            if generation != self._generation:
                logger.debug(f"Discarding stale route response (generation {generation}, latest {self._generation})")
                return self.result

            if geometry is not None:
                self.result = RouteResult(
                    geometry=geometry,
                    fetched_at_origin=origin_sample,
                    destination=dest,
                )
                self._reference = origin_sample
                self.last_outcome = ResolverState.SUCCEEDED
                logger.info(f"Route updated: {len(geometry)} points from ({origin_lat:.5f}, {origin_lon:.5f})")
            else:
                self.last_outcome = ResolverState.FAILED
                logger.warning("Routing unavailable, keeping previous route")
            self.state = ResolverState.IDLE
            return self.result

    def _fetch(self, query: RouteQuery) -> Optional[Tuple[LatLon, ...]]:
        if self.dry_run:
            logger.info(f"[DRY_RUN] Would fetch route {query.as_osrm_coordinates()}")
            return None

        for index, provider in enumerate(self.providers):
            try:
                return provider.fetch(query)
            except RouteFetchError as e:
                if index + 1 < len(self.providers):
                    logger.warning(f"Routing server failed ({e}), trying backup...")
                else:
                    logger.warning(f"Routing server failed ({e})")
        return None


def _coords(origin: Origin) -> Tuple[float, float]:
    if isinstance(origin, PositionSample):
        return origin.latitude, origin.longitude
    lat, lon = origin
    return lat, lon


def _as_sample(origin: Origin) -> PositionSample:
    if isinstance(origin, PositionSample):
        return origin
    lat, lon = origin
    return PositionSample(float(lat), float(lon), time.time())

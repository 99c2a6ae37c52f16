"""Typed subscription over a device position stream."""

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from .config import POSITION_HIGH_ACCURACY, POSITION_MAXIMUM_AGE, POSITION_TIMEOUT_SECONDS
from .errors import LocationError, LocationErrorKind
from .geo import is_valid_coordinate
from .models import PositionSample

logger = logging.getLogger(__name__)

FixCallback = Callable[[float, float, float], None]
ErrorCallback = Callable[[LocationErrorKind], None]
SampleListener = Callable[[PositionSample], None]
ErrorListener = Callable[[LocationError], None]


@dataclass(frozen=True)
class PositionOptions:
    """Watch settings requested from the backend."""
    high_accuracy: bool = POSITION_HIGH_ACCURACY
    maximum_age: float = POSITION_MAXIMUM_AGE
    timeout: float = POSITION_TIMEOUT_SECONDS


class PositionBackend:
    """
    Interface for a platform position-watch primitive.

    A backend runs at most one watch. It reports raw fixes as
    ``(latitude, longitude, timestamp)`` and failures as a
    LocationErrorKind. Failures never end the watch.
    """

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback, options: PositionOptions):
        raise NotImplementedError

    def clear(self):
        raise NotImplementedError


class PositionSource:
    """
    Fan-out of one backend watch to any number of listeners.

    The backend watch is opened with the first subscription and cleared
    with the last one. Fixes whose timestamp is not newer than the last
    accepted one are dropped, so consumers always see samples in order.
    Delivery happens under a re-entrant lock: once ``stop()`` returns,
    the stopped listener will not be called again.
    """

    def __init__(self, backend: Optional[PositionBackend], options: Optional[PositionOptions] = None):
        self.backend = backend
        self.options = options or PositionOptions()
        self._listeners: Dict[int, Tuple[SampleListener, Optional[ErrorListener]]] = {}
        self._handles = itertools.count(1)
        self._lock = threading.RLock()
        self._watching = False
        self._last_timestamp: Optional[float] = None

    @property
    def watching(self) -> bool:
        return self._watching

    def start(self, on_sample: SampleListener, on_error: Optional[ErrorListener] = None) -> int:
        """Subscribe to samples. Returns a handle for ``stop()``."""
        with self._lock:
            handle = next(self._handles)
            self._listeners[handle] = (on_sample, on_error)

            if self.backend is None:
                logger.warning("No position backend available")
                if on_error:
                    on_error(LocationError(LocationErrorKind.UNSUPPORTED))
                return handle

            if not self._watching:
                self._last_timestamp = None
                self._watching = True
                logger.info(
                    f"Starting position watch (high_accuracy={self.options.high_accuracy}, "
                    f"timeout={self.options.timeout}s)"
                )
                self.backend.watch(self._handle_fix, self._handle_error, self.options)
            return handle

    def stop(self, handle: Optional[int]):
        """Unsubscribe. Safe to call more than once."""
        with self._lock:
            if handle is None or self._listeners.pop(handle, None) is None:
                return
            if not self._listeners:
                self._clear_watch()

    def stop_all(self):
        with self._lock:
            self._listeners.clear()
            self._clear_watch()

    def _clear_watch(self):
        if self._watching and self.backend is not None:
            self.backend.clear()
            logger.info("Position watch cleared")
        self._watching = False

    def _handle_fix(self, latitude: float, longitude: float, timestamp: float):
        with self._lock:
            if not self._watching:
                return
            if not is_valid_coordinate(latitude, longitude):
                logger.debug(f"Dropping invalid fix ({latitude}, {longitude})")
                return
            if self._last_timestamp is not None and timestamp <= self._last_timestamp:
                logger.debug(f"Dropping out-of-order fix at {timestamp} (last {self._last_timestamp})")
                return
            self._last_timestamp = timestamp

            sample = PositionSample(float(latitude), float(longitude), float(timestamp))
            for handle, (on_sample, _) in list(self._listeners.items()):
                # A previous listener may have unsubscribed this one
                if handle not in self._listeners:
                    continue
                try:
                    on_sample(sample)
                except Exception as e:
                    logger.error(f"Position listener {handle} failed: {e}")

    def _handle_error(self, kind: LocationErrorKind):
        with self._lock:
            if not self._watching:
                return
            error = LocationError(kind)
            logger.warning(f"Position error: {error.message}")
            for handle, (_, on_error) in list(self._listeners.items()):
                if on_error is None or handle not in self._listeners:
                    continue
                try:
                    on_error(error)
                except Exception as e:
                    logger.error(f"Position error listener {handle} failed: {e}")


ReplayItem = Union[PositionSample, Tuple[float, float, float], LocationErrorKind]


class ReplayBackend(PositionBackend):
    """
    Backend that plays back prepared fixes and errors on ``pump()``.

    Used for recorded tracks and tests. Items may be PositionSample
    objects, ``(lat, lon, timestamp)`` tuples or LocationErrorKind values.
    """

    def __init__(self, items: Iterable[ReplayItem] = ()):
        self.pending = deque(items)
        self.options: Optional[PositionOptions] = None
        self._on_fix: Optional[FixCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    @property
    def active(self) -> bool:
        return self._on_fix is not None

    def feed(self, *items: ReplayItem):
        self.pending.extend(items)

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback, options: PositionOptions):
        self._on_fix = on_fix
        self._on_error = on_error
        self.options = options

    def clear(self):
        self._on_fix = None
        self._on_error = None

    def pump(self, count: Optional[int] = None) -> int:
        """Deliver up to ``count`` pending items (all when None). Returns number delivered."""
        delivered = 0
        while self.pending and self.active and (count is None or delivered < count):
            item = self.pending.popleft()
            if isinstance(item, LocationErrorKind):
                self._on_error(item)
            elif isinstance(item, PositionSample):
                self._on_fix(item.latitude, item.longitude, item.timestamp)
            else:
                lat, lon, ts = item
                self._on_fix(lat, lon, ts)
            delivered += 1
        return delivered

"""Trip path and distance accumulation."""

import logging
from typing import Iterable, Optional

from .geo import haversine_km
from .models import PositionSample, TripPath

logger = logging.getLogger(__name__)


class TrackingSession:
    """
    State of one trip while it is being tracked.

    Attributes:
        path: Samples recorded for this trip, in arrival order
        cumulative_distance_km: Running total; frozen once ``active`` is False
        last_sample: Most recent accepted sample
        active: False once the trip has finished
    """

    def __init__(self):
        self.path = TripPath()
        self.cumulative_distance_km = 0.0
        self.last_sample: Optional[PositionSample] = None
        self.active = True


class DistanceAccumulator:
    """
    Sums great-circle segment lengths between consecutive samples.

    Every sample counts, including jitter while stationary: no smoothing
    or minimum-movement filter is applied.
    """

    def __init__(self):
        self.session = TrackingSession()

    @property
    def distance_km(self) -> float:
        return self.session.cumulative_distance_km

    @property
    def finished(self) -> bool:
        return not self.session.active

    def reset(self):
        """Start a new session with an empty path and zero distance."""
        self.session = TrackingSession()

    def add_sample(self, sample: PositionSample) -> float:
        """Add a sample and return the cumulative distance in km."""
        session = self.session
        if not session.active:
            logger.debug("Session finished, ignoring sample")
            return session.cumulative_distance_km

        previous = session.last_sample
        if previous is not None:
            segment = haversine_km(
                previous.latitude, previous.longitude,
                sample.latitude, sample.longitude,
            )
            session.cumulative_distance_km += segment
            logger.debug(
                f"Segment {segment * 1000:.1f} m, total {session.cumulative_distance_km:.3f} km"
            )

        session.path.append(sample)
        session.last_sample = sample
        return session.cumulative_distance_km

    def add_samples(self, samples: Iterable[PositionSample]) -> float:
        """Replay a batch of samples in order."""
        for sample in samples:
            self.add_sample(sample)
        return self.session.cumulative_distance_km

    def finish(self) -> float:
        """Freeze the session and return the final distance."""
        self.session.active = False
        return self.session.cumulative_distance_km

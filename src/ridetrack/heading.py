"""Vehicle heading from recent movement."""

from typing import Sequence

from .geo import initial_bearing
from .models import PositionSample


def estimate_heading(path: Sequence[PositionSample]) -> float:
    """
    Bearing in degrees from the second-to-last to the last sample.

    Returns 0 when fewer than two samples are available.
    """
    if len(path) < 2:
        return 0.0
    p1 = path[-2]
    p2 = path[-1]
    return initial_bearing(p1.latitude, p1.longitude, p2.latitude, p2.longitude)


class HeadingEstimator:
    """Estimates vehicle heading from a trip path; holds no state."""

    @staticmethod
    def estimate(path: Sequence[PositionSample]) -> float:
        return estimate_heading(path)

"""Fixed fare per destination city."""

import logging
from typing import Iterable, List, Optional

from .models import FareRule

logger = logging.getLogger(__name__)

DEFAULT_FARE_RULES = (
    FareRule(destination_city="Guaxupé", fare=20.00, id="f1"),
    FareRule(destination_city="Guaranésia", fare=25.00, id="f2"),
)


class FareTable:
    """Lookup of the fare for a destination city."""

    def __init__(self, rules: Optional[Iterable[FareRule]] = None):
        self.rules: List[FareRule] = list(rules) if rules else list(DEFAULT_FARE_RULES)

    def fare_for_city(self, city: str) -> Optional[float]:
        """Fare for ``city`` (case-insensitive), None if there is no rule."""
        key = (city or "").strip().casefold()
        for rule in self.rules:
            if rule.destination_city.casefold() == key:
                return rule.fare
        logger.debug(f"No fare rule for city '{city}'")
        return None

    def cities(self) -> List[str]:
        """Cities with a fare, alphabetical."""
        return sorted(rule.destination_city for rule in self.rules)

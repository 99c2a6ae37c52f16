"""Forward and reverse geocoding using OSM Nominatim API."""

import time
import logging
import requests
from typing import Optional, Dict, Any, List

from .config import (
    NOMINATIM_SEARCH_URL, NOMINATIM_REVERSE_URL, NOMINATIM_RATE_LIMIT_SECONDS,
    NOMINATIM_TIMEOUT, GEOCODE_COUNTRY, GEOCODE_COUNTRY_CODES,
    GEOCODE_MIN_QUERY_LENGTH, GEOCODE_SUGGESTION_LIMIT, USER_AGENT, DRY_RUN,
)
from .errors import GeocodeError
from .geo import LatLon, is_valid_coordinate
from .models import AddressSuggestion

logger = logging.getLogger(__name__)

STREET_KEYS = ("road", "pedestrian", "highway", "square")
CITY_KEYS = ("city", "town", "village", "municipality", "administrative")


def _first_part(display_name: Optional[str]) -> str:
    return (display_name or "").split(",")[0].strip()


class GeocodingService:
    """
    Service for turning destination text into coordinates and back.

    All public methods return None or an empty list on errors (they do
    not raise), so callers only have to handle absence.
    """

    def __init__(self, dry_run: bool = DRY_RUN):
        self.last_request_time = 0.0
        self.dry_run = dry_run

    def _full_query(self, text: str, city: str) -> str:
        parts = [text.strip()]
        if city:
            parts.append(city.strip())
        parts.append(GEOCODE_COUNTRY)
        return ", ".join(parts)

    def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        """GET with rate limiting. Raises GeocodeError on any failure."""
        if self.dry_run:
            raise GeocodeError("DRY_RUN enabled")

        # Rate limiting
        now = time.time()
        time_since_last = now - self.last_request_time
        if time_since_last < NOMINATIM_RATE_LIMIT_SECONDS:
            sleep_time = NOMINATIM_RATE_LIMIT_SECONDS - time_since_last
            logger.debug(f"Geocoding rate limiting: sleeping {sleep_time:.1f}s")
            time.sleep(sleep_time)

        try:
            response = requests.get(
                url,
                params=params,
                timeout=NOMINATIM_TIMEOUT,
                headers={"User-Agent": USER_AGENT},  # Required by Nominatim
            )
        except requests.exceptions.Timeout as e:
            raise GeocodeError("Geocoding API timeout") from e
        except requests.exceptions.ConnectionError as e:
            raise GeocodeError("Geocoding API connection error") from e
        except requests.exceptions.RequestException as e:
            raise GeocodeError(f"Geocoding request failed: {e}") from e
        finally:
            self.last_request_time = time.time()

        if response.status_code != 200:
            raise GeocodeError(f"Geocoding API error {response.status_code}: {response.text[:100]}")

        try:
            return response.json()
        except ValueError as e:
            raise GeocodeError("Geocoding API returned invalid JSON") from e

    def search(self, query: str, city: str) -> List[AddressSuggestion]:
        """
        Address suggestions for free text typed by the operator.

        Only the street (or place) name is returned, so the driver can
        complete the house number. Queries shorter than three characters
        return an empty list without a request.

        Args:
            query: Partial address text
            city: City used to narrow the search

        Returns:
            Up to five suggestions, possibly empty
        """
        if not query or len(query) < GEOCODE_MIN_QUERY_LENGTH:
            return []

        params = {
            "q": self._full_query(query, city),
            "format": "jsonv2",
            "addressdetails": 1,
            "limit": GEOCODE_SUGGESTION_LIMIT,
            "countrycodes": GEOCODE_COUNTRY_CODES,
        }
        logger.debug(f"Geocoding search: {params['q']}")

        try:
            data = self._get_json(NOMINATIM_SEARCH_URL, params)
        except GeocodeError as e:
            logger.debug(f"Geocoding search failed: {e}")
            return []

        if not isinstance(data, list):
            return []

        suggestions = []
        for item in data:
            address = item.get("address") or {}
            street = next((address[k] for k in STREET_KEYS if address.get(k)), None)
            street = street or item.get("name") or _first_part(item.get("display_name"))
            if street:
                suggestions.append(AddressSuggestion(description=street))
        return suggestions

    def get_coordinates(self, address: str, city: str) -> Optional[LatLon]:
        """Exact (lat, lon) of an address, or None if not found."""
        if not address:
            return None

        params = {
            "q": self._full_query(address, city),
            "format": "jsonv2",
            "limit": 1,
            "countrycodes": GEOCODE_COUNTRY_CODES,
        }

        try:
            data = self._get_json(NOMINATIM_SEARCH_URL, params)
        except GeocodeError as e:
            logger.debug(f"Coordinate lookup failed: {e}")
            return None

        if not data or not isinstance(data, list):
            logger.debug(f"No match for '{params['q']}'")
            return None

        try:
            lat = float(data[0]["lat"])
            lon = float(data[0]["lon"])
        except (KeyError, TypeError, ValueError):
            logger.debug("Geocoding result without usable coordinates")
            return None

        if not is_valid_coordinate(lat, lon):
            return None
        logger.debug(f"Resolved '{address}' to ({lat}, {lon})")
        return (lat, lon)

    def reverse_geocode(self, lat: float, lon: float) -> Optional[Dict[str, str]]:
        """
        Street and city for a GPS position.

        Returns:
            ``{"address": ..., "city": ...}`` or None. ``city`` may be empty.
        """
        if not is_valid_coordinate(lat, lon):
            return None

        params = {"lat": lat, "lon": lon, "format": "jsonv2"}
        logger.debug(f"Reverse geocoding: ({lat}, {lon})")

        try:
            data = self._get_json(NOMINATIM_REVERSE_URL, params)
        except GeocodeError as e:
            logger.debug(f"Reverse geocoding failed: {e}")
            return None

        if not isinstance(data, dict) or not data.get("address"):
            return None

        address = data["address"]
        street = next((address[k] for k in STREET_KEYS + ("suburb",) if address.get(k)), None)
        street = street or _first_part(data.get("display_name"))
        city = next((address[k] for k in CITY_KEYS if address.get(k)), "")
        return {"address": street, "city": city}

"""
Carpool Platform - Geographic Utilities

Distance calculations and the geocoding client used to build the
"nearby" bucket of ride searches. Geocoding is best-effort: any failure
yields None and the caller simply skips nearby matching.
"""

import logging
import threading
from math import radians, cos, sin, asin, sqrt
from typing import Dict, Optional, Tuple

import requests

from config import config

logger = logging.getLogger(__name__)

Coordinates = Tuple[float, float]

# Place types preferred over streets/buildings when a name is ambiguous
PREFERRED_PLACE_TYPES = ('city', 'town', 'village', 'suburb', 'locality')


def calculate_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in kilometers using Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in kilometers
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(sqrt(a))
    r = 6371.0  # Earth's radius in kilometers
    return c * r


def normalize_place(name: Optional[str]) -> str:
    """Canonical form used for exact location matching."""
    return ' '.join((name or '').split()).casefold()


class Geocoder:
    """
    Resolves place names to coordinates through a Nominatim-compatible
    search endpoint. Successful lookups are cached for the process lifetime.
    """

    def __init__(self, url: str, user_agent: str, timeout: float, enabled: bool = True):
        self.url = url
        self.timeout = timeout
        self.enabled = enabled
        self.session = requests.Session()
        self.session.headers['User-Agent'] = user_agent
        self._cache: Dict[str, Coordinates] = {}
        self._lock = threading.Lock()

    def geocode(self, place: str) -> Optional[Coordinates]:
        """Return (lat, lng) for a place name, or None if it cannot be resolved."""
        key = normalize_place(place)
        if not key or not self.enabled:
            return None

        with self._lock:
            cached = self._cache.get(key)
        if cached:
            return cached

        try:
            response = self.session.get(
                self.url,
                params={'format': 'json', 'q': place, 'limit': 5},
                timeout=self.timeout
            )
            response.raise_for_status()
            results = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Geocoding failed for %r: %s", place, e)
            return None

        if not results:
            logger.info("No geocoding result for %r", place)
            return None

        chosen = next(
            (r for r in results if r.get('type') in PREFERRED_PLACE_TYPES),
            results[0]
        )
        try:
            coords = (float(chosen['lat']), float(chosen['lon']))
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed geocoding result for %r: %r", place, chosen)
            return None

        with self._lock:
            self._cache[key] = coords
        return coords


# Global geocoder instance
geocoder = Geocoder(
    url=config.GEOCODER_URL,
    user_agent=config.GEOCODER_USER_AGENT,
    timeout=config.GEOCODER_TIMEOUT,
    enabled=config.is_geocoding_enabled()
)

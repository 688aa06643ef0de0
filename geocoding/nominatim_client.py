"""Geocoding client for enriching event locations with coordinates."""
import logging
import time
from typing import Optional, Tuple

import requests

from feeds.models import Location

logger = logging.getLogger(__name__)


class NominatimGeocoder:
    """Client for a Nominatim-compatible ``/search`` endpoint."""

    BASE_URL = "https://nominatim.openstreetmap.org"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: int = 10,
        user_agent: str = 'calendar-feeds/1.0',
        max_retries: int = 3
    ):
        """
        Initialize the geocoding client.

        Args:
            base_url: Service root, defaults to the public Nominatim server
            timeout: HTTP request timeout in seconds (default: 10)
            user_agent: User-Agent header required by Nominatim's usage policy
            max_retries: Attempts per lookup (default: 3)
        """
        self.base_url = (base_url or self.BASE_URL).rstrip('/')
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_retries = max_retries

    def geocode(self, location: Location) -> Optional[Tuple[float, float]]:
        """
        Resolve a location's address to coordinates.

        Args:
            location: Location whose full address is looked up

        Returns:
            (longitude, latitude), or None when the address is empty or
            unknown or the result is malformed

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        query = location.full_address()
        if not query:
            return None

        results = self._search(query)
        if not results:
            logger.info(f"No geocoding result for '{query}'")
            return None

        try:
            best = results[0]
            return float(best['lon']), float(best['lat'])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Malformed geocoding result for '{query}': {e}")
            return None

    def _search(self, query: str) -> list:
        params = {'q': query, 'format': 'json', 'limit': 1}
        headers = {'User-Agent': self.user_agent}
        base_delay = 1  # seconds

        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Geocoding '{query}' (attempt {attempt + 1}/{self.max_retries})"
                )
                response = requests.get(
                    f"{self.base_url}/search",
                    params=params,
                    headers=headers,
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.json()

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Geocoding failed (attempt {attempt + 1}/{self.max_retries}): "
                        f"{e}. Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} geocoding attempts failed. Last error: {e}"
                    )
                    raise

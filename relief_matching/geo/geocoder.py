"""Geocoding against the French government address API (api-adresse.data.gouv.fr).

Every provider-side failure (timeout, connection error, non-2xx status,
malformed payload, zero results) degrades to None. Mission creation relies on
this: a geocoder hiccup must never abort it.
"""

import logging
from types import TracebackType
from typing import Any

import requests

from relief_matching.core.config import GeocodingConfig
from relief_matching.core.schemas import GeocodingResult
from relief_matching.geo.distance import haversine_km

logger = logging.getLogger(__name__)

MIN_ADDRESS_LENGTH = 3


class GeoResolver:
    """Resolves addresses to coordinates and measures distances.

    Usage::

        with GeoResolver(settings.geocoding) as geo:
            result = geo.geocode_address("12 Rue de Rivoli, Paris")
    """

    def __init__(
        self,
        config: GeocodingConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config or GeocodingConfig()
        self._session = session or requests.Session()
        self._owns_session = session is None

    def __enter__(self) -> "GeoResolver":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def geocode_address(self, address: str) -> GeocodingResult | None:
        """Geocode a free-text address to its single best match, or None."""
        if not address or len(address.strip()) < MIN_ADDRESS_LENGTH:
            logger.warning("Address too short for geocoding: %r", address)
            return None
        address = address.strip()

        logger.debug("Geocoding address: %s", address)
        data = self._get("/search/", {"q": address, "limit": 1})
        if data is None:
            return None

        feature = _first_feature(data)
        if feature is None:
            logger.warning("No geocoding results for address: %s", address)
            return None

        result = _parse_feature(feature)
        if result is None:
            logger.error("Malformed geocoding feature for address: %s", address)
            return None

        logger.info(
            "Geocoded '%s' -> [%s, %s] (%s)",
            address, result.latitude, result.longitude, result.city,
        )
        return result

    def geocode_city_postal_code(self, city: str, postal_code: str) -> GeocodingResult | None:
        """Geocode from city and postal code only."""
        return self.geocode_address(f"{city} {postal_code}")

    def reverse_geocode(self, longitude: float, latitude: float) -> str | None:
        """Return the address label closest to the given coordinates, or None."""
        data = self._get("/reverse/", {"lon": longitude, "lat": latitude})
        if data is None:
            return None
        feature = _first_feature(data)
        if feature is None:
            return None
        try:
            label = feature["properties"]["label"]
        except (KeyError, TypeError):
            logger.error("Malformed reverse geocoding feature at [%s, %s]", latitude, longitude)
            return None
        return str(label) if label else None

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Great-circle distance in kilometres (haversine, R = 6371 km)."""
        return haversine_km(lat1, lon1, lat2, lon2)

    def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any] | None:
        """Single GET against the provider. Never raises."""
        if not self._config.enabled:
            logger.debug("Geocoding disabled - skipping %s", path)
            return None

        url = f"{self._config.base_url}{path}"
        try:
            response = self._session.get(
                url,
                params=params,
                headers={
                    "Accept": "application/json",
                    "User-Agent": self._config.user_agent,
                },
                timeout=self._config.timeout_seconds,
            )
        except requests.Timeout:
            logger.error(
                "Geocoding request timed out after %.1fs: %s",
                self._config.timeout_seconds, url,
            )
            return None
        except requests.RequestException as e:
            logger.error("Geocoding request failed for %s: %s", url, e)
            return None

        if not response.ok:
            logger.error("Geocoding API error: %d", response.status_code)
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Geocoding API returned invalid JSON: %s", e)
            return None
        if not isinstance(data, dict):
            logger.error("Geocoding API returned unexpected payload type: %s", type(data).__name__)
            return None
        return data


def _first_feature(data: dict[str, Any]) -> dict[str, Any] | None:
    features = data.get("features")
    if not isinstance(features, list) or not features:
        return None
    feature = features[0]
    return feature if isinstance(feature, dict) else None


def _parse_feature(feature: dict[str, Any]) -> GeocodingResult | None:
    """Map a GeoJSON feature to a GeocodingResult. Returns None if malformed."""
    try:
        longitude, latitude = feature["geometry"]["coordinates"][:2]
        props = feature.get("properties")
        if not isinstance(props, dict):
            props = {}
        return GeocodingResult(
            longitude=float(longitude),
            latitude=float(latitude),
            label=props.get("label") or "",
            city=props.get("city") or "",
            postal_code=props.get("postcode") or "",
            confidence=float(props.get("score") or 0.0),
        )
    except (KeyError, IndexError, TypeError, ValueError):
        return None

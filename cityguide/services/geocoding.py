"""
Geocoding (Nominatim) and routing (OpenRouteService) clients.

Coordinates are (latitude, longitude) everywhere except inside
``RoutingClient.route``, where OpenRouteService expects and returns
(longitude, latitude).
"""
import logging
from typing import List, Optional, Sequence

import httpx

from cityguide.config import settings
from cityguide.errors import UpstreamUnavailableError
from cityguide.models.maps import LatLng
from cityguide.models.trips import TravelMode
from cityguide.services.redis_client import RedisClient

logger = logging.getLogger(__name__)

# OpenRouteService has no public transport profile, driving is the closest
ORS_PROFILES = {
    TravelMode.CAR: "driving-car",
    TravelMode.WALK: "foot-walking",
    TravelMode.PUBLIC_TRANSPORT: "driving-car",
}


def ors_profile(mode: Optional[TravelMode]) -> str:
    """Map a travel mode onto an OpenRouteService profile."""
    if mode is None:
        return ORS_PROFILES[TravelMode.CAR]
    return ORS_PROFILES.get(TravelMode(mode), ORS_PROFILES[TravelMode.CAR])


class GeocodingClient:
    """Resolves free-text addresses with Nominatim, caching hits in Redis."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[RedisClient] = None,
        base_url: Optional[str] = None,
    ):
        self.base_url = (base_url or settings.nominatim_url).rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.geocode_timeout)
        self.cache = cache

    async def aclose(self) -> None:
        await self.http_client.aclose()

    @staticmethod
    def _cache_key(address: str) -> str:
        return f"geocode:{' '.join(address.lower().split())}"

    async def geocode(self, address: str) -> Optional[LatLng]:
        """
        Resolve an address to its best match.

        Returns:
            (lat, lon), or None when Nominatim has no match

        Raises:
            UpstreamUnavailableError: Non-2xx status, transport failure or an unexpected payload
        """
        key = self._cache_key(address)
        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached:
                return (float(cached[0]), float(cached[1]))

        try:
            response = await self.http_client.get(
                f"{self.base_url}/search",
                params={"format": "json", "q": address, "limit": 1},
                headers={"User-Agent": settings.nominatim_user_agent},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(f"Nominatim HTTP error for '{address}': {exc.response.status_code}")
            raise UpstreamUnavailableError("nominatim", exc.response.status_code) from exc
        except httpx.RequestError as exc:
            logger.error(f"Nominatim request error for '{address}': {exc}")
            raise UpstreamUnavailableError("nominatim", message=f"Failed to reach Nominatim: {exc}") from exc
        except ValueError as exc:
            raise UpstreamUnavailableError("nominatim", message="Nominatim returned invalid JSON") from exc

        if not isinstance(data, list):
            logger.error(f"Nominatim returned {type(data).__name__} instead of a result list for '{address}'")
            raise UpstreamUnavailableError("nominatim", message="Nominatim returned an unexpected payload")
        if not data:
            logger.warning(f"Nominatim found no coordinates for '{address}'")
            return None

        try:
            coordinates = (float(data[0]["lat"]), float(data[0]["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamUnavailableError("nominatim", message="Nominatim result has no usable coordinates") from exc
        if self.cache is not None:
            await self.cache.set(key, list(coordinates), ttl=settings.geocode_cache_ttl_seconds)
        return coordinates


class RoutingClient:
    """Requests a single best route from OpenRouteService."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.ors_api_key
        self.base_url = (base_url or settings.ors_url).rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.routing_timeout)

    async def aclose(self) -> None:
        await self.http_client.aclose()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def route(self, coordinates: Sequence[LatLng], profile: str) -> List[LatLng]:
        """
        Route through ``coordinates`` in the given order.

        Returns:
            Route geometry as (lat, lon) pairs, empty if the service found none

        Raises:
            UpstreamUnavailableError: Missing key, non-2xx status or transport failure
        """
        if not self.api_key:
            raise UpstreamUnavailableError("openrouteservice", message="Routing API key is not configured")

        body = {"coordinates": [[lon, lat] for lat, lon in coordinates]}
        logger.info(f"Requesting {profile} route through {len(coordinates)} points")

        try:
            response = await self.http_client.post(
                f"{self.base_url}/v2/directions/{profile}/geojson",
                json=body,
                headers={
                    "Authorization": self.api_key,
                    "Accept": "application/json, application/geo+json",
                },
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(f"ORS HTTP error: {exc.response.status_code} - {exc.response.text[:500]}")
            raise UpstreamUnavailableError("openrouteservice", exc.response.status_code) from exc
        except httpx.RequestError as exc:
            logger.error(f"ORS request error: {exc}")
            raise UpstreamUnavailableError("openrouteservice", message=f"Failed to reach routing service: {exc}") from exc
        except ValueError as exc:
            raise UpstreamUnavailableError("openrouteservice", message="Routing service returned invalid JSON") from exc

        features = data.get("features") or []
        if not features:
            logger.warning("ORS response did not contain a route")
            return []
        geometry = features[0].get("geometry") or {}
        return [(float(lat), float(lon)) for lon, lat, *_ in geometry.get("coordinates") or []]

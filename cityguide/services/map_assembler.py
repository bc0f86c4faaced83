"""
Geocode-and-route assembly for the trip map.

One run moves through GEOCODING -> ROUTING -> READY. The destination must
resolve; every other location that fails is skipped with a warning, and a
routing failure only leaves the polyline empty.
"""
import asyncio
import logging
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from cityguide.config import settings
from cityguide.errors import DestinationUnresolvedError, UpstreamUnavailableError
from cityguide.models.maps import LatLng, MapMarker, MapView
from cityguide.models.trips import SuggestedPlace, TravelMode
from cityguide.services.geocoding import GeocodingClient, RoutingClient, ors_profile
from cityguide.services.redis_client import redis_client

logger = logging.getLogger(__name__)


class AssemblyPhase(str, Enum):
    GEOCODING = "geocoding"
    ROUTING = "routing"
    READY = "ready"


def _unresolved_warning(address: str) -> str:
    return f'Could not find location for "{address}". Try a more general name or verify spelling.'


class MapAssembler:
    """Builds markers and a route polyline for a trip."""

    def __init__(
        self,
        geocoder: Optional[GeocodingClient] = None,
        router: Optional[RoutingClient] = None,
        concurrency: Optional[int] = None,
    ):
        self.geocoder = geocoder or GeocodingClient(
            cache=redis_client if settings.geocode_cache_enabled else None
        )
        self.router = router or RoutingClient()
        self.concurrency = max(1, concurrency or settings.geocode_concurrency)

    @staticmethod
    def _enter(phase: AssemblyPhase, destination: str) -> None:
        logger.debug(f"Map assembly for {destination}: {phase.value}")

    async def _lookup(self, address: str) -> Tuple[Optional[LatLng], Optional[str]]:
        """Geocode one address, turning misses and upstream errors into a warning."""
        try:
            coordinates = await self.geocoder.geocode(address)
        except UpstreamUnavailableError as exc:
            logger.warning(f"Geocoding '{address}' failed: {exc}")
            return None, _unresolved_warning(address)
        if coordinates is None:
            return None, _unresolved_warning(address)
        return coordinates, None

    async def assemble(
        self,
        destination: str,
        places: Sequence[SuggestedPlace],
        travel_mode: Optional[TravelMode] = None,
        starting_point: Optional[str] = None,
    ) -> MapView:
        """
        Geocode the trip and route through it.

        Markers are ordered starting point, destination, then places in
        itinerary order, whatever order the lookups complete in. Places are
        searched as "{name}, {destination}".

        Raises:
            DestinationUnresolvedError: The destination did not geocode
        """
        self._enter(AssemblyPhase.GEOCODING, destination)
        warnings: List[str] = []

        destination_coords, _ = await self._lookup(destination)
        if destination_coords is None:
            raise DestinationUnresolvedError(
                f'Could not find coordinates for the main destination "{destination}". '
                "Map cannot be displayed."
            )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(address: str) -> Tuple[Optional[LatLng], Optional[str]]:
            async with semaphore:
                return await self._lookup(address)

        start_lookup = [bounded(starting_point)] if starting_point else []
        place_lookups = [bounded(f"{place.name}, {destination}") for place in places]
        # gather keeps argument order, so results line up with their inputs
        results = await asyncio.gather(*start_lookup, *place_lookups)
        start_result = results[0] if starting_point else None
        place_results = results[1:] if starting_point else results

        markers: List[MapMarker] = []
        if start_result is not None:
            coords, warning = start_result
            if coords is not None:
                markers.append(MapMarker(
                    position=coords,
                    label=f"Starting Point: {starting_point}",
                    kind="starting_point",
                ))
            else:
                warnings.append(warning)

        markers.append(MapMarker(
            position=destination_coords,
            label=f"Destination: {destination}",
            kind="destination",
        ))

        for place, (coords, warning) in zip(places, place_results):
            if coords is not None:
                markers.append(MapMarker(
                    position=coords,
                    label=f"{place.name}: {place.description}",
                    kind="place",
                ))
            else:
                warnings.append(warning)

        self._enter(AssemblyPhase.ROUTING, destination)
        route = await self._route([marker.position for marker in markers], travel_mode, warnings)

        self._enter(AssemblyPhase.READY, destination)
        return MapView(
            markers=markers,
            route=route,
            warnings=warnings,
            center=markers[0].position,
        )

    async def _route(
        self,
        coordinates: List[LatLng],
        travel_mode: Optional[TravelMode],
        warnings: List[str],
    ) -> List[LatLng]:
        if len(coordinates) < 2:
            return []
        if not self.router.configured:
            warnings.append("Map directions are unavailable: routing is not configured.")
            return []
        try:
            return await self.router.route(coordinates, ors_profile(travel_mode))
        except UpstreamUnavailableError as exc:
            logger.warning(f"Routing failed, showing markers only: {exc}")
            warnings.append("Directions could not be loaded for this trip.")
            return []

"""
Map router.
Geocodes a trip and routes through it server-side so API keys stay private.
"""
import logging

from fastapi import APIRouter, Depends

from cityguide.dependencies import get_current_user, get_planner, get_trip_repository
from cityguide.models.maps import MapView
from cityguide.services.planner import TripPlanner
from cityguide.services.trip_store import TripRepository

router = APIRouter(prefix="/trips", tags=["maps"])
logger = logging.getLogger(__name__)


@router.get("/{trip_id}/map", response_model=MapView)
async def get_trip_map(
    trip_id: str,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
    planner: TripPlanner = Depends(get_planner),
):
    """
    Markers for the starting point, destination and every place that could
    be located, plus the route between them.

    Places that could not be located are reported in ``warnings``; the route
    is empty when fewer than two points resolve or routing fails.
    """
    view = await planner.map_view(repo, current_user["id"], trip_id)
    if view.warnings:
        logger.info(f"Map for trip {trip_id} built with {len(view.warnings)} warnings")
    return view

"""Trips router - saved trips, per-place annotations, itinerary and email."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from cityguide.dependencies import get_current_user, get_planner, get_trip_repository
from cityguide.models.trips import (
    EmailOutcome,
    ItineraryResponse,
    PlaceAnnotation,
    TripResponse,
)
from cityguide.services.planner import TripPlanner
from cityguide.services.trip_store import TripRepository

router = APIRouter(prefix="/trips", tags=["trips"])


@router.get("", response_model=List[TripResponse])
async def list_trips(
    scope: str = Query("all", pattern="^(all|upcoming|past)$"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
):
    """List the current user's trips: all, upcoming (from today) or past."""
    return await repo.list_trips(current_user["id"], scope=scope, date_from=date_from, date_to=date_to)


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: str,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
):
    """Get a specific trip."""
    return await repo.get(current_user["id"], trip_id)


@router.delete("/{trip_id}", status_code=status.HTTP_200_OK)
async def delete_trip(
    trip_id: str,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
    planner: TripPlanner = Depends(get_planner),
):
    """Delete a trip."""
    await planner.delete_trip(repo, current_user["id"], trip_id)
    return {"message": "Trip deleted successfully"}


@router.patch("/{trip_id}/places/{index}", response_model=TripResponse)
async def annotate_place(
    trip_id: str,
    index: int,
    payload: PlaceAnnotation,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
    planner: TripPlanner = Depends(get_planner),
):
    """Save notes or toggle the visited flag of one place."""
    return await planner.annotate_place(repo, current_user["id"], trip_id, index, payload)


@router.get("/{trip_id}/itinerary", response_model=ItineraryResponse)
async def get_itinerary(
    trip_id: str,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
    planner: TripPlanner = Depends(get_planner),
):
    """Places grouped by day."""
    return await planner.itinerary(repo, current_user["id"], trip_id)

@router.post("/{trip_id}/email", response_model=EmailOutcome)
async def email_trip(
    trip_id: str,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
    planner: TripPlanner = Depends(get_planner),
):
    """
    Send the itinerary to the signed-in user's own address.

    The email service is called from here so its credentials never reach
    the browser.
    """
    return await planner.email_trip(repo, current_user["id"], trip_id, current_user.get("email"))

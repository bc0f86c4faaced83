"""Planning router - generate, refine and re-plan trips."""

from fastapi import APIRouter, Depends, status

from cityguide.dependencies import get_current_user, get_planner, get_trip_repository
from cityguide.models.conversation import ConversationResponse
from cityguide.models.trips import (
    PlanTripResponse,
    RefineRequest,
    RefineTripResponse,
    TripRequest,
)
from cityguide.services.planner import TripPlanner, derive_request
from cityguide.services.trip_store import TripRepository

router = APIRouter(prefix="/trips", tags=["planning"])


@router.post("/plan", response_model=PlanTripResponse, status_code=status.HTTP_201_CREATED)
async def plan_trip(
    payload: TripRequest,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
    planner: TripPlanner = Depends(get_planner),
):
    """Generate a new itinerary and save it."""
    return await planner.plan_trip(repo, current_user["id"], payload, recipient_email=current_user.get("email"))


@router.post("/{trip_id}/refine", response_model=RefineTripResponse)
async def refine_trip(
    trip_id: str,
    payload: RefineRequest,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
    planner: TripPlanner = Depends(get_planner),
):
    """
    Revise the itinerary from a follow-up instruction.

    Notes and visited flags carry over for places the new plan keeps;
    annotated places it drops are listed in ``dropped_annotated_places``.
    """
    return await planner.refine_trip(repo, current_user["id"], trip_id, payload.instruction)


@router.get("/{trip_id}/request", response_model=TripRequest)
async def get_trip_request(
    trip_id: str,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
):
    """Planning constraints of a saved trip, to pre-fill a re-plan."""
    return derive_request(await repo.get(current_user["id"], trip_id))


@router.post("/{trip_id}/replan", response_model=RefineTripResponse)
async def replan_trip(
    trip_id: str,
    payload: TripRequest,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
    planner: TripPlanner = Depends(get_planner),
):
    """Regenerate a saved trip from edited constraints."""
    return await planner.replan_trip(repo, current_user["id"], trip_id, payload)


@router.get("/{trip_id}/conversation", response_model=ConversationResponse)
async def get_conversation(
    trip_id: str,
    current_user: dict = Depends(get_current_user),
    repo: TripRepository = Depends(get_trip_repository),
    planner: TripPlanner = Depends(get_planner),
):
    """Turns exchanged with the planner for this trip since the server started."""
    turns = await planner.conversation(repo, current_user["id"], trip_id)
    return ConversationResponse(trip_id=trip_id, turns=turns)

"""Pydantic models for trip requests, suggested places and saved trips."""
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class TravelMode(str, Enum):
    """How the traveller gets around."""
    CAR = "car"
    WALK = "walk"
    PUBLIC_TRANSPORT = "public_transport"


class Interest(str, Enum):
    """Interest tags offered on the planning form."""
    HISTORICAL_PLACES = "historical_places"
    TEMPLES = "temples"
    ADVENTURE_PARKS = "adventure_parks"
    CAFES = "cafes"
    SHOPPING = "shopping"
    NATURE_PARKS = "nature_parks"
    WELLNESS_SPAS = "wellness_spas"
    ART_MUSEUMS = "art_museums"
    FOOD_LOCAL_CUISINE = "food_local_cuisine"


INTEREST_DISPLAY_NAMES: Dict[Interest, str] = {
    Interest.HISTORICAL_PLACES: "Historical Places",
    Interest.TEMPLES: "Temples",
    Interest.ADVENTURE_PARKS: "Adventure Parks",
    Interest.CAFES: "Cafes",
    Interest.SHOPPING: "Shopping",
    Interest.NATURE_PARKS: "Nature/Parks",
    Interest.WELLNESS_SPAS: "Wellness/Spas",
    Interest.ART_MUSEUMS: "Art & Museums",
    Interest.FOOD_LOCAL_CUISINE: "Food & Local Cuisine",
}


class TripRequest(BaseModel):
    """Planning constraints submitted from the planning form."""

    starting_point: Optional[str] = Field(None, description="Where the trip starts (free text)")
    destination: str = Field(..., min_length=1, description="Destination city or region (free text)")
    travel_date: date
    duration: int = Field(..., ge=1, description="Number of days")
    interests: List[Interest] = Field(..., min_length=1, description="Selected interest tags")
    preferred_travel_mode: TravelMode = TravelMode.CAR
    shortest_route_optimization: bool = False
    show_top_rated_places: bool = False
    avoid_crowded_places: bool = False
    send_email_copy: bool = False

    @field_validator("starting_point")
    @classmethod
    def _blank_starting_point(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value.strip() if value else value

    @field_validator("interests")
    @classmethod
    def _dedupe_interests(cls, value: List[Interest]) -> List[Interest]:
        # Tags form a set, keep first-seen order for stable prompts
        seen = []
        for interest in value:
            if interest not in seen:
                seen.append(interest)
        return seen


class SuggestedPlace(BaseModel):
    """One itinerary entry.

    ``name``, ``description`` and ``time_to_visit`` come from the generative
    service; ``notes`` and ``visited`` are only ever set by the user.
    """

    name: str
    description: str
    time_to_visit: Optional[str] = None
    notes: str = ""
    visited: bool = False

    @property
    def identity(self) -> tuple:
        """Key used to recognise the same place across generations."""
        return (self.name, self.description)


class PlaceAnnotation(BaseModel):
    """User edits for a single place."""
    notes: Optional[str] = None
    visited: Optional[bool] = None


class TripResponse(TripRequest):
    """Saved trip returned to clients."""

    id: str
    user_id: str
    suggested_places: List[SuggestedPlace] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    version: int = 1


class RefineRequest(BaseModel):
    """Follow-up instruction for an existing trip."""
    instruction: str = Field(..., min_length=1, description="What to change in the plan")


class EmailOutcome(BaseModel):
    """Result of mailing an itinerary."""
    sent: bool
    recipient: Optional[str] = None
    error: Optional[str] = None


class PlanTripResponse(BaseModel):
    """Response for a freshly generated trip."""
    trip: TripResponse
    email: Optional[EmailOutcome] = None


class RefineTripResponse(BaseModel):
    """Response for a refinement.

    ``dropped_annotated_places`` lists places carrying notes or a visited
    flag that the new generation no longer contains.
    """
    trip: TripResponse
    dropped_annotated_places: List[SuggestedPlace] = Field(default_factory=list)


class ItineraryDay(BaseModel):
    """Places allocated to one day."""
    day: int
    places: List[SuggestedPlace]
    visited_count: int


class ItineraryResponse(BaseModel):
    """Day-by-day view of a trip."""
    trip_id: str
    days: List[ItineraryDay]
    total_places: int
    visited_count: int

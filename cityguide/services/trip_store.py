"""Trip persistence. Every operation is scoped to the requesting owner."""

import logging
from datetime import date
from typing import List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cityguide.errors import AuthorizationError, ConcurrencyConflictError, InvalidArgumentError, TripNotFoundError
from cityguide.models.tables import Trip, utcnow
from cityguide.models.trips import SuggestedPlace, TripRequest, TripResponse
from cityguide.utils.normalizers import normalize_places

logger = logging.getLogger(__name__)

LIST_SCOPES = ("all", "upcoming", "past")

REQUEST_FIELDS = (
    "starting_point",
    "destination",
    "travel_date",
    "duration",
    "preferred_travel_mode",
    "shortest_route_optimization",
    "show_top_rated_places",
    "avoid_crowded_places",
    "send_email_copy",
)


def _dump_places(places: Sequence[SuggestedPlace]) -> List[dict]:
    return [place.model_dump() for place in places]


def _request_columns(request: TripRequest) -> dict:
    columns = {field: getattr(request, field) for field in REQUEST_FIELDS}
    columns["preferred_travel_mode"] = request.preferred_travel_mode.value
    columns["interests"] = [interest.value for interest in request.interests]
    return columns


def to_response(trip: Trip) -> TripResponse:
    """Convert a row into the API model, normalizing legacy place entries."""
    return TripResponse(
        id=trip.id,
        user_id=trip.user_id,
        starting_point=trip.starting_point,
        destination=trip.destination,
        travel_date=trip.travel_date,
        duration=trip.duration,
        interests=trip.interests or [],
        preferred_travel_mode=trip.preferred_travel_mode,
        shortest_route_optimization=trip.shortest_route_optimization,
        show_top_rated_places=trip.show_top_rated_places,
        avoid_crowded_places=trip.avoid_crowded_places,
        send_email_copy=trip.send_email_copy,
        suggested_places=normalize_places(trip.suggested_places),
        created_at=trip.created_at,
        version=trip.version,
    )


class TripRepository:
    """Owner-scoped CRUD over the ``trips`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load(self, owner_id: str, trip_id: str) -> Trip:
        trip = await self.session.get(Trip, trip_id, populate_existing=True)
        if trip is None:
            raise TripNotFoundError(f"Trip {trip_id} not found")
        if trip.user_id != owner_id:
            logger.warning(f"User {owner_id} denied access to trip {trip_id}")
            raise AuthorizationError("You do not have permission to access this trip")
        return trip

    async def create(
        self,
        owner_id: str,
        request: TripRequest,
        places: Sequence[SuggestedPlace],
    ) -> TripResponse:
        trip = Trip(
            id=str(uuid4()),
            user_id=owner_id,
            suggested_places=_dump_places(places),
            version=1,
            **_request_columns(request),
        )
        self.session.add(trip)
        await self.session.commit()
        await self.session.refresh(trip)
        logger.info(f"Created trip {trip.id} to {trip.destination} for {owner_id}")
        return to_response(trip)

    async def get(self, owner_id: str, trip_id: str) -> TripResponse:
        return to_response(await self._load(owner_id, trip_id))

    async def list_trips(
        self,
        owner_id: str,
        scope: str = "all",
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        today: Optional[date] = None,
    ) -> List[TripResponse]:
        """
        List the owner's trips.

        ``upcoming`` trips (travel date today or later) come soonest first,
        ``past`` trips most recent first, ``all`` newest created first.
        """
        if scope not in LIST_SCOPES:
            raise InvalidArgumentError(f"Unknown scope '{scope}', expected one of {LIST_SCOPES}")

        today = today or date.today()
        query = select(Trip).where(Trip.user_id == owner_id)
        if date_from is not None:
            query = query.where(Trip.travel_date >= date_from)
        if date_to is not None:
            query = query.where(Trip.travel_date <= date_to)

        if scope == "upcoming":
            query = query.where(Trip.travel_date >= today).order_by(Trip.travel_date.asc())
        elif scope == "past":
            query = query.where(Trip.travel_date < today).order_by(Trip.travel_date.desc())
        else:
            query = query.order_by(Trip.created_at.desc())

        result = await self.session.execute(query)
        return [to_response(trip) for trip in result.scalars().all()]

    async def _versioned_update(self, owner_id: str, trip_id: str, expected_version: int, values: dict) -> TripResponse:
        # Ownership and existence are checked first so the caller gets a precise error
        await self._load(owner_id, trip_id)
        result = await self.session.execute(
            update(Trip)
            .where(
                Trip.id == trip_id,
                Trip.user_id == owner_id,
                Trip.version == expected_version,
            )
            .values(version=Trip.version + 1, updated_at=utcnow(), **values)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            raise ConcurrencyConflictError()
        await self.session.commit()
        return await self.get(owner_id, trip_id)

    async def update_places(
        self,
        owner_id: str,
        trip_id: str,
        places: Sequence[SuggestedPlace],
        expected_version: int,
    ) -> TripResponse:
        """Write back the full place list if nobody wrote since ``expected_version``."""
        return await self._versioned_update(
            owner_id, trip_id, expected_version, {"suggested_places": _dump_places(places)}
        )

    async def update_request(
        self,
        owner_id: str,
        trip_id: str,
        request: TripRequest,
        places: Sequence[SuggestedPlace],
        expected_version: int,
    ) -> TripResponse:
        """Replace the planning constraints and the place list together."""
        values = _request_columns(request)
        values["suggested_places"] = _dump_places(places)
        return await self._versioned_update(owner_id, trip_id, expected_version, values)

    async def delete(self, owner_id: str, trip_id: str) -> None:
        trip = await self._load(owner_id, trip_id)
        await self.session.delete(trip)
        await self.session.commit()
        logger.info(f"Deleted trip {trip_id}")

import json
import os
from datetime import date, datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

# Must be set before cityguide is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GEOCODE_CACHE_ENABLED", "false")
os.environ.setdefault("ORS_API_KEY", "test-ors-key")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cityguide.database import Base
from cityguide.errors import AuthorizationError, ConcurrencyConflictError, TripNotFoundError
from cityguide.models import tables  # noqa: F401
from cityguide.models.trips import SuggestedPlace, TripRequest, TripResponse
from cityguide.services.trip_store import REQUEST_FIELDS, TripRepository


def make_request(**overrides) -> TripRequest:
    values = {
        "destination": "Paris",
        "travel_date": date(2030, 5, 1),
        "duration": 2,
        "interests": ["art_museums"],
    }
    values.update(overrides)
    return TripRequest(**values)


def make_places(*names: str) -> List[SuggestedPlace]:
    return [
        SuggestedPlace(name=name, description=f"About {name}", time_to_visit="2 hours")
        for name in names
    ]


def gemini_reply(places: List[SuggestedPlace]) -> str:
    return json.dumps([
        {"name": p.name, "description": p.description, "time_to_visit": p.time_to_visit or ""}
        for p in places
    ])


class FakeGeminiClient:
    """Returns queued replies; an exception in the queue is raised instead."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def generate_json(self, turns, response_schema):
        self.calls.append({"turns": list(turns), "schema": response_schema})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self):
        pass


class FakeGeocoder:
    """Geocodes from a lookup table; unknown addresses are unresolved."""

    def __init__(self, table: Dict[str, tuple], failing: tuple = ()):
        self.table = table
        self.failing = failing
        self.queries = []

    async def geocode(self, address):
        from cityguide.errors import UpstreamUnavailableError

        self.queries.append(address)
        if address in self.failing:
            raise UpstreamUnavailableError("nominatim", 503)
        return self.table.get(address)

    async def aclose(self):
        pass


class FakeRouter:
    def __init__(self, route=None, error: Optional[Exception] = None, configured: bool = True):
        self._route = route if route is not None else [(1.0, 1.0), (2.0, 2.0)]
        self.error = error
        self.configured = configured
        self.calls = []

    async def route(self, coordinates, profile):
        self.calls.append((list(coordinates), profile))
        if self.error:
            raise self.error
        return self._route

    async def aclose(self):
        pass


class FakeMailer:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent = []

    async def send_trip(self, trip, recipient):
        if self.error:
            raise self.error
        self.sent.append((trip.id, recipient))

    async def aclose(self):
        pass


class FakeTripRepository:
    """Dictionary-backed stand-in for TripRepository with the same contract."""

    def __init__(self):
        self.trips: Dict[str, TripResponse] = {}

    async def create(self, owner_id, request, places):
        trip = TripResponse(
            id=str(uuid4()),
            user_id=owner_id,
            suggested_places=list(places),
            created_at=datetime.now(timezone.utc),
            version=1,
            **request.model_dump(),
        )
        self.trips[trip.id] = trip
        return trip

    async def get(self, owner_id, trip_id):
        trip = self.trips.get(trip_id)
        if trip is None:
            raise TripNotFoundError()
        if trip.user_id != owner_id:
            raise AuthorizationError()
        return trip

    async def list_trips(self, owner_id, scope="all", date_from=None, date_to=None, today=None):
        return [trip for trip in self.trips.values() if trip.user_id == owner_id]

    async def _write(self, owner_id, trip_id, expected_version, update):
        trip = await self.get(owner_id, trip_id)
        if trip.version != expected_version:
            raise ConcurrencyConflictError()
        update["version"] = trip.version + 1
        self.trips[trip_id] = trip.model_copy(update=update)
        return self.trips[trip_id]

    async def update_places(self, owner_id, trip_id, places, expected_version):
        return await self._write(owner_id, trip_id, expected_version, {"suggested_places": list(places)})

    async def update_request(self, owner_id, trip_id, request, places, expected_version):
        update = {field: getattr(request, field) for field in REQUEST_FIELDS}
        update["interests"] = list(request.interests)
        update["suggested_places"] = list(places)
        return await self._write(owner_id, trip_id, expected_version, update)

    async def delete(self, owner_id, trip_id):
        await self.get(owner_id, trip_id)
        del self.trips[trip_id]


@pytest.fixture
async def db_session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def repo(db_session):
    return TripRepository(db_session)

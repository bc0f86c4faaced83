"""
Trip planning orchestration.

Ties the suggestion engine, conversation history, reconciliation and
persistence together. A refinement runs strictly as: append user turn ->
generate -> reconcile -> persist -> append assistant turn. If generation
fails nothing is written and the history returns to its previous state.
"""
import asyncio
import weakref
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, TypeVar

from cityguide.config import settings
from cityguide.errors import (
    CityGuideError,
    ConcurrencyConflictError,
    StaleRequestError,
    UpstreamUnavailableError,
    ValidationError,
)
from cityguide.models.conversation import ConversationTurn, Role
from cityguide.models.maps import MapView
from cityguide.models.trips import (
    EmailOutcome,
    ItineraryDay,
    ItineraryResponse,
    PlaceAnnotation,
    PlanTripResponse,
    RefineTripResponse,
    SuggestedPlace,
    TripRequest,
    TripResponse,
)
from cityguide.services.conversation import ConversationRegistry, ConversationState
from cityguide.services.day_bucketing import bucket
from cityguide.services.email_client import EmailClient
from cityguide.services.map_assembler import MapAssembler
from cityguide.services.reconciler import apply_annotation, dropped_annotated, merge
from cityguide.services.suggestion_engine import SuggestionEngine, encode_places
from cityguide.services.trip_store import REQUEST_FIELDS, TripRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A version conflict triggers one fresh read before giving up
WRITE_ATTEMPTS = 2


@dataclass
class RetryPolicy:
    """How many times to call the generative service and how long to wait between calls.

    Only transient upstream failures are retried; malformed output never is.
    """

    max_attempts: int = 1
    backoff_seconds: float = 1.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.generation_max_attempts,
            backoff_seconds=settings.generation_backoff_seconds,
        )

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await call()
            except UpstreamUnavailableError as exc:
                if not exc.transient or attempt >= self.max_attempts:
                    raise
                delay = self.backoff_seconds * attempt
                logger.warning(f"Generation attempt {attempt} failed ({exc}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                attempt += 1


def validate_request(request: TripRequest) -> None:
    """Reject requests that cannot be planned before any network call."""
    if not request.destination or not request.destination.strip():
        raise ValidationError("Please enter a destination")
    if request.duration < 1:
        raise ValidationError("Trip duration must be at least one day")
    if not request.interests:
        raise ValidationError("Select at least one interest")


def derive_request(trip: TripResponse) -> TripRequest:
    """Rebuild the planning constraints of a saved trip, for re-planning."""
    return TripRequest(
        interests=list(trip.interests),
        **{field: getattr(trip, field) for field in REQUEST_FIELDS},
    )


class TripPlanner:
    """Planning workflow shared by every request.

    Repositories are per request (one DB session each) and passed in; the
    engine, clients, conversation registry and per-trip locks are shared.
    """

    def __init__(
        self,
        engine: Optional[SuggestionEngine] = None,
        assembler: Optional[MapAssembler] = None,
        mailer: Optional[EmailClient] = None,
        conversations: Optional[ConversationRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.engine = engine or SuggestionEngine()
        self.assembler = assembler or MapAssembler()
        self.mailer = mailer or EmailClient()
        self.conversations = conversations or ConversationRegistry()
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        # Entries vanish once no request holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock(self, trip_id: str) -> asyncio.Lock:
        lock = self._locks.get(trip_id)
        if lock is None:
            lock = self._locks[trip_id] = asyncio.Lock()
        return lock

    async def _generate(
        self,
        request: TripRequest,
        history: List[ConversationTurn],
        existing: List[SuggestedPlace],
        instruction: Optional[str],
    ) -> List[SuggestedPlace]:
        return await self.retry_policy.run(
            lambda: self.engine.generate_or_refine(request, history, existing, instruction)
        )

    async def _write_places(
        self,
        repo: TripRepository,
        owner_id: str,
        trip_id: str,
        change: Callable[[TripResponse], Awaitable[TripResponse]],
    ) -> TripResponse:
        """Read-modify-write under the trip lock, re-reading once on a version conflict."""
        lock = self._lock(trip_id)
        async with lock:
            for attempt in range(1, WRITE_ATTEMPTS + 1):
                current = await repo.get(owner_id, trip_id)
                try:
                    return await change(current)
                except StaleRequestError:
                    raise
                except ConcurrencyConflictError:
                    if attempt == WRITE_ATTEMPTS:
                        raise
                    logger.info(f"Version conflict on trip {trip_id}, re-reading")
        raise ConcurrencyConflictError()

    async def plan_trip(
        self,
        repo: TripRepository,
        owner_id: str,
        request: TripRequest,
        recipient_email: Optional[str] = None,
    ) -> PlanTripResponse:
        """Generate and save a brand-new trip."""
        validate_request(request)

        prompt = self.engine.prompt_turn(request)
        places = await self._generate(request, [], [], None)
        trip = await repo.create(owner_id, request, merge([], places))

        session = self.conversations.get(owner_id, trip.id)
        session.reset()
        session.append(prompt)
        session.add(Role.ASSISTANT, encode_places(places))

        email = None
        if request.send_email_copy:
            email = await self._send_copy(trip, recipient_email)
        return PlanTripResponse(trip=trip, email=email)

    async def _send_copy(self, trip: TripResponse, recipient: Optional[str]) -> EmailOutcome:
        # A failed copy is reported but never undoes the saved trip
        if not recipient:
            return EmailOutcome(sent=False, error="No email address on your account")
        try:
            await self.mailer.send_trip(trip, recipient)
        except UpstreamUnavailableError as exc:
            logger.warning(f"Email copy for trip {trip.id} failed: {exc}")
            return EmailOutcome(sent=False, recipient=recipient, error=exc.message)
        return EmailOutcome(sent=True, recipient=recipient)

    async def _run_turn(
        self,
        session: ConversationState,
        request: TripRequest,
        existing: List[SuggestedPlace],
        instruction: Optional[str],
        fresh: bool = False,
    ):
        """Open a request on ``session`` and generate. Returns (ticket, places)."""
        ticket = session.begin_request(fresh=fresh)
        history = session.history()
        session.append(self.engine.prompt_turn(request, existing, instruction))
        try:
            places = await self._generate(request, history, existing, instruction)
        except CityGuideError:
            session.abandon_request(ticket)
            raise
        return ticket, places

    def _ensure_current(self, session: ConversationState, ticket: int, trip_id: str) -> None:
        if not session.is_current(ticket):
            logger.info(f"Discarding superseded result for trip {trip_id}")
            raise StaleRequestError()

    async def refine_trip(
        self,
        repo: TripRepository,
        owner_id: str,
        trip_id: str,
        instruction: str,
    ) -> RefineTripResponse:
        """Revise a trip's places from a follow-up instruction."""
        if not instruction or not instruction.strip():
            raise ValidationError("Tell us what to change in the plan")

        trip = await repo.get(owner_id, trip_id)
        request = derive_request(trip)
        session = self.conversations.get(owner_id, trip_id)
        ticket, places = await self._run_turn(session, request, trip.suggested_places, instruction)

        dropped: List[SuggestedPlace] = []

        async def change(current: TripResponse) -> TripResponse:
            self._ensure_current(session, ticket, trip_id)
            dropped[:] = dropped_annotated(current.suggested_places, places)
            merged = merge(current.suggested_places, places)
            return await repo.update_places(owner_id, trip_id, merged, current.version)

        try:
            saved = await self._write_places(repo, owner_id, trip_id, change)
        except CityGuideError:
            session.abandon_request(ticket)
            raise

        session.complete_request(ticket, ConversationTurn(role=Role.ASSISTANT, text=encode_places(places)))
        if dropped:
            logger.info(f"Refinement of trip {trip_id} dropped {len(dropped)} annotated places")
        return RefineTripResponse(trip=saved, dropped_annotated_places=dropped)

    async def replan_trip(
        self,
        repo: TripRepository,
        owner_id: str,
        trip_id: str,
        request: TripRequest,
    ) -> RefineTripResponse:
        """Regenerate a trip from edited constraints, keeping annotations of surviving places."""
        validate_request(request)
        await repo.get(owner_id, trip_id)

        session = self.conversations.get(owner_id, trip_id)
        # The previous history comes back if this attempt fails
        ticket, places = await self._run_turn(session, request, [], None, fresh=True)

        dropped: List[SuggestedPlace] = []

        async def change(current: TripResponse) -> TripResponse:
            self._ensure_current(session, ticket, trip_id)
            dropped[:] = dropped_annotated(current.suggested_places, places)
            merged = merge(current.suggested_places, places)
            return await repo.update_request(owner_id, trip_id, request, merged, current.version)

        try:
            saved = await self._write_places(repo, owner_id, trip_id, change)
        except CityGuideError:
            session.abandon_request(ticket)
            raise

        session.complete_request(ticket, ConversationTurn(role=Role.ASSISTANT, text=encode_places(places)))
        return RefineTripResponse(trip=saved, dropped_annotated_places=dropped)

    async def annotate_place(
        self,
        repo: TripRepository,
        owner_id: str,
        trip_id: str,
        index: int,
        annotation: PlaceAnnotation,
    ) -> TripResponse:
        """Update notes and/or the visited flag of one place."""
        if annotation.notes is None and annotation.visited is None:
            raise ValidationError("Nothing to update")

        async def change(current: TripResponse) -> TripResponse:
            places = apply_annotation(
                current.suggested_places,
                index,
                notes=annotation.notes,
                visited=annotation.visited,
            )
            return await repo.update_places(owner_id, trip_id, places, current.version)

        return await self._write_places(repo, owner_id, trip_id, change)

    async def itinerary(self, repo: TripRepository, owner_id: str, trip_id: str) -> ItineraryResponse:
        """Day-by-day view with visited progress."""
        trip = await repo.get(owner_id, trip_id)
        days = [
            ItineraryDay(
                day=number,
                places=places,
                visited_count=sum(1 for place in places if place.visited),
            )
            for number, places in enumerate(bucket(trip.suggested_places, trip.duration), start=1)
        ]
        return ItineraryResponse(
            trip_id=trip.id,
            days=days,
            total_places=len(trip.suggested_places),
            visited_count=sum(day.visited_count for day in days),
        )

    async def map_view(self, repo: TripRepository, owner_id: str, trip_id: str) -> MapView:
        trip = await repo.get(owner_id, trip_id)
        return await self.assembler.assemble(
            trip.destination,
            trip.suggested_places,
            travel_mode=trip.preferred_travel_mode,
            starting_point=trip.starting_point,
        )

    async def email_trip(
        self,
        repo: TripRepository,
        owner_id: str,
        trip_id: str,
        recipient: Optional[str],
    ) -> EmailOutcome:
        """Mail a saved trip. Upstream failures propagate to the caller."""
        if not recipient:
            raise ValidationError("No email address to send the trip to")
        trip = await repo.get(owner_id, trip_id)
        await self.mailer.send_trip(trip, recipient)
        return EmailOutcome(sent=True, recipient=recipient)

    async def conversation(self, repo: TripRepository, owner_id: str, trip_id: str) -> List[ConversationTurn]:
        await repo.get(owner_id, trip_id)
        session = self.conversations.peek(owner_id, trip_id)
        return session.history() if session else []

    async def delete_trip(self, repo: TripRepository, owner_id: str, trip_id: str) -> None:
        await repo.delete(owner_id, trip_id)
        self.conversations.discard(owner_id, trip_id)
        self._locks.pop(trip_id, None)

    async def aclose(self) -> None:
        for client in (self.engine.client, self.assembler.geocoder, self.assembler.router, self.mailer):
            await client.aclose()

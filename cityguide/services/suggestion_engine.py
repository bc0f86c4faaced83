"""
Place suggestion engine.

Turns a trip request (and, for refinements, the conversation so far plus the
current place list) into a validated list of suggested places. A response
that does not match the expected shape is rejected as a whole.
"""
import json
import logging
import re
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, StrictStr, TypeAdapter
import pydantic

from cityguide.errors import MalformedGenerationError
from cityguide.models.conversation import ConversationTurn, Role
from cityguide.models.trips import SuggestedPlace, TripRequest
from cityguide.services.gemini_client import GeminiClient
from cityguide.utils.normalizers import display_label, interest_names

logger = logging.getLogger(__name__)

PLACES_RESPONSE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "name": {"type": "STRING"},
            "description": {"type": "STRING"},
            "time_to_visit": {"type": "STRING"},
        },
        "required": ["name", "description", "time_to_visit"],
        "propertyOrdering": ["name", "description", "time_to_visit"],
    },
}

DEFAULT_INSTRUCTION = "Create a complete itinerary for this trip."


class GeneratedPlace(BaseModel):
    """Shape every element of the model output must have."""

    model_config = ConfigDict(strict=True)

    name: StrictStr = Field(..., min_length=1)
    description: StrictStr = Field(..., min_length=1)
    time_to_visit: StrictStr


_generated_places = TypeAdapter(List[GeneratedPlace])

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def _directive(flag: bool, on: str, off: str) -> str:
    return on if flag else off


def build_prompt(
    request: TripRequest,
    existing_places: Sequence[SuggestedPlace] = (),
    instruction: Optional[str] = None,
) -> str:
    """Render the request, current places and latest instruction as one block."""
    lines = [
        "You are a travel planner for a smart city tourist guide.",
        f"Destination: {request.destination}",
    ]
    if request.starting_point:
        lines.append(f"Starting point: {request.starting_point}")
    lines.extend([
        f"Travel date: {request.travel_date.isoformat()}",
        f"Duration: {int(request.duration)} days",
        f"Interests: {', '.join(interest_names(request.interests))}",
        f"Preferred travel mode: {display_label(request.preferred_travel_mode)}",
        "Planning preferences:",
        "- " + _directive(
            request.shortest_route_optimization,
            "order the places to keep the total route as short as possible",
            "route length does not need to be optimized",
        ),
        "- " + _directive(
            request.show_top_rated_places,
            "prioritize top-rated places",
            "do not prioritize top-rated places",
        ),
        "- " + _directive(
            request.avoid_crowded_places,
            "avoid crowded places",
            "crowded places are acceptable",
        ),
    ])

    if existing_places:
        lines.append("Current itinerary places:")
        lines.extend(f"- {place.name}" for place in existing_places)

    lines.append(f"Request: {instruction or DEFAULT_INSTRUCTION}")
    lines.append(
        "Suggest enough places to fill every day of the trip, in visiting order. "
        "Answer only with a JSON array of objects with the string fields "
        "\"name\", \"description\" and \"time_to_visit\" (for example \"2 hours\")."
    )
    return "\n".join(lines)


def decode_places(raw: str) -> List[SuggestedPlace]:
    """
    Strictly decode the model output.

    Raises:
        MalformedGenerationError: On invalid JSON, a non-array payload, an empty
            array, or any element missing a field or carrying a wrong type
    """
    text = _FENCE.sub("", raw.strip())
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedGenerationError(f"Generated plan is not valid JSON: {exc.msg}") from exc

    if not isinstance(payload, list):
        raise MalformedGenerationError("Generated plan is not a JSON array")
    if not payload:
        raise MalformedGenerationError("Generated plan contains no places")

    try:
        generated = _generated_places.validate_python(payload)
    except pydantic.ValidationError as exc:
        raise MalformedGenerationError(
            f"Generated plan has {exc.error_count()} invalid field(s)"
        ) from exc

    return [
        SuggestedPlace(
            name=place.name,
            description=place.description,
            time_to_visit=place.time_to_visit,
        )
        for place in generated
    ]


def encode_places(places: Sequence[SuggestedPlace]) -> str:
    """Serialize places the way the model returns them, for the assistant turn."""
    return json.dumps(
        [place.model_dump(include={"name", "description", "time_to_visit"}) for place in places]
    )


class SuggestionEngine:
    """Produces and refines place lists through the generative service.

    The engine never retries and never persists anything.
    """

    def __init__(self, client: Optional[GeminiClient] = None):
        self.client = client or GeminiClient()

    def prompt_turn(
        self,
        request: TripRequest,
        existing_places: Sequence[SuggestedPlace] = (),
        instruction: Optional[str] = None,
    ) -> ConversationTurn:
        return ConversationTurn(
            role=Role.USER,
            text=build_prompt(request, existing_places, instruction),
        )

    async def generate_or_refine(
        self,
        request: TripRequest,
        history: Sequence[ConversationTurn],
        existing_places: Sequence[SuggestedPlace] = (),
        instruction: Optional[str] = None,
    ) -> List[SuggestedPlace]:
        """
        Ask for a new place list.

        Args:
            request: Planning constraints
            history: Prior turns, replayed in full; not modified
            existing_places: Current itinerary, empty for a first generation
            instruction: Latest user instruction

        Returns:
            Places with empty notes and ``visited=False``

        Raises:
            MalformedGenerationError: Output failed validation
            UpstreamUnavailableError: The service could not be reached
        """
        turns = list(history)
        turns.append(self.prompt_turn(request, existing_places, instruction))

        raw = await self.client.generate_json(turns, PLACES_RESPONSE_SCHEMA)
        places = decode_places(raw)
        logger.info(f"Generated {len(places)} places for {request.destination}")
        return places

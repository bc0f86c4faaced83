import json

import pytest

from conftest import FakeGeminiClient, gemini_reply, make_places, make_request
from cityguide.errors import MalformedGenerationError, UpstreamUnavailableError
from cityguide.models.conversation import ConversationTurn, Role
from cityguide.models.trips import TravelMode
from cityguide.services.suggestion_engine import (
    PLACES_RESPONSE_SCHEMA,
    SuggestionEngine,
    build_prompt,
    decode_places,
    encode_places,
)


class TestBuildPrompt:
    def test_includes_trip_constraints(self):
        request = make_request(
            starting_point="Lyon",
            interests=["art_museums", "cafes"],
            preferred_travel_mode=TravelMode.PUBLIC_TRANSPORT,
        )
        prompt = build_prompt(request)
        assert "Destination: Paris" in prompt
        assert "Starting point: Lyon" in prompt
        assert "Duration: 2 days" in prompt
        assert "Art & Museums, Cafes" in prompt
        assert "public transport" in prompt
        assert "Request: Create a complete itinerary for this trip." in prompt
        assert "Current itinerary places:" not in prompt

    def test_boolean_preferences_become_directives(self):
        on = build_prompt(make_request(show_top_rated_places=True, avoid_crowded_places=True))
        off = build_prompt(make_request())
        assert "- prioritize top-rated places" in on
        assert "- avoid crowded places" in on
        assert "do not prioritize top-rated places" in off
        assert "crowded places are acceptable" in off

    def test_refinement_lists_current_places_and_instruction(self):
        prompt = build_prompt(make_request(), make_places("Louvre", "Orsay"), "Add a cafe")
        assert "Current itinerary places:\n- Louvre\n- Orsay" in prompt
        assert prompt.count("Request: Add a cafe") == 1


class TestDecodePlaces:
    def test_valid_array(self):
        raw = '[{"name": "Louvre", "description": "Museum", "time_to_visit": "3 hours"}]'
        places = decode_places(raw)
        assert places[0].name == "Louvre"
        assert places[0].notes == ""
        assert places[0].visited is False

    def test_code_fences_are_stripped(self):
        raw = '```json\n[{"name": "A", "description": "B", "time_to_visit": "1 hour"}]\n```'
        assert decode_places(raw)[0].name == "A"

    @pytest.mark.parametrize("raw", [
        "not json",
        '{"name": "A"}',
        "[]",
        '[{"name": "A", "description": "B"}]',
        '[{"name": "A", "description": "B", "time_to_visit": 2}]',
        '[{"name": "", "description": "B", "time_to_visit": "1 hour"}]',
        '[{"name": "A", "description": "B", "time_to_visit": "1 hour"}, "Louvre"]',
    ])
    def test_rejects_malformed_output(self, raw):
        with pytest.raises(MalformedGenerationError):
            decode_places(raw)

    def test_encode_drops_user_fields(self):
        places = make_places("A")
        places[0] = places[0].model_copy(update={"notes": "private", "visited": True})
        assert json.loads(encode_places(places)) == [
            {"name": "A", "description": "About A", "time_to_visit": "2 hours"}
        ]


class TestSuggestionEngine:
    async def test_generate_sends_history_plus_prompt(self):
        client = FakeGeminiClient(gemini_reply(make_places("Louvre", "Orsay")))
        engine = SuggestionEngine(client)
        history = [
            ConversationTurn(role=Role.USER, text="first prompt"),
            ConversationTurn(role=Role.ASSISTANT, text="[]"),
        ]

        places = await engine.generate_or_refine(make_request(), history, make_places("Louvre"), "More art")

        assert [p.name for p in places] == ["Louvre", "Orsay"]
        turns = client.calls[0]["turns"]
        assert [t.role for t in turns] == [Role.USER, Role.ASSISTANT, Role.USER]
        assert "Request: More art" in turns[-1].text
        assert client.calls[0]["schema"] is PLACES_RESPONSE_SCHEMA
        assert len(history) == 2

    async def test_malformed_reply_raises(self):
        engine = SuggestionEngine(FakeGeminiClient("[]"))
        with pytest.raises(MalformedGenerationError):
            await engine.generate_or_refine(make_request(), [])

    async def test_upstream_error_propagates(self):
        engine = SuggestionEngine(FakeGeminiClient(UpstreamUnavailableError("gemini", 503)))
        with pytest.raises(UpstreamUnavailableError):
            await engine.generate_or_refine(make_request(), [])

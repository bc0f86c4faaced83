import json
from datetime import date

import httpx
import pytest

from cityguide.errors import UpstreamUnavailableError
from cityguide.models.trips import SuggestedPlace, TripResponse
from cityguide.services.email_client import EmailClient, email_subject, render_trip_html


def make_trip(places=None):
    return TripResponse(
        id="trip-1",
        user_id="user-1",
        destination="Paris <France>",
        travel_date=date(2030, 5, 1),
        duration=2,
        interests=["art_museums", "cafes"],
        preferred_travel_mode="public_transport",
        suggested_places=places if places is not None else [
            SuggestedPlace(
                name="Louvre",
                description="Art & history",
                time_to_visit="3 hours",
                notes="<b>bring snacks</b>",
            ),
            SuggestedPlace(name="Cafe", description="Coffee"),
        ],
    )


def test_html_escapes_user_text():
    body = render_trip_html(make_trip())
    assert "Paris &lt;France&gt;" in body
    assert "&lt;b&gt;bring snacks&lt;/b&gt;" in body
    assert "<b>bring snacks</b>" not in body
    assert "Art &amp; history" in body
    assert "Time to visit: 3 hours" in body
    assert "public transport" in body
    assert body.count("Your Notes:") == 1


def test_html_without_places():
    assert "No suggested places for this trip." in render_trip_html(make_trip(places=[]))


def make_client(handler, api_key="sg-key"):
    return EmailClient(
        api_key=api_key,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        base_url="https://sendgrid.test",
    )


async def test_send_posts_rendered_email():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(202)

    trip = make_trip()
    await make_client(handler).send_trip(trip, "traveller@example.com")

    assert seen["path"] == "/v3/mail/send"
    assert seen["auth"] == "Bearer sg-key"
    body = seen["body"]
    assert body["personalizations"] == [{"to": [{"email": "traveller@example.com"}]}]
    assert body["subject"] == email_subject(trip)
    assert body["content"][0]["type"] == "text/html"


async def test_send_failure_raises():
    with pytest.raises(UpstreamUnavailableError) as excinfo:
        await make_client(lambda request: httpx.Response(401)).send_trip(make_trip(), "a@example.com")
    assert excinfo.value.service == "sendgrid"


async def test_missing_key_raises():
    with pytest.raises(UpstreamUnavailableError):
        await make_client(lambda request: httpx.Response(202), api_key="").send_trip(make_trip(), "a@example.com")

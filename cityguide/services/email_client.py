"""Transactional email relay (SendGrid) for itinerary copies."""
import html
import logging
from typing import Optional

import httpx

from cityguide.config import settings
from cityguide.errors import UpstreamUnavailableError
from cityguide.models.trips import TripResponse
from cityguide.utils.normalizers import display_label, interest_names

logger = logging.getLogger(__name__)


def email_subject(trip: TripResponse) -> str:
    return f"Your Smart City Tourist Guide Plan for {trip.destination}"


def render_trip_html(trip: TripResponse) -> str:
    """Render the itinerary as an HTML email body. All user text is escaped."""
    esc = html.escape
    mode = display_label(trip.preferred_travel_mode) or "Not specified"
    parts = [
        '<div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">',
        f'<h2 style="color: #1E3A8A;">Your Trip Plan for {esc(trip.destination)}</h2>',
        f"<p><strong>Travel Date:</strong> {trip.travel_date.isoformat()}</p>",
        f"<p><strong>Duration:</strong> {trip.duration} days</p>",
        f"<p><strong>Interests:</strong> {esc(', '.join(interest_names(trip.interests)))}</p>",
        f"<p><strong>Preferred Travel Mode:</strong> {esc(mode)}</p>",
        '<h3 style="color: #2563EB;">Suggested Places:</h3>',
        '<ul style="list-style: none; padding: 0;">',
    ]

    if trip.suggested_places:
        for index, place in enumerate(trip.suggested_places, start=1):
            item = [
                '<li style="margin-bottom: 15px; padding: 10px; border: 1px solid #ddd; border-radius: 8px;">',
                f'<strong style="color: #1F2937;">{index}. {esc(place.name)}</strong>',
                f'<p style="margin-top: 5px; color: #4B5563;">{esc(place.description)}</p>',
            ]
            if place.time_to_visit:
                item.append(f'<p style="font-size: 0.9em; color: #666;">Time to visit: {esc(place.time_to_visit)}</p>')
            if place.notes:
                item.append(f'<p style="font-size: 0.9em; color: #666; font-style: italic;">Your Notes: {esc(place.notes)}</p>')
            item.append("</li>")
            parts.extend(item)
    else:
        parts.append("<li>No suggested places for this trip.</li>")

    parts.extend([
        "</ul>",
        '<p style="margin-top: 20px; font-size: 0.9em; color: #777;">',
        "This email was sent from your Smart City Tourist Guide.",
        "</p>",
        "</div>",
    ])
    return "\n".join(parts)


class EmailClient:
    """Sends itinerary emails through SendGrid."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.sendgrid_api_key
        self.base_url = (base_url or settings.sendgrid_url).rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=15.0)

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def send_trip(self, trip: TripResponse, recipient: str) -> None:
        """
        Mail the rendered itinerary to ``recipient``.

        Raises:
            UpstreamUnavailableError: Missing key, non-2xx status or transport failure
        """
        if not self.api_key:
            raise UpstreamUnavailableError("sendgrid", message="Email API key is not configured")

        payload = {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": {"email": settings.email_sender, "name": settings.email_sender_name},
            "subject": email_subject(trip),
            "content": [{"type": "text/html", "value": render_trip_html(trip)}],
        }
        logger.info(f"Sending itinerary for trip {trip.id}")

        try:
            response = await self.http_client.post(
                f"{self.base_url}/v3/mail/send",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(f"SendGrid HTTP error: {exc.response.status_code} - {exc.response.text[:500]}")
            raise UpstreamUnavailableError("sendgrid", exc.response.status_code, "Failed to send email") from exc
        except httpx.RequestError as exc:
            logger.error(f"SendGrid request error: {exc}")
            raise UpstreamUnavailableError("sendgrid", message=f"Failed to reach email service: {exc}") from exc

        logger.info(f"Itinerary for trip {trip.id} sent")

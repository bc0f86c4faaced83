"""
Client for the Gemini generative language API.
Sends the conversation turns and asks for schema-constrained JSON output.
"""

from typing import Any, Dict, List, Optional, Sequence
import logging

import httpx

from cityguide.config import settings
from cityguide.errors import MalformedGenerationError, UpstreamUnavailableError
from cityguide.models.conversation import ConversationTurn, Role

logger = logging.getLogger(__name__)

# Gemini names the assistant side "model"
ROLE_NAMES = {Role.USER: "user", Role.ASSISTANT: "model"}


class GeminiClient:
    """Thin async wrapper around ``models/{model}:generateContent``."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.gemini_timeout)

    async def aclose(self) -> None:
        await self.http_client.aclose()

    def _build_payload(
        self,
        turns: Sequence[ConversationTurn],
        response_schema: Dict[str, Any],
    ) -> Dict[str, Any]:
        return {
            "contents": [
                {"role": ROLE_NAMES[turn.role], "parts": [{"text": turn.text}]}
                for turn in turns
            ],
            "generationConfig": {
                "temperature": settings.gemini_temperature,
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            },
        }

    async def generate_json(
        self,
        turns: Sequence[ConversationTurn],
        response_schema: Dict[str, Any],
    ) -> str:
        """
        Run one generation and return the raw JSON text of the first candidate.

        Raises:
            UpstreamUnavailableError: Non-2xx status, transport failure or missing key
            MalformedGenerationError: The response carries no text candidate
        """
        if not self.api_key:
            raise UpstreamUnavailableError("gemini", message="Gemini API key is not configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        logger.info(f"Requesting generation from {self.model} with {len(turns)} turns")

        try:
            response = await self.http_client.post(
                url,
                params={"key": self.api_key},
                json=self._build_payload(turns, response_schema),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(f"Gemini HTTP error: {exc.response.status_code} - {exc.response.text[:500]}")
            raise UpstreamUnavailableError("gemini", exc.response.status_code) from exc
        except httpx.RequestError as exc:
            logger.error(f"Gemini request error: {exc}")
            raise UpstreamUnavailableError("gemini", message=f"Failed to reach Gemini: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedGenerationError("Gemini returned a non-JSON envelope") from exc
        return self._extract_text(data)

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        candidates: List[Dict[str, Any]] = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback", {})
            raise MalformedGenerationError(f"Gemini returned no candidates: {feedback}")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not text.strip():
            raise MalformedGenerationError("Gemini returned an empty candidate")
        return text

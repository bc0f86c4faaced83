"""Typed errors raised by the planning core.

Components fail fast with these; ``main.py`` maps them onto HTTP responses.
"""
from typing import Optional


class CityGuideError(Exception):
    """Base class for every error raised by the planning core."""

    message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(CityGuideError):
    """User input is incomplete or invalid. No network call was attempted."""

    message = "Invalid trip request"


class InvalidArgumentError(CityGuideError):
    """A component was called outside its contract."""

    message = "Invalid argument"


class IndexOutOfRangeError(CityGuideError):
    """A place index does not exist in the itinerary."""

    message = "Place index out of range"


class MalformedGenerationError(CityGuideError):
    """The generative service returned something that is not a valid plan."""

    message = "The generated plan could not be parsed"


class UpstreamUnavailableError(CityGuideError):
    """An external service answered with a non-2xx status or was unreachable."""

    message = "Upstream service unavailable"

    def __init__(self, service: str, status_code: Optional[int] = None, message: Optional[str] = None):
        detail = message or f"{service} request failed"
        if status_code is not None:
            detail = f"{detail} (status {status_code})"
        super().__init__(detail)
        self.service = service
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        """5xx answers and transport failures may succeed when retried."""
        return self.status_code is None or self.status_code >= 500


class AuthorizationError(CityGuideError):
    """The trip belongs to another user."""

    message = "Access denied"


class TripNotFoundError(CityGuideError):
    """No trip with the requested identifier exists."""

    message = "Trip not found"


class ConcurrencyConflictError(CityGuideError):
    """The trip was written by someone else since it was read."""

    message = "The trip was modified concurrently, please retry"


class StaleRequestError(ConcurrencyConflictError):
    """A newer request for the same trip superseded this one."""

    message = "A newer request for this trip is in progress"


class DestinationUnresolvedError(CityGuideError):
    """The trip destination could not be geocoded, so there is no map."""

    message = "Could not find coordinates for the main destination"

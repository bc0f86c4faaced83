"""
Split a flat place list into per-day groups for the itinerary view.

This is a count-based split: every day receives ``ceil(len(places) / days)``
places until the list runs out, so trailing days may be short or empty.
Opening hours, travel time and ``time_to_visit`` are not considered.
"""
import math
from typing import List, Sequence

from cityguide.errors import InvalidArgumentError
from cityguide.models.trips import SuggestedPlace


def bucket(places: Sequence[SuggestedPlace], days: int) -> List[List[SuggestedPlace]]:
    """
    Partition ``places`` into exactly ``days`` ordered buckets.

    Args:
        places: Itinerary entries in display order
        days: Number of trip days, must be positive

    Returns:
        ``days`` lists whose concatenation equals ``places``

    Raises:
        InvalidArgumentError: If ``days`` is not a positive integer
    """
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise InvalidArgumentError(f"days must be a positive integer, got {days!r}")

    buckets: List[List[SuggestedPlace]] = [[] for _ in range(days)]
    if not places:
        return buckets

    per_day = math.ceil(len(places) / days)
    for day in range(days):
        start = day * per_day
        buckets[day] = list(places[start:start + per_day])
    return buckets

"""
Itinerary reconciliation.

Merges a fresh generation into the stored place list so that user notes and
visited flags survive refinement, and applies single-place annotations.
Both functions are pure: they return new lists and never mutate their inputs.
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from cityguide.errors import IndexOutOfRangeError
from cityguide.models.trips import SuggestedPlace

logger = logging.getLogger(__name__)


def merge(
    stored_places: Sequence[SuggestedPlace],
    fresh_places: Sequence[SuggestedPlace],
) -> List[SuggestedPlace]:
    """
    Carry annotations from ``stored_places`` onto ``fresh_places``.

    A fresh place inherits ``notes`` and ``visited`` from the stored place with
    the same (name, description); otherwise it starts with empty notes and
    ``visited=False``. Ordering follows ``fresh_places``. Stored places the new
    generation no longer contains are discarded.
    """
    annotations: Dict[Tuple[str, str], SuggestedPlace] = {}
    for place in stored_places:
        # First occurrence wins when the same place was stored twice
        annotations.setdefault(place.identity, place)

    merged = []
    for place in fresh_places:
        previous = annotations.get(place.identity)
        merged.append(
            place.model_copy(
                update={
                    "notes": previous.notes if previous else "",
                    "visited": previous.visited if previous else False,
                }
            )
        )
    return merged


def dropped_annotated(
    stored_places: Sequence[SuggestedPlace],
    fresh_places: Sequence[SuggestedPlace],
) -> List[SuggestedPlace]:
    """Stored places with notes or a visited flag that ``merge`` would discard."""
    kept = {place.identity for place in fresh_places}
    return [
        place
        for place in stored_places
        if place.identity not in kept and (place.notes or place.visited)
    ]


def apply_annotation(
    places: Sequence[SuggestedPlace],
    index: int,
    notes: Optional[str] = None,
    visited: Optional[bool] = None,
) -> List[SuggestedPlace]:
    """
    Replace the place at ``index`` with a copy carrying the given edits.

    Raises:
        IndexOutOfRangeError: If ``index`` does not address an existing place
    """
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(places):
        raise IndexOutOfRangeError(f"No place at index {index} (itinerary has {len(places)})")

    update = {}
    if notes is not None:
        update["notes"] = notes
    if visited is not None:
        update["visited"] = visited

    updated = list(places)
    updated[index] = places[index].model_copy(update=update)
    logger.debug(f"Annotated place {index}: {sorted(update)}")
    return updated

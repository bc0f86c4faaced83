"""
Data normalizers to ensure consistent data structure across the application.
Stored place lists may predate the notes/visited fields, and identifiers are
shown to people (and to the generative model) in a readable form.
"""

from typing import Any, Dict, Iterable, List, Optional, Union

from cityguide.models.trips import INTEREST_DISPLAY_NAMES, Interest


def display_label(identifier: Union[str, Interest, None]) -> str:
    """
    Render a stored identifier for humans, e.g. ``public_transport`` ->
    ``public transport``. The stored value itself is left untouched.
    """
    if identifier is None:
        return ""
    value = identifier.value if hasattr(identifier, "value") else str(identifier)
    return value.replace("_", " ")


def interest_names(interests: Iterable[Union[str, Interest]]) -> List[str]:
    """Display names for interest tags, falling back to the spaced identifier."""
    names = []
    for interest in interests:
        try:
            names.append(INTEREST_DISPLAY_NAMES[Interest(interest)])
        except ValueError:
            names.append(display_label(interest))
    return names


def normalize_place(raw_place: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Normalize a stored place dictionary.

    Guarantees the keys ``name``, ``description``, ``time_to_visit``,
    ``notes`` (default "") and ``visited`` (default False). Entries without a
    name are dropped by returning None.
    """
    if not raw_place or not raw_place.get("name"):
        return None

    return {
        "name": str(raw_place["name"]),
        "description": str(raw_place.get("description") or ""),
        "time_to_visit": raw_place.get("time_to_visit"),
        "notes": raw_place.get("notes") or "",
        "visited": bool(raw_place.get("visited", False)),
    }


def normalize_places(raw_places: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Normalize a list of stored places, skipping unusable entries."""
    if not raw_places:
        return []
    normalized = (normalize_place(place) for place in raw_places)
    return [place for place in normalized if place is not None]

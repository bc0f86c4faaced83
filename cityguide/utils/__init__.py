"""Utility functions for the backend."""

from cityguide.utils.normalizers import (
    display_label,
    interest_names,
    normalize_place,
    normalize_places,
)

__all__ = ["display_label", "interest_names", "normalize_place", "normalize_places"]

"""Pydantic models for the map view."""
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

# (latitude, longitude)
LatLng = Tuple[float, float]


class MapMarker(BaseModel):
    """A geocoded point with its popup label."""
    position: LatLng
    label: str
    kind: str = Field("place", description="starting_point, destination or place")


class MapView(BaseModel):
    """Markers, route and non-fatal warnings for a trip map."""
    markers: List[MapMarker]
    route: List[LatLng] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    center: Optional[LatLng] = None

"""Data models for stored locations.

This module defines the application-level shapes of the single entity the
service stores. Coordinates are always expressed as a (lat, lng) pair here;
the longitude-first axis order of the wire formats is handled exclusively by
routemate.utils.geometry.

Example:
    Creating a Location as the repository returns it:
        >>> from routemate.db.models import Coordinates, Location
        >>> location = Location(
        ...     id=1,
        ...     name="Algonquin College",
        ...     coordinates=Coordinates(lat=45.4215, lng=-75.6972),
        ...     created_at=datetime.datetime.now(datetime.UTC),
        ... )
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Any, NamedTuple


class Coordinates(NamedTuple):
    """A WGS84 position in geographic (lat, lng) order."""

    lat: float
    lng: float


class BoundingBox(NamedTuple):
    """Axis-aligned rectangle in decimal degrees, bounds inclusive."""

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def contains(self, point: Coordinates) -> bool:
        return (
            self.min_lat <= point.lat <= self.max_lat
            and self.min_lng <= point.lng <= self.max_lng
        )


@dataclasses.dataclass(frozen=True)
class LocationDraft:
    """A validated location that has not been written yet."""

    name: str
    coordinates: Coordinates


@dataclasses.dataclass
class Location:
    """A stored, geo-tagged point.

    Attributes:
        id: Identifier assigned by the store; never reused.
        name: Non-empty label.
        coordinates: Decoded position.
        created_at: Timestamp assigned by the store.
        distance_meters: Distance from the query center, set only on
            nearby search results.
    """

    id: int
    name: str
    coordinates: Coordinates
    created_at: datetime.datetime | None
    distance_meters: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape exposed by the API."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "coordinates": self.coordinates._asdict(),
            "created_at": (
                self.created_at.isoformat()
                if self.created_at is not None
                else None
            ),
        }
        if self.distance_meters is not None:
            result["distance_meters"] = self.distance_meters
        return result

"""Input validation shared by the location repository and bulk import.

Values arrive either from JSON bodies (already numbers) or from query
strings (text), so coordinate parsers accept both and reject everything
else, including booleans and non-finite numbers.
"""

from __future__ import annotations

import math

from routemate.core import errors
from routemate.db import models as db_models
from routemate.utils import geometry

REQUIRED_FIELDS_MESSAGE = "Name, latitude, and longitude are required"


def is_blank(value: object) -> bool:
    """Whether a value counts as absent: None or whitespace-only text."""
    return value is None or (isinstance(value, str) and not value.strip())


def require_id(location_id: str | None) -> str:
    if is_blank(location_id):
        raise errors.ValidationError("Location ID is required")
    return str(location_id).strip()


def require_name(name: object) -> str:
    if not isinstance(name, str) or not name.strip():
        raise errors.ValidationError("Name must be a non-empty string")
    return name


def parse_number(value: object, field: str) -> float:
    """Coerce a JSON number or numeric text into a finite float.

    Raises:
        ValidationError: If the value is not numeric.
    """
    if isinstance(value, bool):
        raise errors.ValidationError(f"{field} must be a number")
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise errors.ValidationError(f"{field} must be a number") from None
    else:
        raise errors.ValidationError(f"{field} must be a number")
    if not math.isfinite(number):
        raise errors.ValidationError(f"{field} must be a finite number")
    return number


def check_latitude(lat: float, strict: bool) -> float:
    if strict and not -90.0 <= lat <= 90.0:
        raise errors.ValidationError(
            "Latitude must be between -90 and 90 degrees"
        )
    return lat


def check_longitude(lng: float, strict: bool) -> float:
    if strict and not -180.0 <= lng <= 180.0:
        raise errors.ValidationError(
            "Longitude must be between -180 and 180 degrees"
        )
    return lng


def parse_coordinates(
    lat: object,
    lng: object,
    strict: bool = False,
) -> db_models.Coordinates:
    """Validate a latitude/longitude pair.

    Args:
        lat: Latitude as number or text.
        lng: Longitude as number or text.
        strict: Enforce the WGS84 ranges.

    Returns:
        The pair as Coordinates.

    Raises:
        ValidationError: If either value is not numeric, or is out of range
            in strict mode.
    """
    return db_models.Coordinates(
        lat=check_latitude(parse_number(lat, "lat"), strict),
        lng=check_longitude(parse_number(lng, "lng"), strict),
    )


def parse_radius(value: object) -> int:
    """Validate a search radius in whole meters.

    Raises:
        ValidationError: If the radius is not a non-negative integer.
    """
    if isinstance(value, bool):
        raise errors.ValidationError("radius must be an integer")
    if isinstance(value, int):
        radius = value
    elif isinstance(value, float) and value.is_integer():
        radius = int(value)
    elif isinstance(value, str):
        try:
            radius = int(value.strip())
        except ValueError:
            raise errors.ValidationError("radius must be an integer") from None
    else:
        raise errors.ValidationError("radius must be an integer")
    if radius < 0:
        raise errors.ValidationError("radius must not be negative")
    return radius


def build_draft(
    name: object,
    lat: object,
    lng: object,
    strict: bool = False,
) -> db_models.LocationDraft:
    """Validate the fields of a full location record.

    Raises:
        ValidationError: If a field is missing or malformed.
    """
    if is_blank(name) or lat is None or lng is None:
        raise errors.ValidationError(REQUIRED_FIELDS_MESSAGE)
    return db_models.LocationDraft(
        name=require_name(name),
        coordinates=parse_coordinates(lat, lng, strict),
    )


def to_store_row(draft: db_models.LocationDraft) -> dict[str, str]:
    """Shape a draft as the store's insert row."""
    return {
        "name": draft.name,
        "coordinates": geometry.encode(draft.coordinates),
    }

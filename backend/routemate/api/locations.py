"""Location CRUD and spatial search API endpoints.

This module maps HTTP verbs and paths onto LocationRepository operations.
Handlers stay thin: input validation, error mapping and geometry decoding
all live in the repository, and failures reach callers through the
exception handlers in routemate.core.errors.

Handlers are plain functions, so FastAPI runs them in its threadpool and a
database round trip never blocks the event loop.

Example:
    Add a location and search around it:
        >>> response = client.post(
        ...     "/api/locations",
        ...     json={"name": "Algonquin College", "lat": 45.4215,
        ...           "lng": -75.6972},
        ... )
        >>> # Returns 201: {"message": "Location added successfully",
        >>> #               "location": {"id": 1, "coordinates": {...}, ...}}

        >>> response = client.get(
        ...     "/api/locations/nearby",
        ...     params={"lat": 45.4215, "lng": -75.6972, "radius": 100},
        ... )
        >>> # Returns: {"data": [...], "query": {"center": {...},
        >>> #           "radius_meters": 100, "count": 1}}
"""

from typing import Any

import fastapi
import pydantic
from starlette import status

from routemate.core import config
from routemate.services import bulk_import, locations

router = fastapi.APIRouter(prefix="/api/locations", tags=["locations"])


class LocationPayload(pydantic.BaseModel):
    """Body of create, replace and partial update requests.

    Coordinates are left untyped so the repository alone decides what
    counts as a number; booleans and numeric text are handled there.
    """

    name: str | None = None
    lat: Any = None
    lng: Any = None


class BulkImportPayload(pydantic.BaseModel):
    """Body of bulk import requests; records are validated by the importer."""

    locations: Any = None


def _get_repo(
    request: fastapi.Request,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> locations.LocationRepository:
    """Resolve the location repository dependency.

    Wraps the process-wide store created by the application factory.

    Args:
        request: Incoming request, used to reach the application state.
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        LocationRepository bound to the shared store.
    """
    return locations.LocationRepository(
        request.app.state.location_store,
        strict_coordinates=settings.strict_coordinates,
        default_radius_meters=settings.default_radius_meters,
    )


def _set_cache_headers(
    response: fastapi.Response,
    settings: config.Settings,
) -> None:
    response.headers["Cache-Control"] = (
        f"public, max-age={settings.cache_max_age_seconds}"
    )


@router.get("")
def list_locations(
    response: fastapi.Response,
    repo: locations.LocationRepository = fastapi.Depends(_get_repo),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> list[dict[str, Any]]:
    """List all stored locations, ordered by id.

    Rows whose geometry cannot be decoded are left out rather than failing
    the whole response.
    """
    _set_cache_headers(response, settings)
    return [location.to_dict() for location in repo.list_all()]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_location(
    payload: LocationPayload,
    repo: locations.LocationRepository = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Add a new location.

    Returns:
        The confirmation message and the stored location.

    Example:
        >>> client.post("/api/locations",
        ...             json={"name": "Parliament", "lat": 45.4236,
        ...                   "lng": -75.7009})
        >>> # Returns 201 with the new id and created_at
    """
    location = repo.create(payload.name, payload.lat, payload.lng)
    return {
        "message": "Location added successfully",
        "location": location.to_dict(),
    }


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
def bulk_import_locations(
    payload: BulkImportPayload,
    repo: locations.LocationRepository = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Import a batch of locations atomically.

    A single invalid record rejects the whole batch with 400 and nothing
    is written.
    """
    result = bulk_import.import_locations(repo, payload.locations)
    return {
        "message": f"Successfully imported {result.count} locations",
        "locations": [location.to_dict() for location in result.locations],
    }


@router.get("/nearby")
def nearby_locations(
    response: fastapi.Response,
    lat: str | None = None,
    lng: str | None = None,
    radius: str | None = None,
    repo: locations.LocationRepository = fastapi.Depends(_get_repo),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Find locations within ``radius`` meters of a point, closest first.

    Args:
        response: Outgoing response, used to set cache headers.
        lat: Center latitude.
        lng: Center longitude.
        radius: Search radius in whole meters (default 5000).
        repo: Location repository (injected via FastAPI Depends).
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        Matching locations, each with ``distance_meters``, plus the query
        that produced them.

    Example:
        >>> client.get("/api/locations/nearby?lat=45.4215&lng=-75.6972")
        >>> # Returns: {"data": [{"name": ..., "distance_meters": 12.3}],
        >>> #           "query": {"center": {"lat": 45.4215,
        >>> #                                "lng": -75.6972},
        >>> #                     "radius_meters": 5000, "count": 1}}
    """
    result = repo.nearby(lat, lng, radius)
    _set_cache_headers(response, settings)
    return {
        "data": [location.to_dict() for location in result.locations],
        "query": {
            "center": result.center._asdict(),
            "radius_meters": result.radius_meters,
            "count": result.count,
        },
    }


@router.get("/bounds")
def locations_in_bounds(
    response: fastapi.Response,
    min_lat: str | None = fastapi.Query(None, alias="minLat"),
    min_lng: str | None = fastapi.Query(None, alias="minLng"),
    max_lat: str | None = fastapi.Query(None, alias="maxLat"),
    max_lng: str | None = fastapi.Query(None, alias="maxLng"),
    repo: locations.LocationRepository = fastapi.Depends(_get_repo),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Find locations inside a map viewport, bounds inclusive."""
    result = repo.bounds(min_lat, min_lng, max_lat, max_lng)
    _set_cache_headers(response, settings)
    return {
        "data": [location.to_dict() for location in result.locations],
        "bounds": {
            "minLat": result.bounds.min_lat,
            "minLng": result.bounds.min_lng,
            "maxLat": result.bounds.max_lat,
            "maxLng": result.bounds.max_lng,
        },
        "count": result.count,
    }


@router.get("/{location_id}")
def get_location(
    location_id: str,
    repo: locations.LocationRepository = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Get a single location by id."""
    return repo.get(location_id).to_dict()


@router.put("/{location_id}")
def replace_location(
    location_id: str,
    payload: LocationPayload,
    repo: locations.LocationRepository = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Replace the name and coordinates of a location."""
    location = repo.update(location_id, payload.name, payload.lat, payload.lng)
    return {
        "message": "Location updated successfully",
        "location": location.to_dict(),
    }


@router.patch("/{location_id}")
def patch_location(
    location_id: str,
    payload: LocationPayload,
    repo: locations.LocationRepository = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Update the name, the coordinates, or both.

    ``lat`` and ``lng`` must be sent together.
    """
    location = repo.patch(
        location_id,
        name=payload.name,
        lat=payload.lat,
        lng=payload.lng,
    )
    return {
        "message": "Location updated successfully",
        "location": location.to_dict(),
    }


@router.delete("/{location_id}")
def delete_location(
    location_id: str,
    repo: locations.LocationRepository = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Delete a location and return its last state."""
    location = repo.delete(location_id)
    return {
        "message": "Location deleted successfully",
        "deletedLocation": location.to_dict(),
    }

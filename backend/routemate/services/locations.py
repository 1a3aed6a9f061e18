"""Location repository: the facade between the API and the store.

The repository is the only component that talks to a location store. It
validates and coerces caller input before anything reaches the store,
fills defaults, decodes the geometries the store returns and maps store
failures onto the error taxonomy of routemate.core.errors. It holds no
mutable state of its own; one instance per request is cheap.

Spatial searches are delegated to the store's indexed queries. What the
repository guarantees is which parameters reach them and how results are
shaped.

Example:
    Create a location and find it again nearby:
        >>> repo = LocationRepository(database.InMemoryLocationStore())
        >>> created = repo.create("Algonquin College", 45.4215, -75.6972)
        >>> result = repo.nearby(45.4215, -75.6972, 100)
        >>> result.count
        1
"""

from __future__ import annotations

import contextlib
import datetime
from typing import TYPE_CHECKING, Any, NamedTuple

from routemate.core import errors
from routemate.core.logging import get_logger
from routemate.db import database
from routemate.db import models as db_models
from routemate.services import validation
from routemate.utils import geometry

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

logger = get_logger(__name__)

DEFAULT_RADIUS_METERS = 5000


class NearbyResult(NamedTuple):
    locations: list[db_models.Location]
    center: db_models.Coordinates
    radius_meters: int

    @property
    def count(self) -> int:
        return len(self.locations)


class BoundsResult(NamedTuple):
    locations: list[db_models.Location]
    bounds: db_models.BoundingBox

    @property
    def count(self) -> int:
        return len(self.locations)


@contextlib.contextmanager
def _store_errors(operation: str, message: str) -> Iterator[None]:
    """Translate store failures into UpstreamError with a generic message."""
    try:
        yield
    except database.StoreError as exc:
        logger.error("store_error", operation=operation, error=str(exc))
        raise errors.UpstreamError(message) from exc


def _timestamp(value: Any) -> datetime.datetime | None:
    if isinstance(value, str):
        return datetime.datetime.fromisoformat(value)
    return value


class LocationRepository:
    """Create, read, update, delete and search locations.

    Args:
        store: Persistence store to delegate to.
        strict_coordinates: Reject out-of-range coordinates on input and
            drop out-of-range geometries on output.
        default_radius_meters: Radius used by nearby() when none is given.
    """

    def __init__(
        self,
        store: database.LocationStoreProtocol,
        strict_coordinates: bool = False,
        default_radius_meters: int = DEFAULT_RADIUS_METERS,
    ) -> None:
        self.store = store
        self.strict_coordinates = strict_coordinates
        self.default_radius_meters = default_radius_meters

    def _decode_row(self, row: dict[str, Any]) -> db_models.Location | None:
        """Decode one store row; None when its geometry is unusable."""
        coordinates = geometry.decode(
            row.get("coordinates"),
            strict=self.strict_coordinates,
        )
        if coordinates is None:
            logger.warning("location_row_skipped", location_id=row.get("id"))
            return None
        distance = row.get("distance_meters")
        return db_models.Location(
            id=row["id"],
            name=row["name"],
            coordinates=coordinates,
            created_at=_timestamp(row.get("created_at")),
            distance_meters=float(distance) if distance is not None else None,
        )

    def _decode_rows(
        self,
        rows: Iterable[dict[str, Any]],
    ) -> list[db_models.Location]:
        return [
            location
            for location in map(self._decode_row, rows)
            if location is not None
        ]

    def _decode_single(self, row: dict[str, Any]) -> db_models.Location:
        location = self._decode_row(row)
        if location is None:
            raise errors.UpstreamError("Stored location could not be decoded")
        return location

    def create(self, name: Any, lat: Any, lng: Any) -> db_models.Location:
        """Validate and insert one location.

        Raises:
            ValidationError: If a field is missing or malformed.
            UpstreamError: If the insert fails.
        """
        draft = validation.build_draft(
            name, lat, lng, strict=self.strict_coordinates
        )
        with _store_errors("create", "Failed to insert location"):
            rows = self.store.insert([validation.to_store_row(draft)])
        if not rows:
            raise errors.UpstreamError("Failed to insert location")
        return self._decode_single(rows[0])

    def create_many(
        self,
        drafts: Sequence[db_models.LocationDraft],
    ) -> list[db_models.Location]:
        """Insert already validated drafts as one multi-row insert."""
        with _store_errors("create_many", "Failed to insert locations"):
            rows = self.store.insert(
                [validation.to_store_row(draft) for draft in drafts]
            )
        return self._decode_rows(rows)

    def get(self, location_id: str | None) -> db_models.Location:
        """Look up a single location by id.

        Raises:
            ValidationError: If the id is missing.
            NotFoundError: If no location has this id.
            UpstreamError: If the lookup fails.
        """
        location_id = validation.require_id(location_id)
        with _store_errors("get", "Failed to fetch location"):
            row = self.store.fetch_one(location_id)
        if row is None:
            raise errors.NotFoundError()
        return self._decode_single(row)

    def list_all(self) -> list[db_models.Location]:
        """Return every decodable location, ordered by id."""
        with _store_errors("list", "Failed to fetch locations from database"):
            rows = self.store.fetch_all()
        return self._decode_rows(rows)

    def _apply_changes(
        self,
        location_id: str,
        changes: dict[str, str],
    ) -> db_models.Location:
        with _store_errors("update", "Failed to update location"):
            row = self.store.update(location_id, changes)
        if row is None:
            raise errors.NotFoundError()
        return self._decode_single(row)

    def update(
        self,
        location_id: str | None,
        name: Any,
        lat: Any,
        lng: Any,
    ) -> db_models.Location:
        """Replace name and coordinates of a location.

        Raises:
            ValidationError: If the id or a field is missing or malformed.
            NotFoundError: If no location has this id.
            UpstreamError: If the update fails.
        """
        location_id = validation.require_id(location_id)
        draft = validation.build_draft(
            name, lat, lng, strict=self.strict_coordinates
        )
        return self._apply_changes(
            location_id, validation.to_store_row(draft)
        )

    def patch(
        self,
        location_id: str | None,
        name: Any = None,
        lat: Any = None,
        lng: Any = None,
    ) -> db_models.Location:
        """Update the given fields of a location.

        Coordinates only change as a pair; a latitude without a longitude
        (or the reverse) is rejected rather than merged.

        Raises:
            ValidationError: If nothing is given, only one coordinate is
                given, or a value is malformed.
            NotFoundError: If no location has this id.
            UpstreamError: If the update fails.
        """
        location_id = validation.require_id(location_id)
        changes: dict[str, str] = {}
        if name is not None:
            changes["name"] = validation.require_name(name)
        if (lat is None) != (lng is None):
            raise errors.ValidationError(
                "Latitude and longitude must be updated together"
            )
        if lat is not None:
            changes["coordinates"] = geometry.encode(
                validation.parse_coordinates(
                    lat, lng, strict=self.strict_coordinates
                )
            )
        if not changes:
            raise errors.ValidationError("No fields provided for update")
        return self._apply_changes(location_id, changes)

    def delete(self, location_id: str | None) -> db_models.Location:
        """Delete a location and return its last state.

        Raises:
            ValidationError: If the id is missing.
            NotFoundError: If no location has this id.
            UpstreamError: If the delete fails.
        """
        location_id = validation.require_id(location_id)
        with _store_errors("delete", "Failed to delete location"):
            row = self.store.delete(location_id)
        if row is None:
            raise errors.NotFoundError()
        return self._decode_single(row)

    def nearby(
        self,
        lat: Any,
        lng: Any,
        radius: Any = None,
    ) -> NearbyResult:
        """Find locations within a radius, closest first.

        Args:
            lat: Center latitude, number or text.
            lng: Center longitude, number or text.
            radius: Radius in whole meters; default_radius_meters when None.

        Raises:
            ValidationError: If the center is missing or any parameter is
                not numeric.
            UpstreamError: If the search fails.
        """
        if validation.is_blank(lat) or validation.is_blank(lng):
            raise errors.ValidationError("Latitude and longitude are required")
        center = validation.parse_coordinates(
            lat, lng, strict=self.strict_coordinates
        )
        radius_meters = (
            self.default_radius_meters
            if radius is None
            else validation.parse_radius(radius)
        )
        with _store_errors("nearby", "Failed to search nearby locations"):
            rows = self.store.nearby(center.lat, center.lng, radius_meters)
        return NearbyResult(
            locations=self._decode_rows(rows),
            center=center,
            radius_meters=radius_meters,
        )

    def bounds(
        self,
        min_lat: Any,
        min_lng: Any,
        max_lat: Any,
        max_lng: Any,
    ) -> BoundsResult:
        """Find locations inside an axis-aligned box, bounds inclusive.

        Raises:
            ValidationError: If a bound is missing or not numeric, or a
                minimum exceeds its maximum.
            UpstreamError: If the search fails.
        """
        if any(
            validation.is_blank(value)
            for value in (min_lat, min_lng, max_lat, max_lng)
        ):
            raise errors.ValidationError(
                "All bounds parameters required: minLat, minLng, maxLat, maxLng"
            )
        strict = self.strict_coordinates
        box = db_models.BoundingBox(
            min_lat=validation.check_latitude(
                validation.parse_number(min_lat, "minLat"), strict
            ),
            min_lng=validation.check_longitude(
                validation.parse_number(min_lng, "minLng"), strict
            ),
            max_lat=validation.check_latitude(
                validation.parse_number(max_lat, "maxLat"), strict
            ),
            max_lng=validation.check_longitude(
                validation.parse_number(max_lng, "maxLng"), strict
            ),
        )
        if box.min_lat > box.max_lat:
            raise errors.ValidationError("minLat must not be greater than maxLat")
        if box.min_lng > box.max_lng:
            raise errors.ValidationError("minLng must not be greater than maxLng")
        with _store_errors("bounds", "Failed to fetch locations in bounds"):
            rows = self.store.in_bounds(box)
        return BoundsResult(locations=self._decode_rows(rows), bounds=box)

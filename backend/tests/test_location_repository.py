"""Tests for the location repository.

This module covers LocationRepository on top of the in-memory store:
    - create, get, update, patch and delete, including not-found paths,
    - input validation that rejects bad values before the store is touched,
    - nearby search defaults, ordering and radius monotonicity,
    - bounding-box search with inclusive bounds,
    - rows with undecodable geometry being skipped in list-style results,
    - store failures surfacing as UpstreamError with a generic message.

See Also:
    - backend/routemate/services/locations.py for the repository,
    - backend/routemate/db/database.py for the stores.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from routemate.core import errors
from routemate.db import database
from routemate.db.models import Coordinates
from routemate.services import locations
from routemate.utils import geometry

if TYPE_CHECKING:
    from tests.conftest import FailingLocationStore

ALGONQUIN = (45.4215, -75.6972)
# Roughly 1.1 km and 11 km north of ALGONQUIN
NORTH_1KM = (45.4315, -75.6972)
NORTH_11KM = (45.5215, -75.6972)


def _repo(strict: bool = False) -> locations.LocationRepository:
    return locations.LocationRepository(
        database.InMemoryLocationStore(),
        strict_coordinates=strict,
    )


def _seed(repo: locations.LocationRepository) -> list[int]:
    ids = []
    for name, (lat, lng) in [
        ("Algonquin College", ALGONQUIN),
        ("North 1km", NORTH_1KM),
        ("North 11km", NORTH_11KM),
    ]:
        ids.append(repo.create(name, lat, lng).id)
    return ids


def test_create_returns_decoded_location() -> None:
    """Test that a created location comes back with its coordinates."""
    repo = _repo()
    location = repo.create("Algonquin College", *ALGONQUIN)
    assert location.id == 1
    assert location.name == "Algonquin College"
    assert location.coordinates == Coordinates(lat=45.4215, lng=-75.6972)
    assert location.created_at is not None
    assert location.distance_meters is None


def test_create_accepts_numeric_text() -> None:
    location = _repo().create("Text", "1.5", " 2.5 ")
    assert location.coordinates == Coordinates(lat=1.5, lng=2.5)


@pytest.mark.parametrize(
    ("name", "lat", "lng"),
    [
        (None, 1.0, 1.0),
        ("", 1.0, 1.0),
        ("   ", 1.0, 1.0),
        ("A", None, 1.0),
        ("A", 1.0, None),
    ],
)
def test_create_requires_all_fields(name: object, lat: object, lng: object) -> None:
    """Test that missing fields are rejected and nothing is written."""
    repo = _repo()
    with pytest.raises(errors.ValidationError) as exc_info:
        repo.create(name, lat, lng)
    assert exc_info.value.message == "Name, latitude, and longitude are required"
    assert repo.store.fetch_all() == []


@pytest.mark.parametrize(
    ("lat", "lng"),
    [("abc", 1.0), (1.0, "north"), (True, 1.0), (float("nan"), 1.0)],
)
def test_create_rejects_non_numeric_coordinates(lat: object, lng: object) -> None:
    repo = _repo()
    with pytest.raises(errors.ValidationError):
        repo.create("A", lat, lng)
    assert repo.store.fetch_all() == []


def test_create_rejects_non_string_name() -> None:
    with pytest.raises(errors.ValidationError, match="Name must be"):
        _repo().create(42, 1.0, 1.0)


def test_out_of_range_coordinates_lenient_by_default() -> None:
    repo = _repo()
    location = repo.create("Far away", 200.0, 0.0)
    assert location.coordinates == Coordinates(lat=200.0, lng=0.0)
    assert [item.id for item in repo.list_all()] == [location.id]


def test_strict_mode_rejects_out_of_range_input() -> None:
    repo = _repo(strict=True)
    with pytest.raises(errors.ValidationError, match="Latitude must be"):
        repo.create("Far away", 200.0, 0.0)
    with pytest.raises(errors.ValidationError, match="Longitude must be"):
        repo.create("Far away", 0.0, -181.0)
    assert repo.create("Edge", 90.0, -180.0).coordinates == Coordinates(
        lat=90.0, lng=-180.0
    )


def test_strict_mode_drops_out_of_range_rows() -> None:
    store = database.InMemoryLocationStore()
    store.put_row(
        {
            "name": "Far away",
            "coordinates": geometry.encode_wkb_hex(Coordinates(lat=200.0, lng=0.0)),
        }
    )
    lenient = locations.LocationRepository(store)
    strict = locations.LocationRepository(store, strict_coordinates=True)
    assert len(lenient.list_all()) == 1
    assert strict.list_all() == []


def test_get_existing_location() -> None:
    repo = _repo()
    created = repo.create("Parliament", 45.4236, -75.7009)
    found = repo.get(str(created.id))
    assert found.id == created.id
    assert found.coordinates == created.coordinates


@pytest.mark.parametrize("location_id", ["999", "abc", "1.5"])
def test_get_unknown_location_raises_not_found(location_id: str) -> None:
    repo = _repo()
    repo.create("Parliament", 45.4236, -75.7009)
    with pytest.raises(errors.NotFoundError) as exc_info:
        repo.get(location_id)
    assert exc_info.value.message == "Location not found"


@pytest.mark.parametrize("location_id", [None, "", "  "])
def test_get_requires_id(location_id: str | None) -> None:
    with pytest.raises(errors.ValidationError, match="Location ID is required"):
        _repo().get(location_id)


def test_list_all_orders_by_id() -> None:
    repo = _repo()
    assert repo.list_all() == []
    ids = _seed(repo)
    assert [location.id for location in repo.list_all()] == ids


def test_update_replaces_name_and_coordinates() -> None:
    repo = _repo()
    created = repo.create("Old", 1.0, 1.0)
    updated = repo.update(str(created.id), "New", 2.0, 3.0)
    assert updated.name == "New"
    assert updated.coordinates == Coordinates(lat=2.0, lng=3.0)
    assert repo.get(str(created.id)).name == "New"


def test_update_requires_every_field() -> None:
    repo = _repo()
    created = repo.create("Old", 1.0, 1.0)
    with pytest.raises(errors.ValidationError):
        repo.update(str(created.id), "New", None, 3.0)
    assert repo.get(str(created.id)).name == "Old"


def test_update_unknown_location_raises_not_found() -> None:
    with pytest.raises(errors.NotFoundError):
        _repo().update("42", "New", 2.0, 3.0)


def test_patch_name_keeps_coordinates() -> None:
    repo = _repo()
    created = repo.create("Old", 1.0, 1.0)
    patched = repo.patch(str(created.id), name="New")
    assert patched.name == "New"
    assert patched.coordinates == Coordinates(lat=1.0, lng=1.0)


def test_patch_coordinates_keeps_name() -> None:
    repo = _repo()
    created = repo.create("Old", 1.0, 1.0)
    patched = repo.patch(str(created.id), lat="5", lng="6")
    assert patched.name == "Old"
    assert patched.coordinates == Coordinates(lat=5.0, lng=6.0)


def test_patch_single_coordinate_is_rejected() -> None:
    """Test that lat without lng is refused rather than merged."""
    repo = _repo()
    created = repo.create("Old", 1.0, 1.0)
    with pytest.raises(errors.ValidationError, match="updated together"):
        repo.patch(str(created.id), lat=5.0)
    with pytest.raises(errors.ValidationError, match="updated together"):
        repo.patch(str(created.id), name="New", lng=5.0)
    unchanged = repo.get(str(created.id))
    assert unchanged.name == "Old"
    assert unchanged.coordinates == Coordinates(lat=1.0, lng=1.0)


def test_patch_without_fields_is_rejected() -> None:
    repo = _repo()
    created = repo.create("Old", 1.0, 1.0)
    with pytest.raises(errors.ValidationError, match="No fields provided"):
        repo.patch(str(created.id))


def test_patch_unknown_location_raises_not_found() -> None:
    with pytest.raises(errors.NotFoundError):
        _repo().patch("7", name="New")


def test_delete_returns_last_state_then_not_found() -> None:
    repo = _repo()
    created = repo.create("Doomed", 1.0, 1.0)
    deleted = repo.delete(str(created.id))
    assert deleted.id == created.id
    assert deleted.name == "Doomed"
    with pytest.raises(errors.NotFoundError):
        repo.delete(str(created.id))
    with pytest.raises(errors.NotFoundError):
        repo.get(str(created.id))


def test_ids_are_not_reused_after_delete() -> None:
    repo = _repo()
    first = repo.create("First", 1.0, 1.0)
    repo.delete(str(first.id))
    assert repo.create("Second", 1.0, 1.0).id != first.id


def test_nearby_uses_default_radius() -> None:
    repo = _repo()
    _seed(repo)
    result = repo.nearby(*ALGONQUIN)
    assert result.radius_meters == locations.DEFAULT_RADIUS_METERS
    assert [location.name for location in result.locations] == [
        "Algonquin College",
        "North 1km",
    ]
    assert result.count == 2
    assert result.center == Coordinates(lat=45.4215, lng=-75.6972)


def test_nearby_orders_closest_first_with_distances() -> None:
    repo = _repo()
    _seed(repo)
    result = repo.nearby(NORTH_11KM[0], NORTH_11KM[1], 20000)
    names = [location.name for location in result.locations]
    assert names == ["North 11km", "North 1km", "Algonquin College"]
    distances = [location.distance_meters for location in result.locations]
    assert distances[0] == pytest.approx(0.0, abs=1e-6)
    assert distances == sorted(distances)


def test_nearby_radius_is_monotonic() -> None:
    """Test that widening the radius never loses a location."""
    repo = _repo()
    _seed(repo)
    previous: set[int] = set()
    for radius in (0, 500, 2000, 20000):
        found = {location.id for location in repo.nearby(*ALGONQUIN, radius).locations}
        assert previous <= found
        previous = found
    assert len(repo.nearby(*ALGONQUIN, 500).locations) == 1
    assert len(repo.nearby(*ALGONQUIN, 2000).locations) == 2
    assert len(repo.nearby(*ALGONQUIN, 20000).locations) == 3


def test_nearby_accepts_query_string_values() -> None:
    repo = _repo()
    _seed(repo)
    result = repo.nearby("45.4215", "-75.6972", "100")
    assert result.radius_meters == 100
    assert result.count == 1


def test_nearby_with_custom_default_radius() -> None:
    repo = locations.LocationRepository(
        database.InMemoryLocationStore(),
        default_radius_meters=20000,
    )
    _seed(repo)
    assert repo.nearby(*ALGONQUIN).count == 3


@pytest.mark.parametrize(("lat", "lng"), [(None, 1.0), (1.0, None), ("", "1")])
def test_nearby_requires_center(lat: object, lng: object) -> None:
    with pytest.raises(
        errors.ValidationError, match="Latitude and longitude are required"
    ):
        _repo().nearby(lat, lng)


@pytest.mark.parametrize("radius", ["abc", "", "100.5", -1, "-5", True])
def test_nearby_rejects_bad_radius(radius: object) -> None:
    with pytest.raises(errors.ValidationError, match="radius"):
        _repo().nearby(*ALGONQUIN, radius)


def test_nearby_rejects_non_numeric_center() -> None:
    with pytest.raises(errors.ValidationError, match="lat must be a number"):
        _repo().nearby("north", -75.6972)


def test_bounds_are_inclusive() -> None:
    repo = _repo()
    _seed(repo)
    result = repo.bounds(ALGONQUIN[0], -75.7, NORTH_1KM[0], -75.69)
    assert [location.name for location in result.locations] == [
        "Algonquin College",
        "North 1km",
    ]
    assert result.count == 2
    assert result.bounds.min_lat == ALGONQUIN[0]
    assert result.bounds.max_lng == -75.69


def test_bounds_accepts_query_string_values() -> None:
    repo = _repo()
    _seed(repo)
    result = repo.bounds("45", "-76", "46", "-75")
    assert result.count == 3


@pytest.mark.parametrize(
    "bounds",
    [
        (None, -76.0, 46.0, -75.0),
        (45.0, "", 46.0, -75.0),
        (45.0, -76.0, None, -75.0),
        (45.0, -76.0, 46.0, None),
    ],
)
def test_bounds_require_all_parameters(bounds: tuple[object, ...]) -> None:
    with pytest.raises(
        errors.ValidationError, match="All bounds parameters required"
    ):
        _repo().bounds(*bounds)


def test_bounds_reject_non_numeric_values() -> None:
    with pytest.raises(errors.ValidationError, match="maxLng must be a number"):
        _repo().bounds("45", "-76", "46", "east")


@pytest.mark.parametrize(
    ("bounds", "message"),
    [
        ((46.0, -76.0, 45.0, -75.0), "minLat must not be greater than maxLat"),
        ((45.0, -75.0, 46.0, -76.0), "minLng must not be greater than maxLng"),
    ],
)
def test_bounds_reject_inverted_box(
    failing_store: FailingLocationStore,
    bounds: tuple[float, ...],
    message: str,
) -> None:
    """Test that a box with min above max never reaches the store."""
    repo = locations.LocationRepository(failing_store)
    with pytest.raises(errors.ValidationError) as exc_info:
        repo.bounds(*bounds)
    assert exc_info.value.message == message
    assert failing_store.calls == []


def test_bounds_degenerate_box_matches_exact_point() -> None:
    repo = _repo()
    _seed(repo)
    result = repo.bounds(ALGONQUIN[0], ALGONQUIN[1], ALGONQUIN[0], ALGONQUIN[1])
    assert [location.name for location in result.locations] == ["Algonquin College"]


def test_bounds_results_stay_inside_box() -> None:
    repo = _repo()
    _seed(repo)
    result = repo.bounds(45.42, -75.7, 45.5, -75.69)
    assert result.count == 2
    for location in result.locations:
        assert 45.42 <= location.coordinates.lat <= 45.5
        assert -75.7 <= location.coordinates.lng <= -75.69


def test_bounds_strict_mode_checks_ranges() -> None:
    with pytest.raises(errors.ValidationError, match="Latitude must be"):
        _repo(strict=True).bounds(-100, -76, 46, -75)


def test_undecodable_rows_are_skipped_in_lists() -> None:
    """Test that one corrupt geometry does not fail a whole response."""
    store = database.InMemoryLocationStore()
    repo = locations.LocationRepository(store)
    good = repo.create("Good", *ALGONQUIN)
    broken = store.put_row({"name": "Broken", "coordinates": "0101deadbeef"})
    store.put_row({"name": "Unknown shape", "coordinates": {"lat": 1, "lng": 2}})

    assert [location.id for location in repo.list_all()] == [good.id]
    assert [location.id for location in repo.nearby(*ALGONQUIN, 100).locations] == [
        good.id
    ]
    with pytest.raises(errors.UpstreamError, match="could not be decoded"):
        repo.get(str(broken["id"]))


def test_rows_in_other_geometry_shapes_are_decoded() -> None:
    store = database.InMemoryLocationStore()
    store.put_row(
        {"name": "GeoJSON", "coordinates": {"type": "Point", "coordinates": [2.0, 1.0]}}
    )
    store.put_row(
        {"name": "XY", "coordinates": {"x": 4.0, "y": 3.0}, "created_at": None}
    )
    listed = locations.LocationRepository(store).list_all()
    assert [location.coordinates for location in listed] == [
        Coordinates(lat=1.0, lng=2.0),
        Coordinates(lat=3.0, lng=4.0),
    ]
    assert listed[1].created_at is None


@pytest.mark.parametrize(
    ("call", "message"),
    [
        (lambda repo: repo.create("A", 1.0, 1.0), "Failed to insert location"),
        (lambda repo: repo.get("1"), "Failed to fetch location"),
        (lambda repo: repo.list_all(), "Failed to fetch locations from database"),
        (lambda repo: repo.update("1", "A", 1.0, 1.0), "Failed to update location"),
        (lambda repo: repo.patch("1", name="A"), "Failed to update location"),
        (lambda repo: repo.delete("1"), "Failed to delete location"),
        (lambda repo: repo.nearby(1.0, 1.0), "Failed to search nearby locations"),
        (
            lambda repo: repo.bounds(0, 0, 1, 1),
            "Failed to fetch locations in bounds",
        ),
    ],
)
def test_store_failures_become_upstream_errors(
    failing_store: FailingLocationStore,
    call: object,
    message: str,
) -> None:
    """Test that store detail never leaks into the caller-facing message."""
    repo = locations.LocationRepository(failing_store)
    with pytest.raises(errors.UpstreamError) as exc_info:
        call(repo)  # type: ignore[operator]
    assert exc_info.value.message == message
    assert exc_info.value.status_code == 500
    assert "Connection refused" not in exc_info.value.message
    assert isinstance(exc_info.value.__cause__, database.StoreError)


def test_validation_happens_before_the_store(
    failing_store: FailingLocationStore,
) -> None:
    repo = locations.LocationRepository(failing_store)
    with pytest.raises(errors.ValidationError):
        repo.create("", 1.0, 1.0)
    with pytest.raises(errors.ValidationError):
        repo.nearby(None, 1.0)
    with pytest.raises(errors.ValidationError):
        repo.patch("1", lat=1.0)
    assert failing_store.calls == []


def test_unconfigured_store_reports_configuration_error() -> None:
    repo = locations.LocationRepository(database.UnconfiguredLocationStore())
    with pytest.raises(errors.ConfigurationError) as exc_info:
        repo.list_all()
    assert exc_info.value.message == "Database not configured"
    assert exc_info.value.status_code == 500
    with pytest.raises(errors.ValidationError):
        repo.create(None, 1.0, 1.0)

"""Shared fixtures for the RouteMate backend tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NoReturn

import pytest

from routemate.db import database

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from routemate.db import models as db_models


class FailingLocationStore(database.LocationStoreProtocol):
    """Store whose every call fails the way an unreachable database does."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or database.StoreError(
            "could not connect to server: Connection refused"
        )
        self.calls: list[str] = []

    def _fail(self, operation: str) -> NoReturn:
        self.calls.append(operation)
        raise self.error

    def insert(self, rows: Sequence[Mapping[str, str]]) -> list[dict[str, Any]]:
        self._fail("insert")

    def fetch_all(self) -> list[dict[str, Any]]:
        self._fail("fetch_all")

    def fetch_one(self, location_id: str) -> dict[str, Any] | None:
        self._fail("fetch_one")

    def update(
        self,
        location_id: str,
        changes: Mapping[str, str],
    ) -> dict[str, Any] | None:
        self._fail("update")

    def delete(self, location_id: str) -> dict[str, Any] | None:
        self._fail("delete")

    def nearby(
        self,
        lat: float,
        lng: float,
        radius_meters: int,
    ) -> list[dict[str, Any]]:
        self._fail("nearby")

    def in_bounds(self, bounds: db_models.BoundingBox) -> list[dict[str, Any]]:
        self._fail("in_bounds")

    def close(self) -> None:
        return None


@pytest.fixture
def failing_store() -> FailingLocationStore:
    """A store that raises StoreError on every operation."""
    return FailingLocationStore()

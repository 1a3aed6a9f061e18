"""Location stores: the persistence collaborator behind the repository.

A store speaks in raw rows, dictionaries with ``id``, ``name``,
``coordinates`` (a geometry in one of the shapes routemate.utils.geometry
understands), ``created_at`` and, for nearby searches, ``distance_meters``.
Writes receive coordinates as ``POINT(<lng> <lat>)`` text.

Three implementations satisfy LocationStoreProtocol:

* PostgresLocationStore, the production store on PostgreSQL/PostGIS;
* InMemoryLocationStore, for tests and local development;
* UnconfiguredLocationStore, used when no database URL is configured.

Failures of the underlying database surface as StoreError; the repository
decides what callers see.

Example:
    Use in a service or FastAPI dependency:
        >>> store = get_location_store(settings)
        >>> rows = store.fetch_all()
"""

from __future__ import annotations

import contextlib
import datetime
import itertools
import math
import threading
from typing import TYPE_CHECKING, Any, Protocol, cast

import psycopg2
import psycopg2.extensions
import psycopg2.extras
import psycopg2.pool

from routemate.core import errors
from routemate.core.logging import get_logger
from routemate.db import models as db_models
from routemate.utils import geometry

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from routemate.core import config

Row = dict[str, Any]

logger = get_logger(__name__)

EARTH_RADIUS_METERS = 6_371_008.8


class StoreError(RuntimeError):
    """Raised when the persistence store fails to execute an operation."""


class LocationStoreProtocol(Protocol):
    """Protocol interface for storing and querying locations.

    Implementations return raw rows; geometry decoding happens in the
    repository. Every method is safe to call from concurrent threads.
    """

    def insert(self, rows: Sequence[Mapping[str, str]]) -> list[Row]: ...

    def fetch_all(self) -> list[Row]: ...

    def fetch_one(self, location_id: str) -> Row | None: ...

    def update(
        self,
        location_id: str,
        changes: Mapping[str, str],
    ) -> Row | None: ...

    def delete(self, location_id: str) -> Row | None: ...

    def nearby(
        self,
        lat: float,
        lng: float,
        radius_meters: int,
    ) -> list[Row]: ...

    def in_bounds(self, bounds: db_models.BoundingBox) -> list[Row]: ...

    def close(self) -> None: ...


def _parse_id(location_id: str) -> int | None:
    """Parse a path identifier; None when it cannot name a stored row."""
    try:
        return int(location_id)
    except (TypeError, ValueError):
        return None


def haversine_meters(a: db_models.Coordinates, b: db_models.Coordinates) -> float:
    """Great-circle distance between two points on a spherical Earth."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


class InMemoryLocationStore(LocationStoreProtocol):
    """Simple in-memory store for tests and local development.

    Stores rows in a dictionary, with geometries kept as WKB hex just as
    the PostGIS store returns them. Data is lost when the process exits.
    Nearby distances use the haversine formula instead of the spheroid
    PostGIS measures on, so they differ from production by a fraction of
    a percent.
    """

    def __init__(self) -> None:
        """Initialize an empty in-memory store."""
        self._rows: dict[int, Row] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def put_row(self, row: Row) -> Row:
        """Store a raw row verbatim, assigning an id if it has none.

        Lets tests plant rows whose geometry the codec cannot decode.
        """
        with self._lock:
            stored = dict(row)
            stored.setdefault("id", next(self._ids))
            stored.setdefault("created_at", datetime.datetime.now(datetime.UTC))
            self._rows[stored["id"]] = stored
            return dict(stored)

    @staticmethod
    def _to_geometry(point_text: str) -> str:
        try:
            coordinates = geometry.parse_point_text(point_text)
        except geometry.GeometryDecodeError as exc:
            raise StoreError(str(exc)) from exc
        return geometry.encode_wkb_hex(coordinates)

    def insert(self, rows: Sequence[Mapping[str, str]]) -> list[Row]:
        # Convert everything first so a bad row leaves the store untouched
        prepared = [
            {"name": row["name"], "coordinates": self._to_geometry(row["coordinates"])}
            for row in rows
        ]
        with self._lock:
            inserted = []
            for row in prepared:
                row["id"] = next(self._ids)
                row["created_at"] = datetime.datetime.now(datetime.UTC)
                self._rows[row["id"]] = row
                inserted.append(dict(row))
            return inserted

    def fetch_all(self) -> list[Row]:
        with self._lock:
            return [dict(self._rows[key]) for key in sorted(self._rows)]

    def fetch_one(self, location_id: str) -> Row | None:
        key = _parse_id(location_id)
        with self._lock:
            row = self._rows.get(key) if key is not None else None
            return dict(row) if row is not None else None

    def update(
        self,
        location_id: str,
        changes: Mapping[str, str],
    ) -> Row | None:
        updates = dict(changes)
        if "coordinates" in updates:
            updates["coordinates"] = self._to_geometry(updates["coordinates"])
        key = _parse_id(location_id)
        with self._lock:
            row = self._rows.get(key) if key is not None else None
            if row is None:
                return None
            row.update(updates)
            return dict(row)

    def delete(self, location_id: str) -> Row | None:
        key = _parse_id(location_id)
        with self._lock:
            row = self._rows.pop(key, None) if key is not None else None
            return dict(row) if row is not None else None

    def nearby(
        self,
        lat: float,
        lng: float,
        radius_meters: int,
    ) -> list[Row]:
        center = db_models.Coordinates(lat=lat, lng=lng)
        matches = []
        for row in self.fetch_all():
            point = geometry.decode(row["coordinates"])
            if point is None:
                continue
            distance = haversine_meters(center, point)
            if distance <= radius_meters:
                matches.append({**row, "distance_meters": distance})
        return sorted(
            matches,
            key=lambda row: (row["distance_meters"], row["id"]),
        )

    def in_bounds(self, bounds: db_models.BoundingBox) -> list[Row]:
        matches = []
        for row in self.fetch_all():
            point = geometry.decode(row["coordinates"])
            if point is not None and bounds.contains(point):
                matches.append(row)
        return matches

    def close(self) -> None:
        return None


class UnconfiguredLocationStore(LocationStoreProtocol):
    """Stand-in store used when no database is configured.

    Every operation raises ConfigurationError, so the API keeps serving
    health checks and input validation while reporting the missing
    database on anything that needs it.
    """

    def _unavailable(self) -> errors.ConfigurationError:
        return errors.ConfigurationError()

    def insert(self, rows: Sequence[Mapping[str, str]]) -> list[Row]:
        raise self._unavailable()

    def fetch_all(self) -> list[Row]:
        raise self._unavailable()

    def fetch_one(self, location_id: str) -> Row | None:
        raise self._unavailable()

    def update(
        self,
        location_id: str,
        changes: Mapping[str, str],
    ) -> Row | None:
        raise self._unavailable()

    def delete(self, location_id: str) -> Row | None:
        raise self._unavailable()

    def nearby(
        self,
        lat: float,
        lng: float,
        radius_meters: int,
    ) -> list[Row]:
        raise self._unavailable()

    def in_bounds(self, bounds: db_models.BoundingBox) -> list[Row]:
        raise self._unavailable()

    def close(self) -> None:
        return None


class PostgresLocationStore(LocationStoreProtocol):
    """PostgreSQL/PostGIS-backed location store.

    Holds one thread-safe connection pool for the life of the process. The
    pool, the PostGIS extension and the locations table are created lazily
    on first use, so an unreachable database fails individual requests
    instead of application startup.

    Geometries are read back with ``encode(ST_AsBinary(...), 'hex')``:
    plain little-endian WKB without the SRID flag of PostGIS's default
    EWKB output.
    """

    CREATE_SCHEMA_SQL = """
    CREATE EXTENSION IF NOT EXISTS postgis;
    CREATE TABLE IF NOT EXISTS locations (
      id BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
      name TEXT NOT NULL,
      coordinates geometry(Point, 4326) NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS locations_coordinates_gix
      ON locations USING GIST (coordinates);
    CREATE INDEX IF NOT EXISTS locations_coordinates_geog_gix
      ON locations USING GIST ((coordinates::geography));
    """

    COLUMNS = (
        "id, name, encode(ST_AsBinary(coordinates), 'hex') AS coordinates,"
        " created_at"
    )

    _ASSIGNMENTS = {
        "name": "name = %(name)s",
        "coordinates": "coordinates = ST_GeomFromText(%(coordinates)s, 4326)",
    }

    def __init__(self, settings: config.Settings) -> None:
        """Initialize the store with database settings.

        Args:
            settings: Application settings containing the database URL and
                pool bounds.
        """
        self.settings = settings
        self._pool: psycopg2.pool.ThreadedConnectionPool | None = None
        self._pool_lock = threading.Lock()
        # ThreadedConnectionPool raises PoolError when exhausted instead of
        # blocking, so callers queue here for one of max_size connections
        self._slots = threading.BoundedSemaphore(settings.db_pool_max_size)

    def _get_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        """Create the pool and schema on first use."""
        with self._pool_lock:
            if self._pool is None:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    self.settings.db_pool_min_size,
                    self.settings.db_pool_max_size,
                    self.settings.database_url,
                )
                try:
                    conn = pool.getconn()
                    try:
                        with conn, conn.cursor() as cur:
                            cur.execute(self.CREATE_SCHEMA_SQL)
                    finally:
                        pool.putconn(conn)
                except psycopg2.Error:
                    pool.closeall()
                    raise
                self._pool = pool
                logger.info("database_pool_ready")
            return self._pool

    @contextlib.contextmanager
    def _cursor(self) -> Iterator[psycopg2.extras.RealDictCursor]:
        """Yield a dict cursor inside a transaction.

        Waits while every pooled connection is in use. Commits when the
        block succeeds, rolls back otherwise, and wraps psycopg2 errors in
        StoreError.
        """
        try:
            pool = self._get_pool()
            with self._slots:
                conn = pool.getconn()
                try:
                    with conn, conn.cursor(
                        cursor_factory=psycopg2.extras.RealDictCursor
                    ) as cur:
                        yield cast(psycopg2.extras.RealDictCursor, cur)
                finally:
                    pool.putconn(conn)
        except psycopg2.Error as exc:
            raise StoreError(str(exc).strip() or type(exc).__name__) from exc

    @staticmethod
    def _rows(cur: psycopg2.extensions.cursor) -> list[Row]:
        return [dict(row) for row in cur.fetchall()]

    @staticmethod
    def _row(cur: psycopg2.extensions.cursor) -> Row | None:
        row = cur.fetchone()
        return dict(row) if row is not None else None

    @classmethod
    def _build_update(cls, changes: Mapping[str, str]) -> str:
        """Build the UPDATE statement for a set of changed columns.

        Raises:
            ValueError: If a column is not updatable.
        """
        unknown = set(changes) - set(cls._ASSIGNMENTS)
        if unknown:
            raise ValueError(f"Columns not updatable: {sorted(unknown)}")
        assignments = ", ".join(
            cls._ASSIGNMENTS[column] for column in cls._ASSIGNMENTS
            if column in changes
        )
        return (
            f"UPDATE locations SET {assignments} WHERE id = %(id)s"
            f" RETURNING {cls.COLUMNS}"
        )

    def insert(self, rows: Sequence[Mapping[str, str]]) -> list[Row]:
        with self._cursor() as cur:
            inserted = psycopg2.extras.execute_values(
                cur,
                f"INSERT INTO locations (name, coordinates) VALUES %s"
                f" RETURNING {self.COLUMNS}",
                [(row["name"], row["coordinates"]) for row in rows],
                template="(%s, ST_GeomFromText(%s, 4326))",
                page_size=max(len(rows), 1),
                fetch=True,
            )
            return [dict(row) for row in inserted]

    def fetch_all(self) -> list[Row]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {self.COLUMNS} FROM locations ORDER BY id")
            return self._rows(cur)

    def fetch_one(self, location_id: str) -> Row | None:
        key = _parse_id(location_id)
        if key is None:
            return None
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {self.COLUMNS} FROM locations WHERE id = %s",
                (key,),
            )
            return self._row(cur)

    def update(
        self,
        location_id: str,
        changes: Mapping[str, str],
    ) -> Row | None:
        key = _parse_id(location_id)
        if key is None:
            return None
        statement = self._build_update(changes)
        with self._cursor() as cur:
            cur.execute(statement, {**changes, "id": key})
            return self._row(cur)

    def delete(self, location_id: str) -> Row | None:
        key = _parse_id(location_id)
        if key is None:
            return None
        with self._cursor() as cur:
            cur.execute(
                f"DELETE FROM locations WHERE id = %s RETURNING {self.COLUMNS}",
                (key,),
            )
            return self._row(cur)

    def nearby(
        self,
        lat: float,
        lng: float,
        radius_meters: int,
    ) -> list[Row]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                WITH center AS (
                  SELECT ST_SetSRID(
                    ST_MakePoint(%(lng)s, %(lat)s), 4326
                  )::geography AS geog
                )
                SELECT {self.COLUMNS},
                  ST_Distance(coordinates::geography, center.geog)
                    AS distance_meters
                FROM locations, center
                WHERE ST_DWithin(
                  coordinates::geography, center.geog, %(radius)s
                )
                ORDER BY distance_meters, id
                """,
                {"lat": lat, "lng": lng, "radius": radius_meters},
            )
            return self._rows(cur)

    def in_bounds(self, bounds: db_models.BoundingBox) -> list[Row]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {self.COLUMNS}
                FROM locations
                WHERE ST_Intersects(coordinates, ST_MakeEnvelope(
                  %(min_lng)s, %(min_lat)s, %(max_lng)s, %(max_lat)s, 4326
                ))
                ORDER BY id
                """,
                bounds._asdict(),
            )
            return self._rows(cur)

    def close(self) -> None:
        """Close every pooled connection."""
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None


def get_location_store(settings: config.Settings) -> LocationStoreProtocol:
    """Factory function to create the process-wide location store.

    Args:
        settings: Application settings for database connection.

    Returns:
        PostgresLocationStore when a database URL is configured,
        UnconfiguredLocationStore otherwise.
    """
    if settings.database_configured:
        return PostgresLocationStore(settings)
    return UnconfiguredLocationStore()

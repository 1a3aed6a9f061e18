"""RouteMate backend: a geo-tagged point store behind a FastAPI service.

Locations (a name and a latitude/longitude pair) are stored in
PostgreSQL/PostGIS and served through CRUD, bulk import, radius and
bounding-box endpoints.

- Geometry codec converting WKB hex, GeoJSON-like and x/y point values to
  (lat, lng) pairs, and (lat, lng) pairs to ``POINT(lng lat)`` text
- Location repository owning validation, error mapping and result shaping
- Stores for PostGIS, in-memory use, and an unconfigured deployment
- Structured logging and a uniform ``{"error": message}`` error body

See module docstrings for details on architecture and usage.
"""

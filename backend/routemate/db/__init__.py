"""Database interface and store abstractions.

This package holds the Location data models and the persistence stores the
repository talks to: the PostGIS store used in production, an in-memory
store for tests and local development, and the store that stands in when
no database is configured.

Example:
    Use in a service or FastAPI dependency:
        >>> from routemate.db import database
        >>> store = database.get_location_store(settings)
"""

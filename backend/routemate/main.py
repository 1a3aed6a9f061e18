"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that configures
logging, creates the process-wide location store, sets up CORS middleware,
includes the locations router, registers error handlers, and exposes a
health check endpoint for monitoring.

Example:
    The application can be run with uvicorn:
        $ uvicorn routemate.main:app --reload

    Or through the package entry point:
        $ python -m routemate
"""

import contextlib
from collections.abc import AsyncIterator

import fastapi
from fastapi.middleware import cors

from routemate.api import locations
from routemate.core import config, errors
from routemate.core.logging import configure_logging, get_logger
from routemate.db import database

logger = get_logger(__name__)


@contextlib.asynccontextmanager
async def _lifespan(app: fastapi.FastAPI) -> AsyncIterator[None]:
    """Close the location store when the application shuts down."""
    yield
    app.state.location_store.close()
    logger.info("location_store_closed")


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Configures logging, builds the location store once for the whole
    process, adds CORS middleware, includes the locations router, installs
    the exception handlers, and adds a health check endpoint.

    Returns:
        Configured FastAPI application instance ready for ASGI server.

    Example:
        The app can be used with uvicorn or other ASGI servers:
            >>> app = create_app()
            >>> # Or use the module-level app instance:
            >>> from routemate.main import app
    """
    settings = config.get_settings()
    configure_logging(settings.log_level, json_logs=settings.log_json)

    app = fastapi.FastAPI(
        title="RouteMate API",
        version="0.1.0",
        lifespan=_lifespan,
    )
    app.state.location_store = database.get_location_store(settings)
    logger.info(
        "application_configured",
        database_configured=settings.database_configured,
        strict_coordinates=settings.strict_coordinates,
    )

    app.include_router(locations.router)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    errors.register_exception_handlers(app)

    @app.get("/api/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "OK" if the service is running.
        """
        return {"status": "OK", "message": "RouteMate API is running"}

    return app


app = create_app()

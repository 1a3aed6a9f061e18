"""Error taxonomy and FastAPI exception handlers.

Every failure a location operation can report is a RouteMateError subclass
carrying the HTTP status it maps to. The handlers registered by
register_exception_handlers() turn them into ``{"error": message}`` bodies,
map FastAPI's request validation errors to the same 400 shape, and catch
anything else as a generic 500 whose detail only reaches the server log.

Example:
    Wire the handlers into an application:
        >>> app = fastapi.FastAPI()
        >>> register_exception_handlers(app)
"""

from __future__ import annotations

import fastapi
from fastapi import exceptions, responses
from starlette import status

from routemate.core.logging import get_logger

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Something went wrong!"


class RouteMateError(Exception):
    """Base class for errors reported to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(RouteMateError):
    """The persistence store is not configured."""

    def __init__(self, message: str = "Database not configured") -> None:
        super().__init__(message)


class ValidationError(RouteMateError):
    """Caller input is missing or malformed."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(RouteMateError):
    """No location matches the requested identifier."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Location not found") -> None:
        super().__init__(message)


class UpstreamError(RouteMateError):
    """A call into the persistence store failed.

    The message is generic; collaborator detail is logged where the failure
    is caught.
    """


def _error_response(status_code: int, message: str) -> responses.JSONResponse:
    return responses.JSONResponse(
        status_code=status_code,
        content={"error": message},
    )


async def handle_routemate_error(
    request: fastapi.Request,
    exc: RouteMateError,
) -> responses.JSONResponse:
    """Render a RouteMateError with its own status code.

    UpstreamError is not logged again; the store detail was logged where
    the failure was caught.
    """
    if isinstance(exc, UpstreamError):
        return _error_response(exc.status_code, exc.message)

    failed = exc.status_code >= 500
    log = logger.error if failed else logger.info
    log(
        "request_failed" if failed else "request_rejected",
        error_type=type(exc).__name__,
        error_message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(exc.status_code, exc.message)


async def handle_request_validation_error(
    request: fastapi.Request,
    exc: exceptions.RequestValidationError,
) -> responses.JSONResponse:
    """Report malformed request bodies and parameters as 400s."""
    fields = sorted(
        {
            ".".join(
                part
                for part in error.get("loc", ())[1:]
                if isinstance(part, str)
            )
            for error in exc.errors()
        }
        - {""}
    )
    message = (
        f"Invalid request: {', '.join(fields)}" if fields else "Invalid request"
    )
    logger.info(
        "request_rejected",
        error_type="RequestValidationError",
        error_message=message,
        status_code=status.HTTP_400_BAD_REQUEST,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(status.HTTP_400_BAD_REQUEST, message)


async def handle_unexpected_error(
    request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    """Catch-all for uncaught faults: log everything, tell the caller little."""
    logger.error(
        "unhandled_error",
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        INTERNAL_ERROR_MESSAGE,
    )


def register_exception_handlers(app: fastapi.FastAPI) -> None:
    """Install the error handlers on a FastAPI application.

    Args:
        app: Application to configure.
    """
    app.add_exception_handler(
        RouteMateError,
        handle_routemate_error,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        exceptions.RequestValidationError,
        handle_request_validation_error,  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, handle_unexpected_error)

"""Structured logging configuration.

Routes both structlog and standard library records through one handler so
uvicorn, psycopg2 and application events share a format: JSON lines in
deployments, a console renderer when ``LOG_JSON=false``.
"""

import logging
from typing import cast

import structlog
from structlog import dev, processors, stdlib
from structlog.stdlib import BoundLogger

LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def configure_logging(level: str = "info", json_logs: bool = True) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level name (see LOG_LEVELS); unknown names fall back
            to info.
        json_logs: Render JSON when True, human-readable console output
            otherwise.
    """
    log_level = LOG_LEVELS.get(level.lower(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    shared_processors: list[structlog.types.Processor] = [
        stdlib.add_logger_name,
        stdlib.add_log_level,
        stdlib.PositionalArgumentsFormatter(),
        processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        # ConsoleRenderer formats exc_info on its own
        shared_processors.append(processors.dict_tracebacks)

    structlog.configure(
        processors=[
            stdlib.filter_by_level,
            *shared_processors,
            stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=stdlib.LoggerFactory(),
        wrapper_class=stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        processors.JSONRenderer() if json_logs else dev.ConsoleRenderer()
    )
    handler = logging.StreamHandler()
    handler.setLevel(log_level)
    handler.setFormatter(
        stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    # Clear existing handlers to prevent duplicates
    root_logger.handlers = [handler]


def get_logger(name: str | None = None) -> BoundLogger:
    """Get a structured logger, optionally named after its module."""
    return cast(BoundLogger, structlog.get_logger(name))

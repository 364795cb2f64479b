"""
Structured logging configuration using structlog.
Outputs JSON in production, pretty-printed in development.
Request IDs come from the middleware; branch, booking and operation ids are
bound per request and per lifecycle operation, all through contextvars.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from reservation_engine.core.config import get_settings


def setup_logging() -> None:
    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.ENVIRONMENT == "production":
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ]
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Silence noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def reservation_context(
    operation: Optional[str] = None,
    branch_id: Optional[int] = None,
    booking_id: Optional[int] = None,
) -> Iterator[None]:
    """
    Attach the operation, branch and booking to every log line emitted inside
    the block, next to the request ID bound by the middleware. Unknown values
    are left out rather than logged as null.
    """
    ids = {"operation": operation, "branch_id": branch_id, "booking_id": booking_id}
    with structlog.contextvars.bound_contextvars(**{k: v for k, v in ids.items() if v is not None}):
        yield


def bind_path_ids(path_params: dict) -> None:
    """Bind branch_id / booking_id taken from a request path for the rest of the request."""
    ids = {key: path_params[key] for key in ("branch_id", "booking_id") if key in path_params}
    if ids:
        structlog.contextvars.bind_contextvars(**ids)

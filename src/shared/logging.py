"""Logging setup for the Carts API and the storefront cart client.

structlog shapes every event and the stdlib handlers carry it: to stdout and
to rotating files named after the service that configured logging. Events
render as JSON in production and staging and as console lines elsewhere.
"""

import contextlib
import logging
import logging.handlers
import os
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import structlog

# Chatty at INFO on every request or connection
QUIET_LOGGERS = ("protean", "httpx", "httpcore", "asyncio")

_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

_MAX_BYTES = 10 * 1024 * 1024


def get_environment() -> str:
    return (os.getenv("ENV") or os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level() -> str:
    """LOG_LEVEL if set, otherwise the default for the environment."""
    return os.getenv("LOG_LEVEL", _LEVELS.get(get_environment(), "INFO"))


def _rotating_handler(path: Path, level: int | str) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=_MAX_BYTES,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _processors(environment: str) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if environment in ("production", "staging"):
        return processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    # The console renderer formats exceptions itself, through rich
    return processors + [
        structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=True, max_frames=2),
        )
    ]


def configure_logging(service: str = "shopstream-carts", log_dir: str | os.PathLike | None = None) -> None:
    """Route all log output for `service`.

    Files land in `log_dir` (LOG_DIR, default "logs") as `<service>.log` and
    `<service>_error.log`. Calling it again replaces the previous handlers.
    """
    environment = get_environment()
    level = get_log_level()

    directory = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    directory.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [
        console,
        _rotating_handler(directory / f"{service}.log", level),
        _rotating_handler(directory / f"{service}_error.log", logging.ERROR),
    ]
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_processors(environment),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.get_logger(__name__).info("logging_configured", service=service, environment=environment, level=level)


def add_context(**kwargs: Any) -> None:
    """Bind values into every later event in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context(*keys: str) -> None:
    """Unbind `keys`, or everything when none are given."""
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()


@contextlib.contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind values for the duration of a block, restoring earlier bindings after."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield

"""structlog setup shared by the classification and tracking packages.

Library modules only call :func:`get_logger`; the driver (or a test) calls
:func:`configure_logging` once at startup.
"""
import logging
import sys
from typing import TextIO

import structlog
from structlog._config import BoundLoggerLazyProxy

_RENDERERS = ("console", "json")


def configure_logging(
    log_format: str = "console",
    log_level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Route structlog events to ``stream`` (stderr by default).

    Args:
        log_format: "console" for human-readable output, "json" for one JSON
            object per line.
        log_level: Standard Python log level string (DEBUG, INFO, WARNING, ERROR).
        stream: Output stream; stdout is left to the tracking results.
    """
    if log_format not in _RENDERERS:
        raise ValueError(f"Unknown log format '{log_format}'. Expected one of {_RENDERERS}")

    stream = stream or sys.stderr
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        # Module loggers are created at import time; reconfiguring must reach them.
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structlog logger that tags every event with ``logger=name``."""
    # Same lazy proxy as structlog.get_logger, but the `logger` context key is
    # passed via initial_values so it does not collide with wrap_logger's `logger`.
    return BoundLoggerLazyProxy(None, initial_values={"logger": name}, logger_factory_args=())

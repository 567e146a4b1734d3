"""Structured logging for podwatcher.

Every record goes to stderr through the stdlib root logger, rendered by
structlog as one JSON object per line (or coloured console output when
``format_type`` is "console"). Controller identity travels in contextvars
so that each line carries the pod and action being watched.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "urllib3",
    "asyncio",
    "kubernetes",
)


def build_processors(format_type: str = "json") -> list[structlog.types.Processor]:
    """Return the structlog processor chain for ``format_type``.

    Raises:
        ValueError: For a format other than "json" or "console".
    """
    chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if format_type == "console":
        chain.append(structlog.dev.ConsoleRenderer(exception_formatter=structlog.dev.plain_traceback))
    elif format_type == "json":
        chain += [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    else:
        raise ValueError(f"unknown log format {format_type!r}")
    return chain


def configure_logging(
    level: str = "INFO",
    format_type: str = "json",
    service_name: str = "podwatcher",
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Logging level name, case insensitive.
        format_type: "json" or "console".
        service_name: Bound as ``service`` on every entry.
    """
    numeric_level = logging.getLevelName(level.upper())

    structlog.configure(
        processors=build_processors(format_type),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stdout stays free for CLI output.
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(handlers=[handler], level=numeric_level, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)


class LogContext:
    """Bind log context for the duration of a ``with`` block.

    Values bound by an enclosing block are restored on exit.

    Example:
        with LogContext(pod="jobs/backup-x7k2"):
            log.info("fetching_pod_status")
    """

    def __init__(self, **kwargs: Any) -> None:
        self._context = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._tokens:
            structlog.contextvars.reset_contextvars(**self._tokens)

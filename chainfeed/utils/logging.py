"""structlog setup for chainfeed.

Feed output owns stdout, so every log line goes to stderr (or the stream
passed in). Log calls use snake_case event names with keyword context; the
keyword ``event`` is taken by structlog itself, so contract events are logged
as ``event_name``.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional, TextIO

import structlog

LOG_FORMATS = ("json", "console")


def configure_logging(
    level: str = "INFO",
    log_format: str = "json",
    stream: Optional[TextIO] = None,
) -> None:
    """Route stdlib logging and structlog to one stream.

    Args:
        level: DEBUG, INFO, WARNING or ERROR; anything else means INFO.
        log_format: ``json`` for one object per line, ``console`` for humans.
        stream: Defaults to stderr.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    if log_format not in LOG_FORMATS:
        raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)
    # web3 and its HTTP stack are chatty at DEBUG
    for noisy in ("web3", "urllib3", "aiohttp"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.INFO))

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.set_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> "structlog.stdlib.BoundLogger":
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach context (feed, principal) to every log line of the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)

"""Structured logging configuration."""

from __future__ import annotations

import logging

import structlog


_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def normalize_level(level: str) -> str:
    """Canonical stdlib level name; unknown names fall back to INFO."""
    name = str(level).strip().upper()
    name = _LEVEL_ALIASES.get(name, name)
    return name if name in LOG_LEVELS else "INFO"


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog once for the whole process.

    Every event is rendered as one line with an ISO timestamp, the level and
    the bound key/value fields. ``fmt="console"`` switches to the human
    readable renderer for local runs.
    """
    numeric_level = getattr(logging, normalize_level(level))
    renderer = (
        structlog.dev.ConsoleRenderer()
        if str(fmt).lower() == "console"
        else structlog.processors.JSONRenderer(sort_keys=True)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn and httpx use stdlib logging.
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

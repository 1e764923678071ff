"""Logging configuration for the portal service."""

from __future__ import annotations

import logging
import os

import structlog


def build_processors(json_logs: bool) -> list:
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        # JSON output needs the traceback as a string; the console renderer formats it itself.
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def configure_logging() -> None:
    level_name = os.getenv("PORTAL_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format="%(message)s")

    json_logs = os.getenv("PORTAL_LOG_JSON", "false").strip().lower() in {"1", "true", "yes", "y"}
    structlog.configure(
        processors=build_processors(json_logs),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy library loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

"""Structlog configuration helpers for structured logging."""

from __future__ import annotations

import logging

import structlog

LOG_LEVEL = logging.INFO


def configure_logging(level: int = LOG_LEVEL) -> None:
    """Configure structlog to emit JSON-formatted logs."""

    timestamper = structlog.processors.TimeStamper(fmt="iso")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level)
    # slack_sdk DEBUG output includes request bodies and tokens
    logging.getLogger("slack_sdk").setLevel(max(level, logging.INFO))

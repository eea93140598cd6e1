# src/checkout_bff/safe_logging.py
"""
Structured logging for the checkout BFF.

Payment recovery runs while the user is already in a degraded state, so
everything that identifies them is redacted before it reaches a log line:
e-mails keep only their domain, ids and tokens keep a short prefix.
"""

import logging
from typing import Any, Optional

import structlog

from .config import settings

ID_PREFIX_LENGTH = 8


def configure_logging(level: str = settings.LOG_LEVEL, json_output: bool = settings.LOG_JSON) -> None:
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> Any:
    return structlog.get_logger().bind(component=component)


def redact_id(value: Optional[str]) -> Optional[str]:
    """Keep the first 8 characters of a user id, order id or token."""
    if not value:
        return None
    if len(value) <= ID_PREFIX_LENGTH:
        return value
    return f"{value[:ID_PREFIX_LENGTH]}..."


def redact_email(email: Optional[str]) -> Optional[str]:
    """Keep only the domain of an e-mail address."""
    if not email:
        return None
    if "@" not in email:
        return "***"
    return f"***@{email.rsplit('@', 1)[1]}"


configure_logging()

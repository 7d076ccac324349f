"""
Logging configuration for cueplay.

This module configures structlog for JSON logging across the application.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

from .settings import settings

# Keys whose values are always masked
SECRET_KEYS = (
    "token",
    "password",
    "secret",
    "api_key",
    "authorization",
)

# Patterns to redact in string values
SECRET_PATTERNS = (
    re.compile(r"(://[^:/@\s]+:)[^@\s]+(@)"),  # URLs with credentials
    re.compile(r"((?:token|password|api_key)=)[^&\s]+", re.IGNORECASE),
)


def redact_value(value: Any) -> Any:
    """Mask credentials embedded in strings, recursing into dicts and lists."""
    if isinstance(value, str):
        for pattern in SECRET_PATTERNS:
            value = pattern.sub(r"\1***\2" if pattern.groups == 2 else r"\1***", value)
        return value
    if isinstance(value, dict):
        return {k: redact_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [redact_value(item) for item in value]
    return value


def redact_secrets(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Redact sensitive information from log events."""
    for key in list(event_dict.keys()):
        if any(secret in key.lower() for secret in SECRET_KEYS):
            event_dict[key] = "***REDACTED***"
        else:
            event_dict[key] = redact_value(event_dict[key])
    return event_dict


def configure_logging(level: str | None = None) -> None:
    """Configure structlog for JSON logging and the stdlib root logger."""
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(levelname)s:     %(name)s %(message)s",
        stream=sys.stderr,
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            redact_secrets,  # Redact secrets before rendering
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a configured logger with service context."""
    logger = structlog.get_logger(name)
    return logger.bind(service="cueplay", env=settings.env)

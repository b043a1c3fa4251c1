"""Structured logging configuration using structlog.

Every event carries the app name, level, logger and, when bound, the
request id and caller uid. Purchase and device tokens are truncated and
e-mail addresses masked before rendering, whichever module logged them.
"""

import logging
import os
import sys
from typing import Any, Optional

import structlog
from structlog.typing import EventDict, Processor

TOKEN_KEEP = 16
TOKEN_FIELDS = frozenset({"purchase_token", "device_token", "token"})
EMAIL_FIELDS = frozenset({"email", "old_email", "new_email"})

# Chatty client libraries, kept at WARNING unless LOG_LEVEL=DEBUG
QUIET_LOGGERS = (
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
    "google.auth",
    "google.api_core",
    "urllib3",
    "httplib2",
)


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-wide context to log events."""
    event_dict["app"] = "play-reconciler"
    return event_dict


def add_log_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add log level to event dict if not present."""
    if "level" not in event_dict:
        event_dict["level"] = method_name.upper()
    return event_dict


def drop_debug_in_production(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Drop DEBUG logs if not in debug mode."""
    if method_name == "debug" and not is_debug_mode():
        raise structlog.DropEvent
    return event_dict


def short_token(token: Optional[str], keep: int = TOKEN_KEEP) -> Optional[str]:
    """Truncate a purchase or device token for logging."""
    if token is None:
        return None
    return token[:keep] + "..." if len(token) > keep else token


def mask_email(email: Optional[str]) -> Optional[str]:
    """Keep the first character of the local part and the domain."""
    if not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"


def redact_sensitive(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Truncate token fields and mask e-mail fields."""
    for key in TOKEN_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and not value.endswith("..."):
            event_dict[key] = short_token(value)
    for key in EMAIL_FIELDS.intersection(event_dict):
        if isinstance(event_dict[key], str):
            event_dict[key] = mask_email(event_dict[key])
    return event_dict


def is_debug_mode() -> bool:
    """Check if debug mode is enabled via LOG_LEVEL environment variable."""
    return os.getenv("LOG_LEVEL", "INFO").upper() == "DEBUG"


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    include_timestamp: bool = True,
) -> None:
    """Configure structlog for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output JSON; if False, use colored console output
        include_timestamp: Include ISO8601 timestamps in logs
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if numeric_level > logging.DEBUG:
        processors.append(drop_debug_in_production)

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a logger bound to a module name."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind request-scoped fields (request_id, uid, pubsub_message_id)."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all context variables."""
    structlog.contextvars.clear_contextvars()

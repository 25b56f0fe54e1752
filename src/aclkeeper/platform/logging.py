"""
aclkeeper Structured Logging

structlog for the service and API layers; stdlib logging (storage adapter,
uvicorn) is routed to the same stream. Request-scoped fields such as the
caller's id are bound with ``bind_request_context`` and appear on every
event logged while handling that request.
"""

import logging
import sys
from typing import Optional

import structlog

from aclkeeper.platform.config import settings

_configured = False


def configure_logging(level: Optional[str] = None, json: Optional[bool] = None) -> None:
    """Configure structured logging once per process; later calls are ignored."""
    global _configured
    if _configured:
        return

    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    if json is None:
        json = settings.APP_ENV == "production"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )
    _configured = True


def bind_request_context(**fields) -> None:
    """Attach fields (user_id, resource_type, ...) to every log event of the current request."""
    structlog.contextvars.bind_contextvars(**{k: v for k, v in fields.items() if v is not None})


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)

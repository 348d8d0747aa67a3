"""
structlog setup for SocialPulse.

Every event carries the service name and the dashboard's local zone, and
request-scoped identity (request id, actor) is bound through contextvars by
the audited mutations.

Version: logging_v1
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from socialpulse.config import get_settings

SERVICE_NAME = "socialpulse"


def stamp_service(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("local_timezone", get_settings().local_timezone)
    return event_dict


def severity_field(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mirror the level into ``severity`` for log shippers that expect it."""
    event_dict["severity"] = method_name.upper()
    return event_dict


def _renderer(fmt: str, dev_mode: bool, colors: bool) -> Processor:
    if fmt == "json" and not dev_mode:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=colors)


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Route structlog through stdlib logging on stdout.

    Args:
        level: Overrides ``LOG_LEVEL``
        fmt: ``json`` or ``console``; overrides ``LOG_FORMAT``
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        stamp_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        severity_field,
    ]
    structlog.configure(
        processors=shared
        + [_renderer(fmt or settings.log_format, settings.dev_mode, not settings.testing)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_request(request_id: str, actor_user_id: str = "") -> None:
    """Attach request identity to every event logged in this context."""
    structlog.contextvars.bind_contextvars(request_id=request_id, actor_user_id=actor_user_id)


def log_event(logger: structlog.BoundLogger, level: str, event: str, **kwargs: Any) -> None:
    """Emit ``event`` at a level picked at runtime (unknown levels log as info)."""
    getattr(logger, level.lower(), logger.info)(event, **kwargs)

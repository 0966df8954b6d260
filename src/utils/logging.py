# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Every module logs through the standard library (``logging.getLogger``).
setup_logging routes those records through structlog so each line carries
the gateway context bound for the request: request id, caller, organization
and, once a decision is made, the feature, tier and outcome. Development
renders colored console lines, other environments render JSON.

Speech tokens and usage server keys never reach the output; fields with
those names are masked.

Example:
    >>> from src.utils.logging import setup_logging, bind_context
    >>> from src.core.config import get_settings
    >>> setup_logging(get_settings())
    >>> bind_context(user_id="123", organization_id="school-1")
    >>> logging.getLogger("src.domains.quota").info("Quota checked")
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Fields bound per request and per gateway decision.
CONTEXT_FIELDS = (
    "request_id",
    "path",
    "user_id",
    "organization_id",
    "feature",
    "tier",
    "decision",
)

SECRET_FIELDS = frozenset({"token", "api_key", "authorization"})

NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "httpcore",
    "redis",
    "asyncio",
    "azure",
)


def drop_unset_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Remove context fields bound as None, e.g. anonymous health checks."""
    for key in CONTEXT_FIELDS:
        if key in event_dict and event_dict[key] is None:
            del event_dict[key]
    return event_dict


def mask_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace credential-bearing fields with a fixed marker."""
    for key in SECRET_FIELDS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


class _GatewayHandler(logging.StreamHandler):
    """Root handler installed by setup_logging; replaced on reconfiguration."""


def setup_logging(settings: "Settings") -> None:
    """Configure structured logging for the application.

    Calling it again replaces the handler it installed earlier, so app
    factories may run it once per application instance.

    Args:
        settings: Application settings containing log_level and debug flag.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        drop_unset_context,
        mask_secrets,
    ]

    render_processors: list[Processor]
    if settings.is_development or settings.debug:
        render_processors = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        render_processors = [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *render_processors,
        ],
    )
    handler = _GatewayHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in [h for h in root.handlers if isinstance(h, _GatewayHandler)]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(log_level)


def bind_context(**kwargs: object) -> None:
    """Bind fields to every subsequent log line in this context.

    Example:
        >>> bind_context(feature="homework_help", tier="pro")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables at the end of a request."""
    structlog.contextvars.clear_contextvars()

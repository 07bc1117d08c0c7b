"""
layerstore logging - structured logging via structlog.

Manifesto:
    A persistence layer is where production incidents surface first:
    constraint violations, lost updates, surprising soft deletes. Logs must
    say which table, which operation and which native error, in a form log
    aggregation can index.

    - **Standardizes:** Same log format across every service using layerstore
    - **Structures:** JSON output for log aggregation (ELK, etc.)
    - **Flexes:** Console output for development, JSON for production

Architecture:
    ::

        Configuration Flow:
        ┌────────────────────────────────────────────────────────────┐
        │ configure_logging(level="INFO", json_format=True,          │
        │                   service="orders-api")                    │
        │     ↓                                                       │
        │ structlog configured with processor chain:                  │
        │   1. TimeStamper                                            │
        │   2. add_log_level                                          │
        │   3. add_service_metadata                                   │
        │   4. elasticsearch_compatible                               │
        │   5. JSONRenderer (or ConsoleRenderer for dev)              │
        └────────────────────────────────────────────────────────────┘

        Usage Flow:
        ┌────────────────────────────────────────────────────────────┐
        │ logger = get_logger(__name__)                              │
        │ logger.debug("sql_executed", table="users", op="store")    │
        └────────────────────────────────────────────────────────────┘

Examples:
    >>> from layerstore.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True, service="orders-api")
    >>> logger = get_logger(__name__)
    >>> logger.info("entity_stored", table="orders", key=42)

    Driven by ``LAYERSTORE_LOG_LEVEL`` / ``LAYERSTORE_JSON_LOGS`` /
    ``LAYERSTORE_SERVICE_NAME``:

    >>> configure_logging(settings=StoreSettings())

Tags:
    logging, structlog, observability, json-logging, layerstore

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from layerstore.core.settings import StoreSettings

# Store service name for metadata
_SERVICE_NAME = "layerstore"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str | None = None,
    add_timestamp: bool = True,
    *,
    settings: StoreSettings | None = None,
) -> None:
    """Configure structlog for the process.

    Explicit arguments win over ``settings``; anything left unset falls back
    to ``settings`` (``log_level``, ``json_logs``, ``service_name``) and then
    to INFO / auto-detected format / ``"layerstore"``.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Value stamped as ``service.name``
        add_timestamp: Include ISO timestamp in logs
        settings: Source for whatever the other arguments leave as ``None``
    """
    global _SERVICE_NAME
    if settings is not None:
        level = level or settings.log_level
        json_format = settings.json_logs if json_format is None else json_format
        service = service or settings.service_name
    level = (level or "INFO").upper()
    _SERVICE_NAME = service or "layerstore"

    if json_format is None:
        json_format = not sys.stdout.isatty()

    structlog.configure(
        processors=_processor_chain(json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _processor_chain(json_format: bool, add_timestamp: bool) -> list[Processor]:
    chain: list[Processor] = [structlog.processors.TimeStamper(fmt="iso")] if add_timestamp else []
    chain += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]
    if json_format:
        return [*chain, _elasticsearch_compatible, structlog.processors.JSONRenderer()]
    return [*chain, structlog.dev.ConsoleRenderer(colors=True)]


def get_logger(name: str | None = None) -> Any:
    """Structlog logger, named after the calling module by convention."""
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(request_id="abc123")
        logger.info("entity_stored")  # Includes request_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(table="orders", request_id="abc123"):
            repo.store(order)
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]

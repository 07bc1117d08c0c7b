"""Settings for services embedding layerstore.

``StoreSettings`` gathers the knobs the persistence layer reads at startup:
where the backing store lives, how chatty logging is, and the default page
size used when a caller does not paginate explicitly.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first query
    - **Environment-driven:** Reads ``LAYERSTORE_*`` env vars and ``.env``
    - **Sensible defaults:** In-memory SQLite, page size 20

Examples:
    >>> from layerstore.core.settings import StoreSettings
    >>> settings = StoreSettings()
    >>> settings.default_page_size
    20

    Subclass per service with its own prefix:

    >>> class OrdersSettings(StoreSettings):
    ...     model_config = {"env_prefix": "ORDERS_"}

Tags:
    settings, configuration, pydantic, environment, layerstore

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Settings shared by every service that persists through layerstore.

    Fields
    ──────
    database_url      : Backing store URL handed to ``create_connection``
    echo_sql          : Log every SQL statement at info (debug otherwise); SQLAlchemy echo
    log_level         : Structlog log level
    json_logs         : Force JSON (True) / console (False) log rendering
    service_name      : ``service.name`` stamped on every log line
    default_page_size : Rows per page when a read is not paginated
    """

    model_config = SettingsConfigDict(
        env_prefix="LAYERSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_url: str = "sqlite:///:memory:"
    echo_sql: bool = False

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
    service_name: str = "layerstore"

    # ── Querying ─────────────────────────────────────────────────
    default_page_size: int = Field(default=20, ge=1)

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return level


__all__ = ["StoreSettings"]

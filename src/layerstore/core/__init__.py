"""layerstore core -- ambient primitives the persistence layer stands on.

Manifesto:
    The persistence engine needs a handful of cross-cutting pieces that have
    nothing to do with entities: a handle protocol, SQL dialects, a typed
    error hierarchy, structured logging, and settings. Keeping them here
    lets ``layerstore.persistence`` read as pure persistence logic.

    - **Protocol-first:** Connection, Cursor and Dialect are protocols
    - **Explicit handles:** No global connection; callers pass one in
    - **Typed errors:** Every failure surfaces as a ``LayerStoreError``

Architecture::

    protocols.py       Connection / Cursor / EntityFactory protocols
    dialect.py         SQL dialect abstraction (5 backends)
    connection.py      Connection factory (create_connection)
    orm/               SQLAlchemy engine + Session → Connection bridge
    errors.py          Structured error hierarchy
    logging.py         structlog configuration
    settings.py        StoreSettings (pydantic-settings)
    timestamps.py      UTC helpers for timestamp columns

Tags:
    layerstore, core, primitives

Doc-Types:
    package-overview
"""

from layerstore.core.connection import ConnectionInfo, SqliteConnection, create_connection
from layerstore.core.dialect import (
    DB2Dialect,
    Dialect,
    MySQLDialect,
    OracleDialect,
    PostgreSQLDialect,
    SQLiteDialect,
    get_dialect,
    register_dialect,
)
from layerstore.core.errors import (
    BackingStoreError,
    ConfigError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    InvalidConditionShapeError,
    LayerStoreError,
    MissingPrimaryKeyError,
    PersistenceValidationError,
    SchemaDefinitionError,
    TranslatedConstraintError,
    UnknownAttributeError,
    UnsupportedOperationError,
)
from layerstore.core.logging import configure_logging, get_logger
from layerstore.core.protocols import Connection, Cursor, EntityFactory
from layerstore.core.settings import StoreSettings

__all__ = [
    # connection
    "ConnectionInfo",
    "SqliteConnection",
    "create_connection",
    # dialect
    "DB2Dialect",
    "Dialect",
    "MySQLDialect",
    "OracleDialect",
    "PostgreSQLDialect",
    "SQLiteDialect",
    "get_dialect",
    "register_dialect",
    # errors
    "BackingStoreError",
    "ConfigError",
    "DatabaseError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConditionShapeError",
    "LayerStoreError",
    "MissingPrimaryKeyError",
    "PersistenceValidationError",
    "SchemaDefinitionError",
    "TranslatedConstraintError",
    "UnknownAttributeError",
    "UnsupportedOperationError",
    # logging / settings
    "StoreSettings",
    "configure_logging",
    "get_logger",
    # protocols
    "Connection",
    "Cursor",
    "EntityFactory",
]

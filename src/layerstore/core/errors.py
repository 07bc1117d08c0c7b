"""
Structured error types for layerstore.

Provides a typed hierarchy of errors with metadata for categorization,
reporting and root cause analysis through error chaining.

Instead of generic exceptions that lose context, LayerStoreError and its
subclasses carry:
- **Category:** What kind of error (validation, database, config)
- **Context:** Metadata such as table, attribute, operation, custom fields
- **Cause:** Chained underlying exception (usually the driver error)

Manifesto:
    - **Typed Error Hierarchy:** Callers catch what they can handle
    - **No Retry Semantics:** The persistence core never retries; backing
      store failures surface immediately and retry is a caller concern
    - **Rich Context:** Errors carry metadata for logging
    - **Error Chaining:** Preserve the driver exception as ``__cause__``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      LayerStoreError                             │
        │              (category, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  PersistenceValidationError        DatabaseError                 │
        │  (VALIDATION, raised sync)         (DATABASE, from the store)    │
        │       │                                 │                        │
        │  UnknownAttributeError             BackingStoreError             │
        │  MissingPrimaryKeyError            TranslatedConstraintError     │
        │  InvalidConditionShapeError                                      │
        │  UnsupportedOperationError         ConfigError                   │
        │  SchemaDefinitionError             (CONFIG)                      │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = UnknownAttributeError("nickname", owner="User")
    >>> error.attribute
    'nickname'
    >>> error.to_dict()["category"]
    'VALIDATION'

    Chaining the driver error:

    >>> try:
    ...     conn.execute("INSERT ...")
    ... except sqlite3.Error as e:
    ...     raise BackingStoreError("constraint failed", native_code=19, cause=e)

Guardrails:
    ❌ DON'T: Raise bare Exception from the persistence layer
    ✅ DO: Use the matching LayerStoreError subclass

    ❌ DON'T: Swallow the driver exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, error-context, layerstore

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    - **VALIDATION:** Caller supplied something the schema rejects
    - **DATABASE:** The backing store refused or failed a statement
    - **CONFIG:** Settings or connection URLs are wrong
    - **INTERNAL / UNKNOWN:** Everything else
    """

    VALIDATION = "VALIDATION"
    DATABASE = "DATABASE"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields for the metadata persistence errors usually need; anything
    else goes into ``metadata``. ``to_dict()`` serializes non-None fields.

    Examples:
        >>> ctx = ErrorContext(table="users", operation="store")
        >>> ctx.to_dict()
        {'table': 'users', 'operation': 'store'}

    Attributes:
        table: Table the failing statement targeted
        operation: Engine operation (store, update, delete_by_conditions, ...)
        attribute: Attribute name involved, if any
        metadata: Additional key-value pairs
    """

    table: str | None = None
    operation: str | None = None
    attribute: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["table", "operation", "attribute"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class LayerStoreError(Exception):
    """
    Base exception for all layerstore errors.

    Attributes:
        message: Human-readable error message
        category: ErrorCategory for routing
        context: ErrorContext with metadata
        cause: Original exception (if wrapped)
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> LayerStoreError:
        """
        Add context to this error (fluent API).

        Usage:
            raise BackingStoreError("Failed").with_context(table="users")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS (raised synchronously, never swallowed)
# =============================================================================


class PersistenceValidationError(LayerStoreError):
    """Caller input the schema or the condition vocabulary rejects."""

    default_category = ErrorCategory.VALIDATION


class UnknownAttributeError(PersistenceValidationError, AttributeError):
    """Attribute name not declared by the entity or its schema.

    Also an ``AttributeError`` so ``getattr(entity, name, default)`` keeps
    working on entities.
    """

    def __init__(self, attribute: str, *, owner: str | None = None, **kwargs: Any):
        self.attribute = attribute
        self.owner = owner
        where = f" on {owner}" if owner else ""
        super().__init__(f"Unknown attribute '{attribute}'{where}", **kwargs)
        self.context.attribute = attribute


class MissingPrimaryKeyError(PersistenceValidationError):
    """Patch/delete-by-key or composite store without the full key."""

    def __init__(self, message: str, *, missing: list[str] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.missing = list(missing or [])

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.missing:
            result["missing"] = self.missing
        return result


class InvalidConditionShapeError(PersistenceValidationError):
    """Malformed condition tuple, or ``in``/``between`` without a list."""

    def __init__(self, message: str, *, condition: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.condition = condition


class UnsupportedOperationError(PersistenceValidationError):
    """Operation not defined for this schema (e.g. batch store on composite key)."""


class SchemaDefinitionError(PersistenceValidationError):
    """An AttributeSchema was declared inconsistently."""


# =============================================================================
# DATABASE ERRORS (re-raised from the backing store)
# =============================================================================


class DatabaseError(LayerStoreError):
    """Backing store refused or failed a statement."""

    default_category = ErrorCategory.DATABASE


class BackingStoreError(DatabaseError):
    """Unmatched native failure; carries the driver's code and message."""

    def __init__(
        self,
        message: str,
        *,
        native_code: Any = None,
        native_message: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.native_code = native_code
        self.native_message = native_message if native_message is not None else message

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.native_code is not None:
            result["native_code"] = self.native_code
        result["native_message"] = self.native_message
        return result


class TranslatedConstraintError(DatabaseError):
    """Known constraint violation mapped to a friendly message.

    ``fields`` maps attribute/column names to per-field messages, ready for
    an API layer to render next to form inputs.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        fields: Mapping[str, str] | None = None,
        status: int = 400,
        native_code: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.code = code
        self.fields = dict(fields or {})
        self.status = status
        self.native_code = native_code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.code:
            result["code"] = self.code
        if self.fields:
            result["fields"] = self.fields
        result["status"] = self.status
        return result


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(LayerStoreError):
    """Configuration error (settings, connection URLs)."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, LayerStoreError):
        return error.category
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "LayerStoreError",
    # Validation
    "PersistenceValidationError",
    "UnknownAttributeError",
    "MissingPrimaryKeyError",
    "InvalidConditionShapeError",
    "UnsupportedOperationError",
    "SchemaDefinitionError",
    # Database
    "DatabaseError",
    "BackingStoreError",
    "TranslatedConstraintError",
    # Config
    "ConfigError",
    # Utilities
    "categorize_error",
]

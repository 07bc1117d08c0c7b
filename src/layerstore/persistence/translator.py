"""ErrorTranslator: native driver failures → layerstore error taxonomy.

Manifesto:
    A unique-index violation is a user-facing fact ("email already taken"),
    not a stack trace. Schemas register friendly messages per native error
    code; the translator looks them up and raises a typed error the API
    layer can render, while anything unrecognised still surfaces with the
    driver's own code and message.

Architecture:
    ::

        driver exception (sqlite3.Error / sqlalchemy DBAPIError / …)
              │  unwrap .orig
              ▼
        native code + message
              │
              ├─▶ schema.error_codes ──hit──▶ TranslatedConstraintError
              ├─▶ COMMON_ERROR_CODES ─hit──▶ TranslatedConstraintError
              ├─▶ no code at all ─────────▶ BackingStoreError("Database communication error.")
              └─▶ otherwise ──────────────▶ BackingStoreError(native code, native message)

    The storage engine owns one translator (composition); nothing inherits
    error behaviour.

Examples:
    >>> schema = AttributeSchema(
    ...     table="users",
    ...     attributes={"id": "id", "email": "email"},
    ...     error_codes={
    ...         2067: [ErrorRule("Email already taken.", match="users.email",
    ...                          code="email_taken", fields={"email": "Taken."})],
    ...     },
    ... )
    >>> translator = ErrorTranslator(schema)

Tags:
    errors, translation, constraints, driver, layerstore

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from typing import Any

from sqlalchemy.exc import DBAPIError

from layerstore.core.errors import BackingStoreError, DatabaseError, TranslatedConstraintError
from layerstore.persistence.schema import (
    AttributeSchema,
    ErrorRule,
    ErrorTableEntry,
    resolve_error_entry,
)

COMMUNICATION_ERROR_MESSAGE = "Database communication error."

DEFAULT_DRIVER_ERRORS: tuple[type[BaseException], ...] = (sqlite3.Error, DBAPIError)

COMMON_ERROR_CODES: Mapping[Any, ErrorTableEntry] = {
    1049: [
        ErrorRule(
            "Unknown database.",
            match=" ",
            code="unknown_database",
            fields={"identifier": "NULL"},
        )
    ],
}


def unwrap_driver_error(exc: BaseException) -> BaseException:
    """Return the DB-API exception beneath SQLAlchemy's wrapper, if any."""
    orig = getattr(exc, "orig", None)
    return orig if isinstance(orig, BaseException) else exc


def native_error_code(exc: BaseException) -> Any:
    """Best-effort native code: sqlite, PostgreSQL SQLSTATE, errno, args[0]."""
    for attr in ("sqlite_errorcode", "pgcode", "sqlstate", "errno"):
        code = getattr(exc, attr, None)
        if code is not None:
            return code
    args = getattr(exc, "args", ())
    if args and isinstance(args[0], int) and not isinstance(args[0], bool):
        return args[0]
    return None


def native_error_message(exc: BaseException) -> str:
    args = getattr(exc, "args", ())
    # pymysql / MySQLdb: (code, message)
    if len(args) >= 2 and isinstance(args[0], int) and isinstance(args[1], str):
        return args[1]
    return str(exc)


def _code_candidates(exc: BaseException, code: Any) -> list[Any]:
    candidates = [code]
    # sqlite extended result codes carry the primary code in the low byte
    if isinstance(exc, sqlite3.Error) and isinstance(code, int) and code > 0xFF:
        candidates.append(code & 0xFF)
    return candidates


class ErrorTranslator:
    """Compose a schema's error table with the common table.

    Args:
        schema: Supplies ``error_codes`` and the table name for context.
        driver_errors: Exception types treated as backing-store failures.
        common_codes: Fallback table consulted after the schema's.
    """

    def __init__(
        self,
        schema: AttributeSchema,
        *,
        driver_errors: tuple[type[BaseException], ...] = DEFAULT_DRIVER_ERRORS,
        common_codes: Mapping[Any, ErrorTableEntry] = COMMON_ERROR_CODES,
    ) -> None:
        self.schema = schema
        self.driver_errors = driver_errors
        self.common_codes = common_codes

    def handles(self, exc: BaseException) -> bool:
        return isinstance(exc, self.driver_errors)

    def lookup(self, table: Mapping[Any, ErrorTableEntry], code: Any, message: str) -> ErrorRule | None:
        rules = resolve_error_entry(table, code)
        if not rules:
            return None
        for rule in rules:
            if rule.matches(message):
                return rule
        return None

    def translate(self, exc: BaseException, *, operation: str | None = None) -> DatabaseError:
        """Build (not raise) the layerstore error for a driver failure."""
        native = unwrap_driver_error(exc)
        code = native_error_code(native)
        message = native_error_message(native)

        if code is None:
            error: DatabaseError = BackingStoreError(
                COMMUNICATION_ERROR_MESSAGE, native_message=message, cause=exc
            )
        else:
            rule = None
            for candidate in _code_candidates(native, code):
                rule = self.lookup(self.schema.error_codes, candidate, message) or self.lookup(
                    self.common_codes, candidate, message
                )
                if rule is not None:
                    break
            if rule is not None:
                error = TranslatedConstraintError(
                    rule.message,
                    code=rule.code,
                    fields=rule.fields,
                    status=rule.status,
                    native_code=code,
                    cause=exc,
                )
            else:
                error = BackingStoreError(message, native_code=code, native_message=message, cause=exc)

        error.with_context(table=self.schema.table, operation=operation)
        return error


__all__ = [
    "COMMON_ERROR_CODES",
    "COMMUNICATION_ERROR_MESSAGE",
    "DEFAULT_DRIVER_ERRORS",
    "ErrorTranslator",
    "native_error_code",
    "native_error_message",
    "unwrap_driver_error",
]

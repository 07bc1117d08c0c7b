"""SQL dialect abstraction for backend-agnostic persistence.

Provides a ``Dialect`` protocol and concrete implementations for every
supported database backend. The storage engine uses ``Dialect`` methods to
generate SQL fragments (placeholders, pagination, date truncation, generated
key retrieval, transaction start) without importing or referencing any
specific database driver.

Manifesto:
    The storage engine must build the same statements for SQLite,
    PostgreSQL, MySQL, DB2 and Oracle. Without a dialect layer, SQL fragments
    are littered with backend-specific syntax that breaks when switching
    backends.

    - **One interface:** Dialect protocol for all SQL generation
    - **Zero coupling:** The engine never imports database drivers
    - **Testable:** SQLiteDialect for tests, PostgreSQLDialect for prod

Architecture::

    ┌──────────┐ ┌──────────────┐ ┌────────┐ ┌────────┐ ┌──────────┐
    │ SQLite   │ │ PostgreSQL   │ │  DB2   │ │ MySQL  │ │  Oracle  │
    │ ?, ?, ?  │ │ %s, %s, %s   │ │ ?, ?, ?│ │ %s,%s  │ │ :1, :2   │
    │ LIMIT    │ │ LIMIT        │ │ FETCH  │ │ LIMIT  │ │ FETCH    │
    │ date(x)  │ │ CAST AS DATE │ │ DATE(x)│ │ DATE(x)│ │ TRUNC(x) │
    └──────────┘ └──────────────┘ └────────┘ └────────┘ └──────────┘

Examples:
    >>> from layerstore.core.dialect import get_dialect, SQLiteDialect
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.paginate(10, 20)
    'LIMIT 10 OFFSET 20'

Guardrails:
    ❌ DON'T: Write backend-specific SQL in the storage engine
    ✅ DO: Add a Dialect method and implement it for every backend

Tags:
    dialect, sql, abstraction, portability, database, layerstore

Doc-Types:
    - API Reference
    - Database Portability Guide
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a **SQL fragment** (string) valid for the target
    database, or a flag describing a backend capability.
    """

    @property
    def name(self) -> str:
        """Human-readable dialect name (e.g. ``'sqlite'``)."""
        ...

    # -- Placeholder generation --------------------------------------------

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index).

        ``index`` is ignored by dialects that use anonymous placeholders
        (SQLite ``?``, MySQL ``%s``) but required by numbered styles
        (Oracle ``:1``).
        """
        ...

    def placeholders(self, count: int, start: int = 0) -> str:
        """Comma-separated placeholder list starting at ``start``."""
        ...

    # -- Query shaping -----------------------------------------------------

    def paginate(self, limit: int, offset: int = 0) -> str:
        """Trailing clause selecting ``limit`` rows after ``offset``."""
        ...

    def limit(self, limit: int) -> str:
        """Trailing clause capping a SELECT at ``limit`` rows."""
        ...

    def date_of(self, expression: str) -> str:
        """Truncate a timestamp expression to its date part."""
        ...

    # -- Writes ------------------------------------------------------------

    @property
    def supports_returning(self) -> bool:
        """Whether generated keys are read back with ``RETURNING``."""
        ...

    @property
    def supports_write_limit(self) -> bool:
        """Whether ``UPDATE``/``DELETE`` accept a trailing ``LIMIT n``."""
        ...

    def returning(self, columns: list[str]) -> str:
        """``RETURNING`` clause for an INSERT (empty when unsupported)."""
        ...

    def generated_key_query(self, table: str, key_column: str) -> str | None:
        """SELECT reading back the key of the row just inserted.

        ``None`` when ``RETURNING`` or ``cursor.lastrowid`` already carries
        the key.
        """
        ...

    @property
    def generated_key_binds_rowid(self) -> bool:
        """Whether :meth:`generated_key_query` takes ``cursor.lastrowid`` as its one bind."""
        ...

    # -- Transactions ------------------------------------------------------

    def begin(self) -> str | None:
        """Statement opening a transaction, or ``None`` when implicit."""
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class _LimitOffsetMixin:
    """``LIMIT n OFFSET m`` pagination shared by SQLite, PostgreSQL, MySQL."""

    def paginate(self, limit: int, offset: int = 0) -> str:
        return f"LIMIT {int(limit)} OFFSET {int(offset)}"

    def limit(self, limit: int) -> str:
        return f"LIMIT {int(limit)}"


class _FetchFirstMixin:
    """SQL:2008 ``OFFSET … FETCH`` pagination shared by DB2 and Oracle."""

    def paginate(self, limit: int, offset: int = 0) -> str:
        return f"OFFSET {int(offset)} ROWS FETCH NEXT {int(limit)} ROWS ONLY"

    def limit(self, limit: int) -> str:
        return f"FETCH FIRST {int(limit)} ROWS ONLY"


class SQLiteDialect(_LimitOffsetMixin):
    """SQLite dialect: ``?`` placeholders, ``lastrowid`` generated keys."""

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int, start: int = 0) -> str:  # noqa: ARG002
        return ", ".join("?" for _ in range(count))

    def date_of(self, expression: str) -> str:
        return f"date({expression})"

    @property
    def supports_returning(self) -> bool:
        return False

    @property
    def supports_write_limit(self) -> bool:
        # Only when compiled with SQLITE_ENABLE_UPDATE_DELETE_LIMIT
        return False

    def returning(self, columns: list[str]) -> str:
        return f"RETURNING {', '.join(columns)}"

    def generated_key_query(self, table: str, key_column: str) -> str | None:  # noqa: ARG002
        return None

    @property
    def generated_key_binds_rowid(self) -> bool:
        return False

    def begin(self) -> str | None:
        return "BEGIN"


class PostgreSQLDialect(_LimitOffsetMixin):
    """PostgreSQL dialect: ``%s`` placeholders (psycopg), ``RETURNING`` keys.

    ``cursor.lastrowid`` is meaningless on PostgreSQL, so generated keys are
    read back from an ``INSERT … RETURNING`` clause.
    """

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int, start: int = 0) -> str:  # noqa: ARG002
        return ", ".join("%s" for _ in range(count))

    def date_of(self, expression: str) -> str:
        return f"CAST({expression} AS DATE)"

    @property
    def supports_returning(self) -> bool:
        return True

    @property
    def supports_write_limit(self) -> bool:
        return False

    def returning(self, columns: list[str]) -> str:
        return f"RETURNING {', '.join(columns)}"

    def generated_key_query(self, table: str, key_column: str) -> str | None:  # noqa: ARG002
        return None

    @property
    def generated_key_binds_rowid(self) -> bool:
        return False

    def begin(self) -> str | None:
        return "BEGIN"


class DB2Dialect(_FetchFirstMixin):
    """IBM DB2 dialect: ``?`` (qmark) placeholders, implicit transactions.

    Compatible with ``ibm_db_dbi`` (DB-API 2.0 interface from ibm-db).
    Generated keys are read back with ``IDENTITY_VAL_LOCAL()``.
    """

    @property
    def name(self) -> str:
        return "db2"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int, start: int = 0) -> str:  # noqa: ARG002
        return ", ".join("?" for _ in range(count))

    def date_of(self, expression: str) -> str:
        return f"DATE({expression})"

    @property
    def supports_returning(self) -> bool:
        return False

    @property
    def supports_write_limit(self) -> bool:
        return False

    def returning(self, columns: list[str]) -> str:  # noqa: ARG002
        return ""

    def generated_key_query(self, table: str, key_column: str) -> str | None:  # noqa: ARG002
        # ibm_db_dbi leaves lastrowid unset; the identity is session-scoped
        return "SELECT IDENTITY_VAL_LOCAL() FROM SYSIBM.SYSDUMMY1"

    @property
    def generated_key_binds_rowid(self) -> bool:
        return False

    def begin(self) -> str | None:
        return None


class MySQLDialect(_LimitOffsetMixin):
    """MySQL dialect: ``%s`` placeholders, ``lastrowid`` generated keys.

    Compatible with ``mysql.connector`` and ``PyMySQL``. MySQL rejects
    ``LIMIT`` inside ``IN (subquery)``, so bounded writes use the native
    trailing ``LIMIT`` instead.
    """

    @property
    def name(self) -> str:
        return "mysql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int, start: int = 0) -> str:  # noqa: ARG002
        return ", ".join("%s" for _ in range(count))

    def date_of(self, expression: str) -> str:
        return f"DATE({expression})"

    @property
    def supports_returning(self) -> bool:
        return False

    @property
    def supports_write_limit(self) -> bool:
        return True

    def returning(self, columns: list[str]) -> str:  # noqa: ARG002
        return ""

    def generated_key_query(self, table: str, key_column: str) -> str | None:  # noqa: ARG002
        return None

    @property
    def generated_key_binds_rowid(self) -> bool:
        return False

    def begin(self) -> str | None:
        return "START TRANSACTION"


class OracleDialect(_FetchFirstMixin):
    """Oracle dialect: ``:1, :2`` numbered placeholders, ``TRUNC`` dates.

    Compatible with ``oracledb`` (python-oracledb) which uses numeric
    bind variables.
    Generated keys are read back by the ROWID the driver reports.
    """

    @property
    def name(self) -> str:
        return "oracle"

    def placeholder(self, index: int) -> str:
        return f":{index + 1}"

    def placeholders(self, count: int, start: int = 0) -> str:
        return ", ".join(f":{i + 1}" for i in range(start, start + count))

    def date_of(self, expression: str) -> str:
        return f"TRUNC({expression})"

    @property
    def supports_returning(self) -> bool:
        return False

    @property
    def supports_write_limit(self) -> bool:
        return False

    def returning(self, columns: list[str]) -> str:  # noqa: ARG002
        # RETURNING … INTO needs driver-specific out-binds
        return ""

    def generated_key_query(self, table: str, key_column: str) -> str | None:
        # python-oracledb reports the inserted ROWID as lastrowid
        return f"SELECT {key_column} FROM {table} WHERE ROWID = {self.placeholder(0)}"

    @property
    def generated_key_binds_rowid(self) -> bool:
        return True

    def begin(self) -> str | None:
        return None


# =========================================================================
# Registry / Factory
# =========================================================================

# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
    "db2": DB2Dialect(),
    "mysql": MySQLDialect(),
    "oracle": OracleDialect(),
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by database type name.

    Args:
        db_type: One of ``'sqlite'``, ``'postgresql'``, ``'postgres'``,
                 ``'db2'``, ``'mysql'``, ``'oracle'``.

    Returns:
        Pre-instantiated :class:`Dialect` for the requested backend.

    Raises:
        ValueError: If ``db_type`` is not recognised.

    Example:
        >>> from layerstore.core.dialect import get_dialect
        >>> d = get_dialect("postgresql")
        >>> d.placeholders(2)
        '%s, %s'
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres'})}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation.

    Useful for third-party database drivers or test doubles.

    Args:
        name: Lookup key (lower-cased automatically).
        dialect: Instance implementing :class:`Dialect`.
    """
    _DIALECTS[name.lower()] = dialect


__all__ = [
    # Protocol
    "Dialect",
    # Implementations
    "SQLiteDialect",
    "PostgreSQLDialect",
    "DB2Dialect",
    "MySQLDialect",
    "OracleDialect",
    # Factory
    "get_dialect",
    "register_dialect",
]

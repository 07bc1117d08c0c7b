"""Connection factory: create backing-store handles from URL strings.

Every caller that needs a handle for a ``StorageEngine`` should use
``create_connection()`` rather than importing backend-specific classes
directly. The returned ``ConnectionInfo`` carries the matching
:class:`~layerstore.core.dialect.Dialect`, so the pair can be handed to
the engine as-is.

Supported URL schemes
---------------------
==================  ==========================================  ============
Scheme              Example                                     Backend
==================  ==========================================  ============
``memory``          ``memory`` or ``:memory:`` or ``None``       SQLite RAM
``sqlite``          ``sqlite:///path/to/file.db``                SQLite file
``(file path)``     ``./data/my.db`` or ``/tmp/store.db``        SQLite file
``postgresql``      ``postgresql://user:pw@host:port/db``        PostgreSQL
``postgres``        ``postgres://user:pw@host:port/db``          PostgreSQL
``mysql``           ``mysql+pymysql://user:pw@host/db``          MySQL
==================  ==========================================  ============

Server backends go through SQLAlchemy and the
:class:`~layerstore.core.orm.session.SAConnectionBridge`; the driver
package (psycopg, pymysql, ...) is the caller's choice.

Usage
-----
::

    from layerstore.core.connection import create_connection

    conn, info = create_connection()                  # ephemeral
    conn, info = create_connection("sqlite:///app.db")
    engine = StorageEngine(conn, schema, dialect=info.dialect)
"""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from layerstore.core.dialect import Dialect, get_dialect
from layerstore.core.errors import ConfigError
from layerstore.core.logging import get_logger
from layerstore.core.settings import StoreSettings

logger = get_logger(__name__)


# ── ConnectionInfo ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a backing-store handle."""

    backend: str
    """Backend identifier: ``"sqlite"``, ``"postgresql"``, ``"mysql"``."""

    persistent: bool
    """Whether data survives process exit."""

    url: str
    """The original URL or path used to create the connection."""

    dialect: Dialect = field(repr=False, compare=False)
    """SQL dialect matching the handle's placeholder style."""

    resolved_path: str | None = None
    """For file-based SQLite, the resolved absolute path."""

    def __repr__(self) -> str:
        parts = [f"backend={self.backend!r}", f"persistent={self.persistent}"]
        if self.resolved_path:
            parts.append(f"path={self.resolved_path!r}")
        else:
            parts.append(f"url={self.url!r}")
        return f"ConnectionInfo({', '.join(parts)})"

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"

    @property
    def is_postgres(self) -> bool:
        return self.backend == "postgresql"


# ── SQLite adapter ───────────────────────────────────────────────────────


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol.

    The connection runs with ``isolation_level=None`` so statements
    autocommit unless :meth:`begin` opened an explicit transaction.
    """

    def __init__(self, path: str = ":memory:", *, row_factory: Any = sqlite3.Row) -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = row_factory

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self._conn.execute(sql, tuple(params))

    def executescript(self, script: str) -> None:
        self._conn.executescript(script)

    def begin(self) -> None:
        if not self._conn.in_transaction:
            self._conn.execute("BEGIN")

    def commit(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("COMMIT")

    def rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def close(self) -> None:
        self._conn.close()

    @property
    def in_transaction(self) -> bool:
        return self._conn.in_transaction

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self._conn!r})"


# ── Backend factories ────────────────────────────────────────────────────


def _create_sqlite_memory() -> tuple[SqliteConnection, ConnectionInfo]:
    conn = SqliteConnection(":memory:")
    info = ConnectionInfo(
        backend="sqlite",
        persistent=False,
        url=":memory:",
        dialect=get_dialect("sqlite"),
    )
    return conn, info


def _create_sqlite_file(path_str: str) -> tuple[SqliteConnection, ConnectionInfo]:
    path = Path(path_str)
    path.parent.mkdir(parents=True, exist_ok=True)
    resolved = str(path.resolve())

    conn = SqliteConnection(resolved)
    info = ConnectionInfo(
        backend="sqlite",
        persistent=True,
        url=path_str,
        dialect=get_dialect("sqlite"),
        resolved_path=resolved,
    )
    return conn, info


def _create_bridged(backend: str, url: str, *, echo: bool = False) -> tuple[Any, ConnectionInfo]:
    """Create a server-backed handle via the SQLAlchemy bridge."""
    from layerstore.core.orm.session import (
        QmarkDialect,
        SAConnectionBridge,
        StoreSession,
        create_store_engine,
    )

    engine = create_store_engine(url, echo=echo)
    conn = SAConnectionBridge(StoreSession(bind=engine))
    info = ConnectionInfo(
        backend=backend,
        persistent=True,
        url=url,
        dialect=QmarkDialect(get_dialect(backend)),
    )
    return conn, info


# ── URL parsing ──────────────────────────────────────────────────────────


def _parse_url(db: str | None) -> tuple[str, str]:
    """Parse a database URL into ``(scheme, target)``.

    ``scheme`` is one of ``"memory"``, ``"sqlite"``, ``"file"``,
    ``"postgresql"``, ``"mysql"``.

    Raises:
        ConfigError: For a URL scheme no backend handles.
    """
    if db is None or db in ("", "memory", ":memory:"):
        return "memory", ":memory:"

    for prefix in ("sqlite:///", "sqlite://"):
        if db.startswith(prefix):
            path = db[len(prefix):]
            if not path or path == ":memory:":
                return "memory", ":memory:"
            return "sqlite", path

    if db.startswith(("postgresql://", "postgres://")):
        return "postgresql", db.replace("postgres://", "postgresql://", 1)

    if db.startswith(("postgresql+", "postgres+")):
        return "postgresql", db.replace("postgres+", "postgresql+", 1)

    if db.startswith(("mysql://", "mysql+")):
        return "mysql", db

    if "://" in db:
        scheme = db.split("://", 1)[0]
        raise ConfigError(f"Unsupported database URL scheme '{scheme}'").with_context(
            url=db
        )

    # Bare file path: treat as SQLite file
    return "file", db


# ── Main factory ─────────────────────────────────────────────────────────


def create_connection(
    db: str | None = None,
    *,
    data_dir: str | None = None,
    echo: bool | None = None,
    settings: StoreSettings | None = None,
) -> tuple[Any, ConnectionInfo]:
    """Create a backing-store handle from a URL, path, or keyword.

    Parameters
    ----------
    db:
        Database URL, file path, or keyword (``None`` / ``"memory"`` for an
        in-memory SQLite database).
    data_dir:
        For SQLite paths, resolve relative paths within this directory.
    echo:
        Log SQL for server backends (forwarded to SQLAlchemy).
    settings:
        Supplies ``database_url`` when ``db`` is ``None`` and ``echo_sql``
        when ``echo`` is ``None``.

    Returns
    -------
    tuple[Connection, ConnectionInfo]
        The handle (satisfies ``Connection``) and metadata about it,
        including the dialect to pass to ``StorageEngine``.

    Raises
    ------
    ConfigError
        When the URL scheme is not supported.
    """
    if settings is not None:
        db = settings.database_url if db is None else db
        echo = settings.echo_sql if echo is None else echo
    scheme, target = _parse_url(db)

    if scheme == "memory":
        conn, info = _create_sqlite_memory()

    elif scheme in ("sqlite", "file"):
        if data_dir and not Path(target).is_absolute():
            target = str(Path(data_dir) / target)
        conn, info = _create_sqlite_file(target)

    else:
        conn, info = _create_bridged(scheme, target, echo=bool(echo))

    logger.debug("connection_created", backend=info.backend, persistent=info.persistent)
    return conn, info


__all__ = [
    "ConnectionInfo",
    "SqliteConnection",
    "create_connection",
]

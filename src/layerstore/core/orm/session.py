"""SQLAlchemy engine factory, session, and Connection bridge.

Manifesto:
    The storage engine talks to one protocol. A project that already owns a
    SQLAlchemy ``Session`` should not need a second raw connection just to
    persist through layerstore, so ``SAConnectionBridge`` wraps the session
    to satisfy ``layerstore.core.protocols.Connection``.

This module provides:

* ``create_store_engine``  -- Create a SA engine from a URL with sane defaults.
* ``StoreSession``         -- Session subclass with ``expire_on_commit=False``.
* ``SAConnectionBridge``   -- Wraps a SA ``Session`` as a ``Connection``.
* ``QmarkDialect``         -- Backend dialect whose placeholders are ``?``,
  the style the bridge rewrites into SQLAlchemy named binds.

Tags:
    layerstore, orm, sqlalchemy, session, engine, bridge, connection

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from layerstore.core.dialect import Dialect
from layerstore.core.settings import StoreSettings


def create_store_engine(
    url: str | None = None,
    *,
    echo: bool | None = None,
    settings: StoreSettings | None = None,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, SQLAlchemy logs all SQL.
    settings:
        Fills ``url`` from ``database_url`` and ``echo`` from ``echo_sql``
        when those are left as ``None``.
    pool_size, max_overflow:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if settings is not None:
        url = settings.database_url if url is None else url
        echo = settings.echo_sql if echo is None else echo
    url = url or "sqlite:///:memory:"
    echo = bool(echo)
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


class StoreSession(Session):
    """Pre-configured session with ``expire_on_commit=False``."""

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def store_session_factory(engine: Engine) -> sessionmaker[StoreSession]:
    """Return a ``sessionmaker`` bound to *engine* producing ``StoreSession``."""
    return sessionmaker(bind=engine, class_=StoreSession, expire_on_commit=False)


def _named_binds(sql: str) -> str:
    """Rewrite positional ``?`` markers as ``:p0, :p1, …`` for ``text()``."""
    rewritten, idx = [], 0
    for ch in sql:
        if ch == "?":
            rewritten.append(f":p{idx}")
            idx += 1
        else:
            rewritten.append(ch)
    return "".join(rewritten)


class SAConnectionBridge:
    """Adapter that makes a SQLAlchemy ``Session`` look like a ``Connection``.

    ``execute`` returns the bridge itself, which then plays the cursor role
    (``fetchall``, ``description``, ``rowcount``, ``lastrowid``) for the
    last statement. SQL must use ``?`` placeholders; pair the bridge with a
    :class:`QmarkDialect`.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._last_result: Any = None

    # --- execute ---

    def execute(self, sql: str, parameters: Sequence[Any] | None = None) -> SAConnectionBridge:
        if parameters:
            mapping = {f"p{i}": v for i, v in enumerate(parameters)}
            self._last_result = self._session.execute(text(_named_binds(sql)), mapping)
        else:
            self._last_result = self._session.execute(text(sql))
        return self

    # --- cursor role ---

    def fetchall(self) -> list[tuple[Any, ...]]:
        if self._last_result is None or not self._last_result.returns_rows:
            return []
        return [tuple(r) for r in self._last_result.fetchall()]

    @property
    def description(self) -> list[tuple[Any, ...]] | None:
        """DB-API 2.0 compatible description from the last result."""
        if self._last_result is None or not self._last_result.returns_rows:
            return None
        return [(k, None, None, None, None, None, None) for k in self._last_result.keys()]

    @property
    def rowcount(self) -> int:
        if self._last_result is None:
            return -1
        return self._last_result.rowcount

    @property
    def lastrowid(self) -> Any:
        if self._last_result is None:
            return None
        return self._last_result.lastrowid

    # --- transaction ---

    def begin(self) -> None:
        if not self._session.in_transaction():
            self._session.begin()

    def commit(self) -> None:
        self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()

    @property
    def session(self) -> Session:
        """Access the underlying SA session (e.g., for ORM queries)."""
        return self._session


class QmarkDialect:
    """Delegate to a backend dialect but emit ``?`` placeholders.

    SQLAlchemy translates the bridge's named binds to the driver's
    paramstyle, so SQL sent through :class:`SAConnectionBridge` must use
    ``?`` regardless of the backend; every other fragment (pagination,
    date truncation, RETURNING) still follows the real backend.
    """

    def __init__(self, inner: Dialect) -> None:
        self._inner = inner

    @property
    def name(self) -> str:
        return self._inner.name

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int, start: int = 0) -> str:  # noqa: ARG002
        return ", ".join("?" for _ in range(count))

    def paginate(self, limit: int, offset: int = 0) -> str:
        return self._inner.paginate(limit, offset)

    def limit(self, limit: int) -> str:
        return self._inner.limit(limit)

    def date_of(self, expression: str) -> str:
        return self._inner.date_of(expression)

    @property
    def supports_returning(self) -> bool:
        return self._inner.supports_returning

    @property
    def supports_write_limit(self) -> bool:
        return self._inner.supports_write_limit

    def returning(self, columns: list[str]) -> str:
        return self._inner.returning(columns)

    def generated_key_query(self, table: str, key_column: str) -> str | None:
        query = self._inner.generated_key_query(table, key_column)
        if query is not None and self._inner.generated_key_binds_rowid:
            query = query.replace(self._inner.placeholder(0), "?")
        return query

    @property
    def generated_key_binds_rowid(self) -> bool:
        return self._inner.generated_key_binds_rowid

    def begin(self) -> str | None:
        return self._inner.begin()


__all__ = [
    "QmarkDialect",
    "SAConnectionBridge",
    "StoreSession",
    "create_store_engine",
    "store_session_factory",
]

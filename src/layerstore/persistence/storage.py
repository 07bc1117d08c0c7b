"""StorageEngine: column-space reads and writes against a backing-store handle.

Manifesto:
    The engine is the only layer that produces SQL or touches a connection.
    It decides insert versus update, applies timestamps and soft deletes,
    and turns every driver failure into a typed error, so repositories
    above it never see a driver exception or a hand-written statement.

    - **Explicit handle:** A ``Connection`` is injected, never looked up
    - **Dialect-aware:** Placeholders, pagination and date truncation come
      from a ``Dialect``
    - **Upsert-by-lookup:** Key presence (and a key match) picks the statement
    - **No hidden state:** Transactions are the handle's, not the engine's

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        StorageEngine                         │
        │                                                              │
        │   conn: Connection          execute(sql, params) → cursor    │
        │   schema: AttributeSchema   table, keys, flags               │
        │   dialect: Dialect          ?, %s, :1 / LIMIT / FETCH FIRST  │
        │   translator: ErrorTranslator                                │
        │                                                              │
        │   store / store_multiple    insert-or-update                 │
        │   update / patch_*          conditioned UPDATE (+updated_at) │
        │   delete_*                  soft (deleted_at) or hard delete │
        │   get_* / count / search    soft-deleted rows excluded       │
        │   begin / commit / rollback / transaction()                  │
        └──────────────────────────────────────────────────────────────┘

    store() on a single auto-increment key::

        key blank? ──yes──▶ INSERT (created+updated stamped) ──▶ key backfilled
            │no
            ▼
        UPDATE … WHERE key = ? ──rows > 0──▶ done
            │0 rows
            ▼
        INSERT (fallback)

Examples:
    >>> conn, info = create_connection()
    >>> engine = StorageEngine(conn, users_schema, dialect=info.dialect)
    >>> row = engine.store({"email": "a@example.com"})
    >>> row["id"]
    1
    >>> engine.get_by_conditions(conditions=["email", "like%", "a@"])

Guardrails:
    ❌ DON'T: Pass attribute names here; this layer speaks columns
    ✅ DO: Go through ``Repository`` (or ``Mapper``) for attribute-space calls

    ❌ DON'T: Rely on ``store()`` being atomic under concurrent writers
    ✅ DO: Wrap it in ``with engine.transaction():`` when that matters

Tags:
    storage, sql, upsert, soft-delete, transactions, layerstore

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from layerstore.core.dialect import Dialect, SQLiteDialect
from layerstore.core.errors import (
    BackingStoreError,
    LayerStoreError,
    MissingPrimaryKeyError,
    PersistenceValidationError,
    UnsupportedOperationError,
)
from layerstore.core.logging import get_logger
from layerstore.core.protocols import Connection, Cursor
from layerstore.core.settings import StoreSettings
from layerstore.core.timestamps import db_timestamp
from layerstore.persistence.conditions import (
    DEFAULT_PAGE_SIZE,
    Condition,
    Pagination,
    ParamBinder,
    compile_conditions,
    keyword_predicate,
    normalize_conditions,
)
from layerstore.persistence.schema import AttributeSchema, is_blank_key
from layerstore.persistence.translator import ErrorTranslator

logger = get_logger(__name__)

_ALIAS_SPLIT = re.compile(r"\s+as\s+", re.IGNORECASE)


def _where(fragments: Sequence[str]) -> str:
    return f" WHERE {' AND '.join(fragments)}" if fragments else ""


class StorageEngine:
    """Execute condition-filtered reads and writes for one schema.

    Parameters:
        conn: Any object satisfying the :class:`Connection` protocol
              (``sqlite3`` connection, ``SqliteConnection``,
              ``SAConnectionBridge`` …).
        schema: Descriptor of the table this engine serves.
        dialect: SQL dialect; defaults to :class:`SQLiteDialect`.
        translator: Error translator; defaults to one built from ``schema``.
        settings: Supplies the default page size; ``echo_sql`` logs every
                  statement at info instead of debug.
        clock: Returns the timestamp string written to timestamp columns.
    """

    def __init__(
        self,
        conn: Connection,
        schema: AttributeSchema,
        *,
        dialect: Dialect | None = None,
        translator: ErrorTranslator | None = None,
        settings: StoreSettings | None = None,
        clock: Callable[[], str] = db_timestamp,
    ) -> None:
        self.conn = conn
        self.schema = schema
        self.dialect: Dialect = dialect or SQLiteDialect()
        self.translator = translator or ErrorTranslator(schema)
        self.default_page_size = settings.default_page_size if settings else DEFAULT_PAGE_SIZE
        # echo_sql promotes statement logging from debug to info
        self._sql_log = "info" if settings is not None and settings.echo_sql else "debug"
        self._clock = clock
        self._source: str | None = None

    # =====================================================================
    # Execution
    # =====================================================================

    @contextmanager
    def _translating(self, operation: str) -> Iterator[None]:
        try:
            yield
        except self.translator.driver_errors as exc:
            error = self.translator.translate(exc, operation=operation)
            logger.warning(
                "storage_error",
                table=self.schema.table,
                operation=operation,
                error_type=type(error).__name__,
                native_code=getattr(error, "native_code", None),
                message=error.message,
            )
            raise error from exc

    def _execute(self, sql: str, params: Sequence[Any], operation: str) -> Cursor:
        getattr(logger, self._sql_log)(
            "sql_executed",
            table=self.schema.table,
            operation=operation,
            sql=sql,
            param_count=len(params),
        )
        with self._translating(operation):
            return self.conn.execute(sql, list(params))

    def _fetch(self, sql: str, params: Sequence[Any], operation: str) -> list[dict[str, Any]]:
        with self._translating(operation):
            cursor = self._execute(sql, params, operation)
            rows = cursor.fetchall()
            if not rows:
                return []
            names = [d[0] for d in cursor.description]
            return [dict(zip(names, row, strict=False)) for row in rows]

    # =====================================================================
    # SQL building helpers
    # =====================================================================

    def use_source(self, from_clause: str | None) -> None:
        """Read from ``from_clause`` (e.g. a JOIN) instead of the bare table.

        Writes always target the table. Pair with ``column_alias_map`` to
        disambiguate column names; ``None`` restores the default.
        """
        self._source = from_clause

    def _qualify(self, column: str) -> str:
        alias = self.schema.column_alias_map.get(column)
        if alias is not None:
            return _ALIAS_SPLIT.split(alias, maxsplit=1)[0].strip()
        if any(ch in column for ch in ". ()"):
            return column
        return f"{self.schema.table}.{column}"

    def _not_deleted(self, qualify: bool) -> list[str]:
        if not self.schema.has_soft_delete:
            return []
        column = self.schema.deleted_column
        return [f"{self._qualify(column) if qualify else column} IS NULL"]

    def _order_clause(self, order_by: Mapping[str, str] | None) -> str:
        """``ORDER BY`` for ``{"column", "direction"}``; first key column desc by default."""
        order_by = order_by or {}
        column = order_by.get("column") or self.schema.primary_key_columns()[0]
        direction = str(order_by.get("direction", order_by.get("order", "desc"))).upper()
        if direction not in ("ASC", "DESC"):
            raise PersistenceValidationError(f"Order direction must be asc or desc, got {direction!r}")
        return f" ORDER BY {self._qualify(column)} {direction}"

    def _select_sql(
        self,
        binder: ParamBinder,
        columns: Sequence[str],
        conditions: Sequence[Condition],
        extra: Sequence[str] = (),
    ) -> str:
        select_list = ", ".join(columns or self.schema.all_columns())
        fragments = [
            *compile_conditions(conditions, binder, self._qualify),
            *extra,
            *self._not_deleted(qualify=True),
        ]
        return f"SELECT {select_list} FROM {self._source or self.schema.table}{_where(fragments)}"

    def _key_conditions(self, key_columns: Mapping[str, Any], operation: str) -> list[Condition]:
        keys = self.schema.primary_key_columns()
        missing = [k for k in keys if is_blank_key(key_columns.get(k))]
        if missing:
            raise MissingPrimaryKeyError(
                f"Missing primary key column(s) {missing} for {operation}", missing=missing
            ).with_context(table=self.schema.table, operation=operation)
        return [Condition(k, "=", key_columns[k]) for k in keys]

    def _bounded(self, head: str, binder: ParamBinder, conditions: Sequence[Condition],
                 extra: Sequence[str], limit: int | None) -> str:
        """Append a WHERE to an UPDATE/DELETE head, capped at ``limit`` rows."""
        fragments = [*compile_conditions(conditions, binder), *extra]
        if limit is None:
            return head + _where(fragments)
        if self.dialect.supports_write_limit:
            return f"{head}{_where(fragments)} {self.dialect.limit(limit)}"
        keys = self.schema.primary_key_columns()
        key_list = ", ".join(keys)
        target = key_list if len(keys) == 1 else f"({key_list})"
        subquery = f"SELECT {key_list} FROM {self.schema.table}{_where(fragments)} {self.dialect.limit(limit)}"
        return f"{head} WHERE {target} IN ({subquery})"

    # =====================================================================
    # Reads
    # =====================================================================

    def get_by_conditions(
        self,
        columns: Sequence[str] = (),
        conditions: Any = (),
        pagination: Any = None,
        order_by: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """Rows matching ``conditions``, ordered and paginated."""
        page = Pagination.coerce(pagination, self.default_page_size)
        binder = ParamBinder(self.dialect)
        sql = self._select_sql(binder, columns, normalize_conditions(conditions))
        sql += self._order_clause(order_by) + " " + self.dialect.paginate(page.limit, page.offset)
        return self._fetch(sql, binder.params, "get_by_conditions")

    def count_by_conditions(self, conditions: Any = ()) -> int:
        binder = ParamBinder(self.dialect)
        fragments = [
            *compile_conditions(normalize_conditions(conditions), binder, self._qualify),
            *self._not_deleted(qualify=True),
        ]
        sql = f"SELECT COUNT(*) AS row_count FROM {self._source or self.schema.table}{_where(fragments)}"
        rows = self._fetch(sql, binder.params, "count_by_conditions")
        return int(next(iter(rows[0].values()))) if rows else 0

    def _first(self, columns: Sequence[str], conditions: Sequence[Condition], operation: str) -> dict[str, Any] | None:
        binder = ParamBinder(self.dialect)
        sql = self._select_sql(binder, columns, conditions) + " " + self.dialect.limit(1)
        rows = self._fetch(sql, binder.params, operation)
        return rows[0] if rows else None

    def get_by_id(self, id: Any, columns: Sequence[str] = ()) -> dict[str, Any] | None:
        key = self.schema.primary_key_columns()[0]
        return self._first(columns, [Condition(key, "=", id)], "get_by_id")

    def get_by_primary_key(
        self, key_columns: Mapping[str, Any], columns: Sequence[str] = ()
    ) -> dict[str, Any] | None:
        conditions = self._key_conditions(key_columns, "get_by_primary_key")
        return self._first(columns, conditions, "get_by_primary_key")

    def get_single(self, column: str, value: Any, columns: Sequence[str] = ()) -> dict[str, Any] | None:
        return self._first(columns, [Condition(column, "=", value)], "get_single")

    def search_in_columns(
        self,
        keywords: Sequence[str],
        searched_columns: Sequence[str],
        columns: Sequence[str] = (),
        pagination: Any = None,
        order_by: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """Rows where ANY searched column contains ALL keywords."""
        page = Pagination.coerce(pagination, self.default_page_size)
        binder = ParamBinder(self.dialect)
        predicate = keyword_predicate(keywords, searched_columns, binder, self._qualify)
        sql = self._select_sql(binder, columns, [], [predicate] if predicate else [])
        sql += self._order_clause(order_by) + " " + self.dialect.paginate(page.limit, page.offset)
        return self._fetch(sql, binder.params, "search_in_columns")

    # =====================================================================
    # Writes
    # =====================================================================

    def _stamp(self, columns: Mapping[str, Any], *, created: bool) -> dict[str, Any]:
        stamped = dict(columns)
        if self.schema.has_timestamps:
            now = self._clock()
            stamped[self.schema.updated_column] = now
            if created:
                stamped[self.schema.created_column] = now
        return stamped

    def _generated_key(self, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise BackingStoreError(
                "Database did not return a valid primary key after insert.",
                native_message=repr(value),
            ).with_context(table=self.schema.table, operation="insert")
        try:
            key = int(value)
        except ValueError:
            raise BackingStoreError(
                "Database did not return a valid primary key after insert.",
                native_message=repr(value),
            ).with_context(table=self.schema.table, operation="insert") from None
        if key <= 0:
            raise BackingStoreError(
                "Insert returned an invalid primary key (<= 0).",
                native_message=repr(value),
            ).with_context(table=self.schema.table, operation="insert")
        return key

    def _insert(self, columns: Mapping[str, Any], *, key_column: str | None = None) -> Any:
        """INSERT one row; return the generated key when ``key_column`` is given."""
        table = self.schema.table
        binder = ParamBinder(self.dialect)
        if columns:
            values = binder.bind_many(list(columns.values()))
            sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({values})"
        elif self.dialect.name == "mysql":
            sql = f"INSERT INTO {table} () VALUES ()"
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES"

        if key_column is not None and self.dialect.supports_returning:
            sql += " " + self.dialect.returning([key_column])
            rows = self._fetch(sql, binder.params, "insert")
            return self._generated_key(next(iter(rows[0].values())) if rows else None)

        cursor = self._execute(sql, binder.params, "insert")
        if key_column is None:
            return None
        lastrowid = getattr(cursor, "lastrowid", None)
        query = self.dialect.generated_key_query(table, key_column)
        if query is None:
            return self._generated_key(lastrowid)
        if self.dialect.generated_key_binds_rowid:
            if lastrowid is None:
                return self._generated_key(None)
            rows = self._fetch(query, [lastrowid], "insert")
        else:
            rows = self._fetch(query, [], "insert")
        return self._generated_key(next(iter(rows[0].values())) if rows else None)

    def _update_by_key(self, columns: Mapping[str, Any], operation: str) -> int:
        conditions = self._key_conditions(columns, operation)
        keys = {c.column for c in conditions}
        assignments = {c: v for c, v in columns.items() if c not in keys}
        if not assignments:
            # nothing but the key: a self-assignment still reports the match
            assignments = {conditions[0].column: conditions[0].value}
        return self._update_rows(assignments, conditions, operation=operation)

    def _update_rows(
        self,
        assignments: Mapping[str, Any],
        conditions: Sequence[Condition],
        *,
        extra: Sequence[str] = (),
        limit: int | None = None,
        operation: str,
    ) -> int:
        binder = ParamBinder(self.dialect)
        set_clause = ", ".join(f"{column} = {binder.bind(value)}" for column, value in assignments.items())
        sql = self._bounded(f"UPDATE {self.schema.table} SET {set_clause}", binder, conditions, extra, limit)
        return self._execute(sql, binder.params, operation).rowcount

    def _delete_rows(
        self,
        conditions: Sequence[Condition],
        *,
        limit: int | None,
        permanent: bool,
        operation: str,
    ) -> int:
        if self.schema.has_soft_delete and not permanent:
            stamp = {self.schema.deleted_column: self._clock()}
            return self._update_rows(
                stamp, conditions, extra=self._not_deleted(qualify=False), limit=limit, operation=operation
            )
        binder = ParamBinder(self.dialect)
        sql = self._bounded(f"DELETE FROM {self.schema.table}", binder, conditions, (), limit)
        return self._execute(sql, binder.params, operation).rowcount

    def store(self, columns: Mapping[str, Any]) -> dict[str, Any]:
        """Insert or update one row; return the stored column map with its key.

        Raises:
            MissingPrimaryKeyError: Composite/natural key with a key column missing.
        """
        if not self.schema.is_auto_increment():
            return self._store_by_key_lookup(columns)

        key = self.schema.primary_key_columns()[0]
        if is_blank_key(columns.get(key)):
            row = self._stamp({c: v for c, v in columns.items() if c != key}, created=True)
            row[key] = self._insert(row, key_column=key)
            logger.debug("row_inserted", table=self.schema.table, key=row[key])
            return row

        row = self._stamp(columns, created=False)
        if self._update_by_key(row, "store") == 0:
            row[key] = self._insert(row, key_column=key)
            logger.debug("row_inserted_after_update_miss", table=self.schema.table, key=row[key])
        return row

    def _store_by_key_lookup(self, columns: Mapping[str, Any]) -> dict[str, Any]:
        conditions = self._key_conditions(columns, "store")
        binder = ParamBinder(self.dialect)
        keys = [c.column for c in conditions]
        fragments = compile_conditions(conditions, binder)
        sql = f"SELECT {', '.join(keys)} FROM {self.schema.table}{_where(fragments)} {self.dialect.limit(1)}"
        exists = bool(self._fetch(sql, binder.params, "store"))

        row = self._stamp(columns, created=not exists)
        if exists:
            self._update_by_key(row, "store")
        else:
            self._insert(row)
        return row

    def store_multiple(self, column_sets: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        """Per-row :meth:`store` for single-key schemas.

        Raises:
            UnsupportedOperationError: When the primary key is composite.
        """
        if self.schema.is_composite():
            raise UnsupportedOperationError(
                "store_multiple is not implemented for composite primary keys."
            ).with_context(table=self.schema.table, operation="store_multiple")
        return [self.store(columns) for columns in column_sets]

    def update(self, columns: Mapping[str, Any], conditions: Any) -> int:
        """Conditioned UPDATE; returns 0 without writing when either side is empty."""
        if not columns or not conditions:
            return 0
        normalized = normalize_conditions(conditions)
        if not normalized:
            return 0
        return self._update_rows(self._stamp(columns, created=False), normalized, operation="update")

    def patch_by_id(self, columns: Mapping[str, Any]) -> int:
        """UPDATE the row identified by the key columns inside ``columns``.

        Raises:
            MissingPrimaryKeyError: A key column is absent or blank.
        """
        self._key_conditions(columns, "patch_by_id")
        return self._update_by_key(self._stamp(columns, created=False), "patch_by_id")

    def patch_by_conditions(self, columns: Mapping[str, Any], conditions: Any) -> int:
        # update() stamps "updated"
        return self.update(columns, conditions)

    def delete_by_id(self, id: Any, permanent: bool = False) -> int:
        key = self.schema.primary_key_columns()[0]
        return self._delete_rows([Condition(key, "=", id)], limit=None, permanent=permanent, operation="delete_by_id")

    def delete_by_primary_key(self, key_columns: Mapping[str, Any], permanent: bool = False) -> int:
        conditions = self._key_conditions(key_columns, "delete_by_primary_key")
        return self._delete_rows(conditions, limit=None, permanent=permanent, operation="delete_by_primary_key")

    def delete_by_conditions(self, conditions: Any, limit: int | None = None, permanent: bool = False) -> int:
        """Soft- or hard-delete matching rows, at most ``limit`` of them."""
        if limit is not None and limit < 1:
            raise PersistenceValidationError(f"Delete limit must be >= 1, got {limit}")
        return self._delete_rows(
            normalize_conditions(conditions), limit=limit, permanent=permanent, operation="delete_by_conditions"
        )

    # =====================================================================
    # Transactions
    # =====================================================================

    def begin(self) -> None:
        begin = getattr(self.conn, "begin", None)
        with self._translating("begin"):
            if callable(begin):
                begin()
                return
            statement = self.dialect.begin()
            if statement is not None:
                self.conn.execute(statement)

    def commit(self) -> None:
        with self._translating("commit"):
            self.conn.commit()

    def rollback(self) -> None:
        with self._translating("rollback"):
            self.conn.rollback()

    @contextmanager
    def transaction(self) -> Iterator[StorageEngine]:
        """Commit on success; roll back and re-raise on any error."""
        self.begin()
        try:
            yield self
        except BaseException:
            try:
                self.rollback()
            except LayerStoreError as rollback_error:
                # the body's exception stays the one raised
                logger.error(
                    "rollback_failed",
                    table=self.schema.table,
                    error_type=type(rollback_error).__name__,
                    message=rollback_error.message,
                )
            raise
        self.commit()


__all__ = ["StorageEngine"]

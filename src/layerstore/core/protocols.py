"""
Canonical protocol definitions for layerstore.

This module defines the SINGLE SOURCE OF TRUTH for the structural protocols
the persistence layer talks to. The storage engine never imports a database
driver; it depends on the shape described here.

Manifesto:
    Protocols define contracts without inheritance. They enable:
    - **Decoupling:** The engine depends on shape, not implementation
    - **Testability:** Any object matching the protocol works, fakes included
    - **Portability:** Same engine on sqlite3, a SQLAlchemy session, psycopg

Architecture:
    ::

        protocols.py (YOU ARE HERE)
        ├── Cursor          : result of Connection.execute (DB-API 2.0 shape)
        ├── Connection      : sync backing-store handle
        ├── EntityFactory   : builds entities from attribute maps
        └── ContextFactory  : builds entity contexts from plain dicts

    Consumers:
        persistence/storage.py, persistence/repository.py,
        core/orm/session.py (SAConnectionBridge implements Connection)

Guardrails:
    ❌ DON'T: Add async methods to the Connection protocol
    ✅ DO: Wrap async drivers in a sync adapter at the edge

    ❌ DON'T: Add implementation logic to protocol classes
    ✅ DO: Keep protocols pure contracts

Tags:
    protocol, connection, cursor, factory, layerstore, contracts

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from layerstore.persistence.entity import Entity, EntityContext


# ---------------------------------------------------------------------------
# Database Connection Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Cursor(Protocol):
    """
    Result handle returned by :meth:`Connection.execute`.

    Mirrors the subset of a DB-API 2.0 cursor the engine reads:
    ``fetchall`` and ``description`` for SELECTs, ``rowcount`` for
    UPDATE/DELETE and ``lastrowid`` for generated keys after INSERT.
    """

    description: Any
    rowcount: int
    lastrowid: Any

    def fetchall(self) -> list:
        """Fetch all rows of the last query."""
        ...


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS backing-store handle.

    Architecture:
        ::

            Connection Protocol:
            ┌────────────────────────────────────────────────────────┐
            │ execute(sql, params)   → Cursor                        │
            │ commit()               → Commit transaction            │
            │ rollback()             → Rollback transaction          │
            └────────────────────────────────────────────────────────┘

            Implementations:
            ┌────────────────────────────────────────────────────────┐
            │ sqlite3.Connection (isolation_level=None)              │
            │ SAConnectionBridge wrapping a SQLAlchemy Session       │
            └────────────────────────────────────────────────────────┘

    A handle may additionally expose ``begin()``; when it does not, the
    storage engine opens transactions with the dialect's BEGIN statement.

    Examples:
        >>> cursor = conn.execute("SELECT * FROM users WHERE id = ?", (1,))
        >>> rows = cursor.fetchall()

    Tags:
        protocol, connection, sync, database
    """

    def execute(self, sql: str, params: Sequence[Any] = ()) -> Cursor:
        """Execute SQL statement with positional parameters. SYNC."""
        ...

    def commit(self) -> None:
        """Commit current transaction. SYNC."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction. SYNC."""
        ...


# ---------------------------------------------------------------------------
# Component Protocols
# ---------------------------------------------------------------------------


class EntityFactory(Protocol):
    """
    Contract for entity factories.

    The repository never instantiates entities itself; it hands each
    rehydrated attribute map (and an optional context) to a factory.

    Tags:
        protocol, factory, entity
    """

    def create(
        self,
        attributes: Mapping[str, Any] | None = None,
        context: EntityContext | None = None,
    ) -> Entity:
        """Build an entity from storage-fresh attributes."""
        ...


class ContextFactory(Protocol):
    """Contract for turning plain context data into an entity context."""

    def create_context(self, data: Mapping[str, Any]) -> EntityContext:
        """Wrap ``data`` in a context object."""
        ...


__all__ = [
    "Connection",
    "ContextFactory",
    "Cursor",
    "EntityFactory",
]

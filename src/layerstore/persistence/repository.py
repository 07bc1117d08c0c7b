"""Repository: attribute-space CRUD and search over a StorageEngine.

Manifesto:
    Application code thinks in entities and attribute names. The repository
    is the facade that keeps it there: it asks the mapper to translate,
    the engine to execute, and an entity factory to rebuild results, so no
    caller ever writes a column name or sees a raw row.

    - **Raw and rich siblings:** ``get_raw`` returns attribute dicts,
      ``get`` returns entities built by the injected factory
    - **Dirty-only writes:** ``store``/``patch_*`` persist what changed
    - **Explicit context:** A fixed context or a per-row resolver, never a
      global

Architecture:
    ::

        caller ──attributes──▶ Repository
                                 │  Mapper: attributes → columns
                                 ▼
                           StorageEngine ──SQL──▶ Connection
                                 │  rows
                                 ▼
                               Mapper: columns → attributes
                                 │
                                 ▼
                           EntityFactory.create(attrs, context)

Examples:
    >>> repo = Repository(engine, SimpleEntityFactory(User))
    >>> user = User()
    >>> user.email = "a@example.com"
    >>> repo.store(user).id
    1
    >>> repo.get(["email", "like%", "a@"], pagination=(1, 10))
    [User({'id': 1, 'email': 'a@example.com', ...})]

Guardrails:
    ❌ DON'T: Construct entities from rows yourself
    ✅ DO: Let the factory (and context resolver) do it

    ❌ DON'T: Call ``delete_by_conditions`` without thinking about ``limit``
    ✅ DO: Rely on the default cap of 100 rows, or pass ``limit=None``

Tags:
    repository, facade, crud, search, entities, layerstore

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from layerstore.core.errors import MissingPrimaryKeyError
from layerstore.core.logging import get_logger
from layerstore.core.protocols import EntityFactory
from layerstore.persistence.conditions import Pagination, split_keywords
from layerstore.persistence.entity import ContextFactory, Entity, EntityContext
from layerstore.persistence.mapper import Mapper
from layerstore.persistence.schema import AttributeSchema, is_blank_key
from layerstore.persistence.storage import StorageEngine

logger = get_logger(__name__)

ContextResolver = Callable[[Mapping[str, Any]], Mapping[str, Any] | None]

DEFAULT_DELETE_LIMIT = 100


class Repository:
    """Attribute-space facade composing Mapper, StorageEngine and a factory.

    Parameters:
        storage: Engine bound to the schema's table.
        factory: Builds entities from attribute maps.
        mapper: Defaults to a :class:`Mapper` over ``storage.schema``.
        context_factory: Wraps context data into :class:`EntityContext`.
    """

    def __init__(
        self,
        storage: StorageEngine,
        factory: EntityFactory,
        *,
        mapper: Mapper | None = None,
        context_factory: ContextFactory | None = None,
    ) -> None:
        self.storage = storage
        self.factory = factory
        self.mapper = mapper or Mapper(storage.schema)
        self.context_factory = context_factory or ContextFactory()
        self._context_data: Mapping[str, Any] | None = None
        self._context_resolver: ContextResolver | None = None

    @property
    def schema(self) -> AttributeSchema:
        return self.storage.schema

    # =====================================================================
    # Context
    # =====================================================================

    def with_context(self, context_data: Mapping[str, Any] | None) -> Repository:
        """Use one fixed context for every entity built (``None`` clears it)."""
        self._context_data = context_data
        return self

    def with_context_resolver(self, resolver: ContextResolver | None) -> Repository:
        """Compute context per row from its attributes; a fixed context wins."""
        self._context_resolver = resolver
        return self

    def _context_for(self, attributes: Mapping[str, Any]) -> EntityContext | None:
        if self._context_data is not None:
            return self.context_factory.create_context(self._context_data)
        if self._context_resolver is not None:
            data = self._context_resolver(attributes)
            if data is not None:
                return self.context_factory.create_context(data)
        return None

    def _make(self, attributes: Mapping[str, Any]) -> Entity:
        return self.factory.create(attributes, self._context_for(attributes))

    def _make_many(
        self, rows: list[dict[str, Any]] | dict[Any, dict[str, Any]]
    ) -> list[Entity] | dict[Any, Entity]:
        if isinstance(rows, dict):
            return {key: self._make(attrs) for key, attrs in rows.items()}
        return [self._make(attrs) for attrs in rows]

    # =====================================================================
    # Reads
    # =====================================================================

    def get_by_id_raw(self, id: Any, attributes: Sequence[str] = ()) -> dict[str, Any] | None:
        row = self.storage.get_by_id(id, self.schema.column_names_for(attributes))
        return self.mapper.demap_one(row)

    def get_by_id(self, id: Any, attributes: Sequence[str] = ()) -> Entity | None:
        attrs = self.get_by_id_raw(id, attributes)
        return None if attrs is None else self._make(attrs)

    def get_raw(
        self,
        conditions: Any = (),
        attributes: Sequence[str] = (),
        pagination: Any = None,
        order_by: Any = None,
        key_attribute: str | None = None,
    ) -> list[dict[str, Any]] | dict[Any, dict[str, Any]]:
        """Attribute maps of matching rows (dict keyed by ``key_attribute`` if given)."""
        rows = self.storage.get_by_conditions(
            self.schema.column_names_for(attributes),
            self.mapper.map_conditions(conditions),
            pagination,
            self.mapper.map_order_by(order_by),
        )
        return self.mapper.demap(rows, key_attribute)

    def get(
        self,
        conditions: Any = (),
        attributes: Sequence[str] = (),
        pagination: Any = None,
        order_by: Any = None,
        key_attribute: str | None = None,
    ) -> list[Entity] | dict[Any, Entity]:
        return self._make_many(self.get_raw(conditions, attributes, pagination, order_by, key_attribute))

    def count(self, conditions: Any = ()) -> int:
        return self.storage.count_by_conditions(self.mapper.map_conditions(conditions))

    def get_first_raw(self, conditions: Any = (), attributes: Sequence[str] = ()) -> dict[str, Any] | None:
        rows = self.get_raw(conditions, attributes, Pagination(1, 1))
        return rows[0] if rows else None

    def get_first(self, conditions: Any = (), attributes: Sequence[str] = ()) -> Entity | None:
        attrs = self.get_first_raw(conditions, attributes)
        return None if attrs is None else self._make(attrs)

    def get_single_raw(self, attribute: str, value: Any, attributes: Sequence[str] = ()) -> dict[str, Any] | None:
        row = self.storage.get_single(
            self.schema.column_for_attribute(attribute),
            value,
            self.schema.column_names_for(attributes),
        )
        return self.mapper.demap_one(row)

    def get_single(self, attribute: str, value: Any, attributes: Sequence[str] = ()) -> Entity | None:
        attrs = self.get_single_raw(attribute, value, attributes)
        return None if attrs is None else self._make(attrs)

    def search_raw(
        self,
        keywords: str | Sequence[str],
        searched_attributes: Sequence[str] = (),
        attributes: Sequence[str] = (),
        pagination: Any = None,
        order_by: Any = None,
        key_attribute: str | None = None,
    ) -> list[dict[str, Any]] | dict[Any, dict[str, Any]]:
        """Rows where any searched attribute contains every keyword.

        ``searched_attributes`` defaults to the schema's searchable ones.
        """
        searched = list(searched_attributes) or list(self.schema.searchable_attributes)
        searched_columns = [self.schema.column_for_attribute(a) for a in searched]
        rows = self.storage.search_in_columns(
            split_keywords(keywords),
            searched_columns,
            self.schema.column_names_for(attributes),
            pagination,
            self.mapper.map_order_by(order_by),
        )
        return self.mapper.demap(rows, key_attribute)

    def search(
        self,
        keywords: str | Sequence[str],
        searched_attributes: Sequence[str] = (),
        attributes: Sequence[str] = (),
        pagination: Any = None,
        order_by: Any = None,
        key_attribute: str | None = None,
    ) -> list[Entity] | dict[Any, Entity]:
        return self._make_many(
            self.search_raw(keywords, searched_attributes, attributes, pagination, order_by, key_attribute)
        )

    # =====================================================================
    # Writes
    # =====================================================================

    def store(self, entity: Entity) -> Entity:
        """Insert or update ``entity``; backfill its key and reset dirty state."""
        columns = self.storage.store(self.mapper.to_columns(entity))
        for key in self.schema.primary_key:
            column = self.schema.column_for_attribute(key)
            if column in columns:
                entity.hydrate({key: columns[column]})
        entity.reset_dirty()
        logger.debug(
            "entity_stored",
            table=self.schema.table,
            key=entity.primary_key_values(self.schema),
        )
        return entity

    def store_many(self, entities: Sequence[Entity]) -> list[Entity]:
        stored = self.storage.store_multiple([self.mapper.to_columns(e) for e in entities])
        for entity, columns in zip(entities, stored, strict=True):
            for key in self.schema.primary_key:
                column = self.schema.column_for_attribute(key)
                if column in columns:
                    entity.hydrate({key: columns[column]})
            entity.reset_dirty()
        return list(entities)

    def _require_key(self, entity: Entity, operation: str) -> None:
        missing = [k for k in self.schema.primary_key if is_blank_key(entity.get(k))]
        if missing:
            raise MissingPrimaryKeyError(
                "The entity you would like to patch is missing the primary key, or the key is empty.",
                missing=missing,
            ).with_context(table=self.schema.table, operation=operation)

    def patch_by_id(self, entity: Entity, selected: Sequence[str] = ()) -> int:
        """UPDATE the dirty ``selected`` attributes of ``entity`` by its key."""
        self._require_key(entity, "patch_by_id")
        selected = list(selected)
        columns = self.mapper.to_columns(entity, selected)
        affected = self.storage.patch_by_id(columns)
        entity.reset_dirty(selected)
        return affected

    def patch_by_conditions(self, entity: Entity, selected: Sequence[str], conditions: Any) -> int:
        """UPDATE rows matching ``conditions`` with ``entity``'s dirty ``selected`` values."""
        selected = list(selected)
        columns = self.mapper.to_columns(entity, selected)
        for column in self.schema.primary_key_columns():
            columns.pop(column, None)
        affected = self.storage.patch_by_conditions(columns, self.mapper.map_conditions(conditions))
        entity.reset_dirty(selected)
        return affected

    def delete_by_id(self, id: Any, permanent: bool = False) -> int:
        return self.storage.delete_by_id(id, permanent)

    def delete(self, entity: Entity, permanent: bool = False) -> int:
        if self.schema.is_composite():
            return self.delete_by_primary_key(entity.primary_key_values(self.schema), permanent)
        return self.delete_by_id(entity.get(self.schema.primary_key[0]), permanent)

    def delete_by_primary_key(self, key_attributes: Mapping[str, Any], permanent: bool = False) -> int:
        """Delete the row identified by every primary-key attribute.

        Raises:
            MissingPrimaryKeyError: A key attribute is absent or ``None``.
        """
        missing = [k for k in self.schema.primary_key if key_attributes.get(k) is None]
        if missing:
            raise MissingPrimaryKeyError("Missing primary key.", missing=missing).with_context(
                table=self.schema.table, operation="delete_by_primary_key"
            )
        columns = self.mapper.attributes_to_columns(key_attributes)
        return self.storage.delete_by_primary_key(columns, permanent)

    def delete_by_conditions(
        self, conditions: Any, limit: int | None = DEFAULT_DELETE_LIMIT, permanent: bool = False
    ) -> int:
        return self.storage.delete_by_conditions(self.mapper.map_conditions(conditions), limit, permanent)

    # =====================================================================
    # Transactions
    # =====================================================================

    def begin(self) -> None:
        self.storage.begin()

    def commit(self) -> None:
        self.storage.commit()

    def rollback(self) -> None:
        self.storage.rollback()

    @contextmanager
    def transaction(self) -> Iterator[Repository]:
        with self.storage.transaction():
            yield self


__all__ = ["DEFAULT_DELETE_LIMIT", "ContextResolver", "Repository"]

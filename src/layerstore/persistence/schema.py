"""AttributeSchema: immutable per-entity-type storage descriptor.

Manifesto:
    An entity's shape in memory and its shape in storage drift apart the
    moment a column is renamed or a join needs an alias. The schema is the
    one place that records how they line up, so the mapper and the storage
    engine never guess.

    - **Construction-time constant:** Built once per entity type, never mutated
    - **Pure lookups:** No I/O, no knowledge of connections
    - **Explicit hooks:** Custom (de)mapping are plain callables, not overrides

Architecture:
    ::

        AttributeSchema (frozen)
        ├── attributes            attribute → column
        ├── primary_key           attribute names (composite when > 1)
        ├── hidden / json columns column-name sets
        ├── column_alias_map      column → SELECT expression (joins)
        ├── error_codes           native code → ErrorRule | [ErrorRule] | callable
        └── hooks                 entity_demapper, custom_mapping, custom_demapping

Examples:
    >>> users = AttributeSchema(
    ...     table="users",
    ...     attributes={"id": "id", "email": "email", "fullName": "full_name"},
    ...     has_timestamps=True,
    ... )
    >>> users.column_for_attribute("fullName")
    'full_name'
    >>> users.columns_for(["email"])
    {'email': 'email', 'id': 'id'}

Guardrails:
    ❌ DON'T: Subclass to change a table name at runtime
    ✅ DO: Build a second schema with ``dataclasses.replace``

    ❌ DON'T: Reference a primary-key attribute missing from ``attributes``
    ✅ DO: Map every key attribute (construction fails otherwise)

Tags:
    schema, mapping, attributes, columns, layerstore

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Union

from layerstore.core.errors import SchemaDefinitionError, UnknownAttributeError

if TYPE_CHECKING:
    from layerstore.persistence.entity import Entity

WILDCARD = "*"


@dataclass(frozen=True, slots=True)
class ErrorRule:
    """One row of an error-code table.

    ``match`` disambiguates rules sharing a native code (e.g. two unique
    indexes both raising MySQL 1062): the rule applies when ``match`` is a
    substring of the driver's message. ``None`` matches anything.
    """

    message: str
    match: str | None = None
    code: str | None = None
    fields: Mapping[str, str] = field(default_factory=dict)
    status: int = 400

    def matches(self, native_message: str) -> bool:
        return self.match is None or self.match in native_message


ErrorTableEntry = Union[
    ErrorRule,
    Sequence[ErrorRule],
    Callable[[], Union[ErrorRule, Sequence[ErrorRule]]],
]


def is_blank_key(value: Any) -> bool:
    """True for key values that mean "not assigned yet" (None, empty string, 0)."""
    return value is None or (not isinstance(value, bool) and value in ("", 0))


def _freeze_map(value: Mapping[Any, Any] | None) -> Mapping[Any, Any]:
    return MappingProxyType(dict(value or {}))


def _dedupe(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


@dataclass(frozen=True, eq=False)
class AttributeSchema:
    """Static descriptor mapping entity attributes to storage columns.

    Collections passed in are copied into tuples, frozensets and read-only
    mappings, so a schema can be shared freely between engines.

    Attributes:
        table: Table name used in generated SQL.
        attributes: Attribute name → column name.
        primary_key: Primary-key attribute names.
        auto_increment: Whether the store generates the key on insert.
            Ignored (treated as ``False``) for composite keys.
        hidden_columns: Columns omitted from default reads.
        json_columns: Columns serialized to JSON text on write.
        json_force_object_columns: JSON columns always written as objects.
        mandatory_attributes: Attributes read even when not selected.
        column_alias_map: Column → SELECT expression override.
        has_timestamps / has_soft_delete: Behaviour flags.
        error_codes: Native error code → error-table entry.
    """

    table: str
    attributes: Mapping[str, str]
    primary_key: tuple[str, ...] = ("id",)
    auto_increment: bool = True
    hidden_columns: frozenset[str] = frozenset()
    json_columns: frozenset[str] = frozenset()
    json_force_object_columns: frozenset[str] = frozenset()
    mandatory_attributes: tuple[str, ...] = ()
    column_alias_map: Mapping[str, str] = field(default_factory=dict)
    has_timestamps: bool = False
    has_soft_delete: bool = False
    error_codes: Mapping[Any, ErrorTableEntry] = field(default_factory=dict)
    searchable_attributes: tuple[str, ...] = ()
    created_column: str = "created_at"
    updated_column: str = "updated_at"
    deleted_column: str = "deleted_at"
    entity_demapper: Callable[[str, Entity], Any] | None = None
    custom_mapping: Callable[[dict[str, Any], Entity], dict[str, Any]] | None = None
    custom_demapping: Callable[[dict[str, Any], Mapping[str, Any]], dict[str, Any]] | None = None

    def __post_init__(self) -> None:
        if isinstance(self.primary_key, str):
            object.__setattr__(self, "primary_key", (self.primary_key,))
        object.__setattr__(self, "attributes", _freeze_map(self.attributes))
        object.__setattr__(self, "primary_key", tuple(self.primary_key))
        object.__setattr__(self, "hidden_columns", frozenset(self.hidden_columns))
        object.__setattr__(self, "json_columns", frozenset(self.json_columns))
        object.__setattr__(
            self, "json_force_object_columns", frozenset(self.json_force_object_columns)
        )
        object.__setattr__(self, "mandatory_attributes", tuple(self.mandatory_attributes))
        object.__setattr__(self, "column_alias_map", _freeze_map(self.column_alias_map))
        object.__setattr__(self, "error_codes", _freeze_map(self.error_codes))
        object.__setattr__(self, "searchable_attributes", tuple(self.searchable_attributes))

        if not self.primary_key:
            raise SchemaDefinitionError(f"Schema for '{self.table}' declares no primary key")
        missing = [key for key in self.primary_key if key not in self.attributes]
        if missing:
            raise SchemaDefinitionError(
                f"Primary key {missing} not found in attribute map of '{self.table}'"
            ).with_context(table=self.table)

    # -- key --------------------------------------------------------------

    def primary_key_columns(self) -> list[str]:
        return [self.attributes[key] for key in self.primary_key]

    def is_auto_increment(self) -> bool:
        """``False`` whenever the key has more than one attribute."""
        if len(self.primary_key) > 1:
            return False
        return self.auto_increment

    def is_composite(self) -> bool:
        return len(self.primary_key) > 1

    def mandatory(self) -> tuple[str, ...]:
        """Mandatory attributes with every primary-key attribute unioned in."""
        return _dedupe([*self.mandatory_attributes, *self.primary_key])

    # -- attribute / column lookups ---------------------------------------

    def column_for_attribute(self, attribute: str) -> str:
        try:
            return self.attributes[attribute]
        except KeyError:
            raise UnknownAttributeError(attribute, owner=self.table) from None

    def attribute_for_column(self, column: str) -> str | None:
        for attribute, mapped in self.attributes.items():
            if mapped == column:
                return attribute
        return None

    def has_attribute(self, attribute: str) -> bool:
        return attribute in self.attributes

    def is_hidden(self, attribute: str) -> bool:
        return self.attributes.get(attribute) in self.hidden_columns

    def is_searchable(self, attribute: str) -> bool:
        return attribute in self.searchable_attributes

    def all_columns(self) -> list[str]:
        """Every non-hidden column."""
        return [c for c in self.attributes.values() if c not in self.hidden_columns]

    def attribute_names(self, include_hidden: Sequence[str] = ()) -> list[str]:
        """Declared attribute names.

        With ``include_hidden`` empty every attribute is returned; otherwise
        hidden attributes are dropped unless listed (``*`` keeps them all).
        """
        names = list(self.attributes)
        if not include_hidden or WILDCARD in include_hidden:
            return names
        return [n for n in names if not self.is_hidden(n) or n in include_hidden]

    # -- column selection -------------------------------------------------

    def columns_for(
        self, attribute_names: Sequence[str] = (), *, apply_aliases: bool = True
    ) -> dict[str, str]:
        """Resolve requested attributes to an ordered ``{attribute: column}`` map.

        Empty or ``*`` selects every non-hidden attribute (with ``*``, hidden
        attributes named alongside it are included). Otherwise the request
        is merged with the mandatory attributes. Unknown names are skipped.
        """
        requested = list(attribute_names)
        if not requested:
            columns = {a: c for a, c in self.attributes.items() if c not in self.hidden_columns}
        elif WILDCARD in requested:
            columns = {
                a: c
                for a, c in self.attributes.items()
                if c not in self.hidden_columns or a in requested
            }
        else:
            wanted = _dedupe([*requested, *self.mandatory()])
            columns = {}
            for attribute in wanted:
                column = self.attributes.get(attribute)
                if column is not None and column not in columns.values():
                    columns[attribute] = column

        if apply_aliases:
            columns = {a: self.column_alias_map.get(c, c) for a, c in columns.items()}
        return columns

    def column_names_for(self, attribute_names: Sequence[str] = ()) -> list[str]:
        """Like :meth:`columns_for` but column names only, key columns appended."""
        names = list(self.columns_for(attribute_names).values())
        for key in self.primary_key_columns():
            if key not in names and self.column_alias_map.get(key) not in names:
                names.append(key)
        return names

    # -- error table ------------------------------------------------------

    def error_rules_for(self, code: Any) -> list[ErrorRule] | None:
        """Rules registered for a native code, or ``None`` when there are none.

        A single rule comes back as a one-element list with ``match`` cleared:
        a code with one rule needs no message disambiguation.
        """
        return resolve_error_entry(self.error_codes, code)


def resolve_error_entry(table: Mapping[Any, ErrorTableEntry], code: Any) -> list[ErrorRule] | None:
    entry = table.get(code)
    if entry is None and code is not None:
        entry = table.get(str(code))
    if entry is None:
        return None
    if callable(entry) and not isinstance(entry, ErrorRule):
        entry = entry()
    if isinstance(entry, ErrorRule):
        return [ErrorRule(entry.message, None, entry.code, entry.fields, entry.status)]
    return list(entry)


__all__ = [
    "WILDCARD",
    "AttributeSchema",
    "ErrorRule",
    "ErrorTableEntry",
    "is_blank_key",
    "resolve_error_entry",
]

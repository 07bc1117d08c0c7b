"""Entity: mutable record with first-divergence dirty tracking.

Manifesto:
    Writing back only what changed keeps UPDATE statements small and stops
    one caller's stale snapshot from clobbering another caller's column.
    To know what changed, an entity remembers the value each attribute had
    *before its first change*, and keeps that baseline until a successful
    persist resets it.

    - **Declared attributes only:** Unknown names raise, never silently stick
    - **First divergence wins:** Later sets never overwrite the baseline
    - **Hydrate is clean:** Data loaded from storage is not dirty
    - **Strict comparison:** ``1``, ``1.0`` and ``True`` are different values

Architecture:
    ::

        Entity
        ├── _values     attribute → current value (every declared attribute)
        ├── _original   attribute → value before first change (dirty overlay)
        ├── _snapshots  attribute → deep copy of a dict/list/set when first read,
        │               so edits made in place are still seen as changes
        └── context     optional EntityContext (defaults, tenant, locale …)

        New ──store()──▶ Persisted, clean ──set()──▶ Dirty
                               ▲                         │
                               └──store() / patch()──────┘

Examples:
    >>> class User(Entity):
    ...     attributes = ("id", "email", "status")
    ...     defaults = {"status": "active"}
    >>> user = User()
    >>> user.email = "a@example.com"
    >>> user.get_dirty()
    {'email': 'a@example.com'}
    >>> user.reset_dirty()
    >>> user.get_dirty()
    {}

Guardrails:
    ❌ DON'T: Share one entity between concurrent writers
    ✅ DO: Load a fresh entity per unit of work

    ❌ DON'T: Use ``set`` for rows just read from storage
    ✅ DO: Use ``hydrate`` (or the factory) so nothing is marked dirty

Tags:
    entity, dirty-tracking, model, layerstore

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from layerstore.core.errors import PersistenceValidationError, UnknownAttributeError

if TYPE_CHECKING:
    from layerstore.persistence.schema import AttributeSchema

_CONTAINERS = (dict, list, set)


def _changed(before: Any, after: Any) -> bool:
    # strict: 1, 1.0 and True are different values
    return type(before) is not type(after) or before != after


class EntityContext:
    """Immutable key/value bag threaded into entities by the repository."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data = dict(data or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._data

    def with_value(self, key: str, value: Any) -> EntityContext:
        """Copy with ``key`` set to ``value``; this context is unchanged."""
        return EntityContext({**self._data, key: value})

    def as_dict(self) -> dict[str, Any]:
        return dict(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntityContext):
            return NotImplemented
        return self._data == other._data

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"EntityContext({self._data!r})"


class ContextFactory:
    """Builds :class:`EntityContext` values from plain dicts."""

    def create_context(self, data: Mapping[str, Any]) -> EntityContext:
        return EntityContext(data)


class Entity:
    """Base class for dirty-tracked records.

    Subclasses declare ``attributes`` (and optionally ``defaults``). Values
    are readable and writable as Python attributes; writes route through
    :meth:`set` so they are tracked.
    """

    attributes: ClassVar[tuple[str, ...]] = ()
    defaults: ClassVar[Mapping[str, Any]] = {}

    def __init__(
        self,
        attributes: Mapping[str, Any] | None = None,
        *,
        context: EntityContext | None = None,
    ) -> None:
        cls = type(self)
        values = {name: copy.deepcopy(cls.defaults.get(name)) for name in cls.attributes}
        object.__setattr__(self, "_values", values)
        object.__setattr__(self, "_original", {})
        object.__setattr__(self, "_snapshots", {})
        object.__setattr__(self, "context", context)
        if attributes:
            self.hydrate(attributes)

    # -- attribute protocol -----------------------------------------------

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails.
        if name.startswith("_"):
            raise AttributeError(name)
        if name in self.__dict__.get("_values", {}):
            return self._read(name)
        raise UnknownAttributeError(name, owner=type(self).__name__)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self._values:
            self.set(name, value)
        elif name == "context" or name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            raise UnknownAttributeError(name, owner=type(self).__name__)

    # -- read ---------------------------------------------------------------

    def has(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str) -> Any:
        if name not in self._values:
            raise UnknownAttributeError(name, owner=type(self).__name__)
        return self._read(name)

    def _read(self, name: str) -> Any:
        value = self._values[name]
        # containers handed out while clean are snapshotted so in-place edits show as dirty
        if isinstance(value, _CONTAINERS) and name not in self._original and name not in self._snapshots:
            self._snapshots[name] = copy.deepcopy(value)
        return value

    def to_dict(self, selected: Sequence[str] = (), except_: Sequence[str] = ()) -> dict[str, Any]:
        """Snapshot of current values, optionally restricted and filtered."""
        names = selected or self._values
        return {n: self._values[n] for n in names if n in self._values and n not in except_}

    def not_null(self) -> dict[str, Any]:
        return {n: v for n, v in self._values.items() if v is not None}

    def primary_key_values(self, schema: AttributeSchema) -> dict[str, Any]:
        return {key: self.get(key) for key in schema.primary_key}

    # -- write --------------------------------------------------------------

    def set(self, name: str, value: Any) -> None:
        """Assign ``value``; the first change records the prior value."""
        if name not in self._values:
            raise UnknownAttributeError(name, owner=type(self).__name__)
        if name not in self._original:
            before = self._snapshots.get(name, self._values[name])
            if _changed(before, value):
                self._original[name] = before
                self._snapshots.pop(name, None)
        self._values[name] = value

    def set_many(self, attrs: Mapping[str, Any], ignore: Iterable[str] = ()) -> None:
        """Tracked bulk assignment; keys this entity doesn't declare are skipped."""
        skip = set(ignore)
        for name, value in attrs.items():
            if name in skip or name not in self._values:
                continue
            self.set(name, value)

    def hydrate(self, attrs: Mapping[str, Any], ignore: Iterable[str] = ()) -> None:
        """Untracked bulk assignment for data freshly loaded from storage."""
        skip = set(ignore)
        for name, value in attrs.items():
            if name in skip or name not in self._values:
                continue
            self._values[name] = value
            self._snapshots.pop(name, None)

    def revert(self, name: str) -> None:
        """Restore ``name`` to its recorded original and clear its dirty entry."""
        if name in self._original:
            self._values[name] = self._original.pop(name)
        elif name in self._snapshots:
            self._values[name] = copy.deepcopy(self._snapshots[name])

    def reset_to_defaults(self, names: Iterable[str], except_: Iterable[str] = ()) -> None:
        skip = set(except_)
        defaults = type(self).defaults
        for name in names:
            if name in skip or name not in self._values:
                continue
            self.set(name, copy.deepcopy(defaults.get(name)))

    # -- JSON data items ----------------------------------------------------

    def _mapping(self, attribute: str) -> dict[str, Any]:
        value = self.get(attribute)
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise PersistenceValidationError(
                f"Attribute '{attribute}' holds {type(value).__name__}, not a mapping"
            )
        return dict(value)

    def get_data(self, key: str | None = None, *, attribute: str = "data") -> Any:
        """One item of a mapping attribute (``None`` when absent), or the whole mapping."""
        data = self._mapping(attribute)
        return data if key is None else data.get(key)

    def set_data(self, key: str, item: Any, *, attribute: str = "data") -> None:
        """Set one item of a mapping attribute; tracked like :meth:`set`."""
        data = self._mapping(attribute)
        data[key] = item
        self.set(attribute, data)

    def delete_data_item(self, key: str, *, attribute: str = "data") -> None:
        data = self._mapping(attribute)
        if key in data:
            del data[key]
            self.set(attribute, data)

    # -- dirty tracking -----------------------------------------------------

    @property
    def original(self) -> dict[str, Any]:
        """Copy of the dirty overlay (attribute → value before first change)."""
        return dict(self._original)

    def get_dirty(self, selected: Sequence[str] = (), except_: Sequence[str] = ()) -> dict[str, Any]:
        """Changed attributes whose current value still differs from the original."""
        current = self.to_dict(selected, except_)
        dirty = {
            name: current[name]
            for name, before in self._original.items()
            if name in current and _changed(before, current[name])
        }
        for name, before in self._snapshots.items():
            if name in current and name not in self._original and _changed(before, current[name]):
                dirty[name] = current[name]
        return dirty

    def is_dirty(self, name: str | None = None) -> bool:
        dirty = self.get_dirty()
        return bool(dirty) if name is None else name in dirty

    def mark_dirty(
        self,
        names: str | Sequence[str],
        old_values: Any = None,
        force: bool = False,
    ) -> None:
        """Mark attributes dirty without changing their values.

        ``force`` overwrites any recorded original with ``None``. Otherwise an
        original is recorded only for untracked names, taken positionally from
        ``old_values`` (``None`` when absent).
        """
        if isinstance(names, str):
            names = [names]
        if not isinstance(old_values, (list, tuple)):
            old_values = [old_values]
        for i, name in enumerate(names):
            if force:
                self._original[name] = None
            elif name not in self._original:
                self._original[name] = old_values[i] if i < len(old_values) else None

    def mark_all_dirty(self, force: bool = False) -> None:
        self.mark_dirty(list(self._values), None, force)

    def reset_dirty(self, names: Iterable[str] = ()) -> None:
        names = list(names)
        if not names:
            self._original.clear()
            self._snapshots.clear()
            return
        for name in names:
            self._original.pop(name, None)
            self._snapshots.pop(name, None)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._values!r})"


class SimpleEntityFactory:
    """Factory for one :class:`Entity` subclass."""

    def __init__(self, entity_type: type[Entity]) -> None:
        self.entity_type = entity_type

    def create(
        self,
        attributes: Mapping[str, Any] | None = None,
        context: EntityContext | None = None,
    ) -> Entity:
        return self.entity_type(attributes, context=context)


__all__ = [
    "ContextFactory",
    "Entity",
    "EntityContext",
    "SimpleEntityFactory",
]

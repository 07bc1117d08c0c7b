"""Mapper: stateless translation between attribute-space and column-space.

The repository speaks attributes (``fullName``), the storage engine speaks
columns (``full_name``). The mapper sits between them, driven entirely by an
:class:`~layerstore.persistence.schema.AttributeSchema`:

* writes  -- dirty entity state → column map → JSON-encoded column map
* reads   -- row → JSON-decoded row → attribute map
* queries -- attribute conditions/order → column conditions/order

JSON columns are encoded with the stdlib ``json`` module. Decoding is
lenient: only text that looks like a JSON object or array is parsed, and
text that fails to parse is returned untouched so legacy rows still load.

Tags:
    mapper, mapping, json, columns, attributes, layerstore
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from layerstore.core.logging import get_logger
from layerstore.persistence.conditions import Condition, OrderSpec, normalize_conditions
from layerstore.persistence.entity import Entity
from layerstore.persistence.schema import AttributeSchema, is_blank_key

logger = get_logger(__name__)


def _as_object(value: Any) -> Any:
    """Object shape for the top-level value; nested values keep their shape."""
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (list, tuple)):
        return {str(i): item for i, item in enumerate(value)}
    return value


class Mapper:
    """Translate between an entity's attributes and its table's columns."""

    def __init__(self, schema: AttributeSchema) -> None:
        self.schema = schema

    # -- attribute → column -------------------------------------------------

    def attributes_to_columns(self, attr_values: Mapping[str, Any]) -> dict[str, Any]:
        """Map known attributes to columns.

        Nested entities go through the schema's ``entity_demapper`` (default:
        ``to_dict()``). Key columns whose attribute is absent or ``None`` are
        dropped so an INSERT never carries an explicit null key.
        """
        schema = self.schema
        columns: dict[str, Any] = {}
        for attr, value in attr_values.items():
            column = schema.attributes.get(attr)
            if column is None:
                continue
            if isinstance(value, Entity):
                value = self._demap_entity(attr, value)
            columns[column] = value

        for key in schema.primary_key:
            if attr_values.get(key) is None:
                columns.pop(schema.attributes[key], None)
        return columns

    def _demap_entity(self, attr: str, value: Entity) -> Any:
        if self.schema.entity_demapper is not None:
            return self.schema.entity_demapper(attr, value)
        return value.to_dict()

    def to_columns(
        self,
        entity: Entity,
        selected: Sequence[str] = (),
        except_: Sequence[str] = (),
    ) -> dict[str, Any]:
        """Column map for persisting ``entity``'s dirty state.

        Assigned primary-key values are always included so the engine can
        tell an update from an insert.
        """
        schema = self.schema
        columns = self.attributes_to_columns(entity.get_dirty(selected, except_))
        for key in schema.primary_key:
            value = entity.get(key)
            if not is_blank_key(value):
                columns[schema.attributes[key]] = value

        if schema.custom_mapping is not None:
            columns = schema.custom_mapping(columns, entity)
        return self.encode_json_columns(columns)

    # -- column → attribute -------------------------------------------------

    def columns_to_attributes(
        self,
        row: Mapping[str, Any],
        alias_overrides: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        attrs = {attr: row[column] for attr, column in self.schema.attributes.items() if column in row}
        for alias, attr in (alias_overrides or {}).items():
            if alias in row:
                attrs[attr] = row[alias]
        return attrs

    def demap_one(
        self,
        row: Mapping[str, Any] | None,
        alias_overrides: Mapping[str, str] | None = None,
    ) -> dict[str, Any] | None:
        """Decode one storage row into an attribute map (``None`` passes through)."""
        if row is None:
            return None
        decoded = self.decode_json_columns(row)
        attrs = self.columns_to_attributes(decoded, alias_overrides)
        if self.schema.custom_demapping is not None:
            attrs = self.schema.custom_demapping(attrs, row)
        return attrs

    def demap(
        self,
        rows: Iterable[Mapping[str, Any]],
        key_attribute: str | None = None,
    ) -> list[dict[str, Any]] | dict[Any, dict[str, Any]]:
        """Decode many rows; keyed by ``key_attribute`` when given."""
        decoded = [self.demap_one(row) for row in rows]
        if key_attribute is None:
            return decoded  # type: ignore[return-value]
        return {attrs.get(key_attribute): attrs for attrs in decoded if attrs is not None}

    # -- JSON columns -------------------------------------------------------

    def encode_json_columns(
        self, columns: Mapping[str, Any], specific: Sequence[str] = ()
    ) -> dict[str, Any]:
        """Serialize JSON columns present (and not ``None``) in ``columns``.

        Force-object columns store lists as index-keyed objects (``[]`` as
        ``{}``); every other column keeps its array or object shape. Strings
        are assumed to be encoded already and are left alone.
        """
        schema = self.schema
        encoded = dict(columns)
        for column in specific or schema.json_columns:
            value = encoded.get(column)
            if value is None or isinstance(value, str):
                continue
            if column in schema.json_force_object_columns:
                value = _as_object(value)
            encoded[column] = json.dumps(value, default=str)
        return encoded

    def decode_json_columns(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Parse JSON columns that hold object/array text; keep anything else."""
        decoded = dict(row)
        for column in self.schema.json_columns:
            value = decoded.get(column)
            if not isinstance(value, str) or value.lstrip()[:1] not in ("{", "["):
                continue
            try:
                decoded[column] = json.loads(value)
            except ValueError:
                logger.debug("json_column_left_raw", table=self.schema.table, column=column)
        return decoded

    # -- queries ------------------------------------------------------------

    def map_conditions(self, conditions: Any) -> list[Condition]:
        """Normalize attribute-space conditions and swap in column names.

        Raises:
            InvalidConditionShapeError: Malformed condition.
            UnknownAttributeError: Attribute not in the schema.
        """
        return [
            Condition(self.schema.column_for_attribute(c.column), c.operator, c.value)
            for c in normalize_conditions(conditions)
        ]

    def map_order_by(self, order_spec: Any) -> dict[str, str]:
        """``{"column", "direction"}``, or ``{}`` to use the storage default."""
        order = OrderSpec.coerce(order_spec)
        if order.attribute is None:
            return {}
        return {
            "column": self.schema.column_for_attribute(order.attribute),
            "direction": order.direction,
        }


__all__ = ["Mapper"]

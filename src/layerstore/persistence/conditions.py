"""Query vocabulary: conditions, operators, pagination, ordering, keyword search.

Callers describe filters as small lists instead of SQL::

    ["status", "active"]                        # shorthand, operator "="
    ["age", ">", 18]                            # single flat condition
    [["age", ">", 18], ["name", "like%", "Jo"]] # list of conditions

``normalize_conditions`` turns every accepted shape into ``Condition``
triples; ``compile_condition`` renders one triple into a parameterised SQL
fragment through a :class:`~layerstore.core.dialect.Dialect`.

Operators (case-insensitive, trimmed)
-------------------------------------
==========================  ==============================================
Operator                    SQL
==========================  ==============================================
``=`` ``<`` ``>`` ``<=``    plain comparison (``=``/``!=`` with ``None``
``>=`` ``!=`` ``<>``        become ``IS [NOT] NULL``)
``like``                    ``col LIKE ?`` (value used verbatim)
``%like%`` ``like%``        ``LIKE`` with ``%`` added where named
``%like``
``in`` ``not in``           list required; empty list is always-false /
(``notin``, ``not_in``)     always-true
``between``                 exactly two elements ``[low, high]``
``null`` ``not null``       value ignored (``is null``, ``is not null``)
``date=`` ``date>``         both sides truncated to a date by the dialect
``date>=`` ``date<``
``date<=``
anything else               passed through verbatim as the operator
==========================  ==============================================

Tags:
    conditions, operators, pagination, ordering, search, sql, layerstore

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from layerstore.core.dialect import Dialect
from layerstore.core.errors import InvalidConditionShapeError, PersistenceValidationError
from layerstore.core.timestamps import date_string

DEFAULT_PAGE_SIZE = 20

_SYNONYMS = {
    "notin": "not in",
    "not_in": "not in",
    "is null": "null",
    "is not null": "not null",
}

_LIKE_PATTERNS = {
    "like": "{}",
    "%like%": "%{}%",
    "like%": "{}%",
    "%like": "%{}",
}

_DATE_OPERATORS = {"date=", "date>", "date>=", "date<", "date<="}

_LIST_TYPES = (list, tuple, set, frozenset)


# =============================================================================
# Value types
# =============================================================================


@dataclass(frozen=True, slots=True)
class Condition:
    """Normalized ``(column, operator, value)`` triple."""

    column: str
    operator: str
    value: Any = None


@dataclass(frozen=True, slots=True)
class Pagination:
    """1-based page of ``count`` rows."""

    page: int = 1
    count: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.page < 1 or self.count < 1:
            raise PersistenceValidationError(
                f"Pagination needs page >= 1 and count >= 1, got ({self.page}, {self.count})"
            )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.count

    @property
    def limit(self) -> int:
        return self.count

    @classmethod
    def coerce(cls, value: Any, default_count: int = DEFAULT_PAGE_SIZE) -> Pagination:
        """Accept ``None``, a ``Pagination``, ``(page, count)`` or a mapping.

        Mappings may use ``count`` or ``per_page`` / ``perPage`` for the size.
        """
        if value is None:
            return cls(1, default_count)
        if isinstance(value, Pagination):
            return value
        if isinstance(value, Mapping):
            count = value.get("count", value.get("per_page", value.get("perPage", default_count)))
            return cls(int(value.get("page", 1)), int(count))
        if isinstance(value, Sequence) and not isinstance(value, str) and len(value) == 2:
            return cls(int(value[0]), int(value[1]))
        raise PersistenceValidationError(f"Unsupported pagination value: {value!r}")


@dataclass(frozen=True, slots=True)
class OrderSpec:
    """Attribute-space ordering; ``attribute=None`` means storage default."""

    attribute: str | None = None
    direction: str = "desc"

    def __post_init__(self) -> None:
        direction = self.direction.lower()
        if direction not in ("asc", "desc"):
            raise PersistenceValidationError(f"Order direction must be asc or desc, got {self.direction!r}")
        object.__setattr__(self, "direction", direction)

    @classmethod
    def coerce(cls, value: Any) -> OrderSpec:
        """Accept ``None``, an ``OrderSpec``, ``(attribute, direction)`` or a mapping."""
        if value is None:
            return cls()
        if isinstance(value, OrderSpec):
            return value
        if isinstance(value, Mapping):
            return cls(value.get("attribute"), value.get("direction", value.get("order", "desc")))
        if isinstance(value, str):
            return cls(value)
        if isinstance(value, Sequence) and len(value) == 2:
            return cls(value[0], value[1])
        raise PersistenceValidationError(f"Unsupported order value: {value!r}")


# =============================================================================
# Normalization
# =============================================================================


def _is_condition_like(item: Any) -> bool:
    return isinstance(item, Condition) or (
        isinstance(item, Sequence) and not isinstance(item, str)
    )


def _normalize_one(condition: Any) -> Condition:
    if isinstance(condition, Condition):
        return condition
    if not isinstance(condition, Sequence) or isinstance(condition, str):
        raise InvalidConditionShapeError("Invalid condition format.", condition=condition)
    if len(condition) == 2:
        column, operator, value = condition[0], "=", condition[1]
    elif len(condition) == 3:
        column, operator, value = condition
    else:
        raise InvalidConditionShapeError(
            f"Condition needs 2 or 3 elements, got {len(condition)}", condition=condition
        )
    if not isinstance(column, str) or not column:
        raise InvalidConditionShapeError("Condition is missing its column/attribute.", condition=condition)
    if not isinstance(operator, str):
        raise InvalidConditionShapeError("Condition operator must be a string.", condition=condition)
    return Condition(column, operator, value)


def is_flat_condition(conditions: Any) -> bool:
    """True for a single ``[name, value]`` / ``[name, op, value]`` shorthand."""
    return (
        isinstance(conditions, Sequence)
        and not isinstance(conditions, str)
        and len(conditions) > 0
        and not _is_condition_like(conditions[0])
    )


def normalize_conditions(conditions: Any) -> list[Condition]:
    """Normalize any accepted condition shape into a list of triples.

    Raises:
        InvalidConditionShapeError: For anything that is not a condition or
            a list of conditions.
    """
    if conditions is None:
        return []
    if isinstance(conditions, Condition):
        return [conditions]
    if not isinstance(conditions, Sequence) or isinstance(conditions, str):
        raise InvalidConditionShapeError("Invalid condition format.", condition=conditions)
    if not conditions:
        return []
    if is_flat_condition(conditions):
        return [_normalize_one(conditions)]
    return [_normalize_one(item) for item in conditions]


def normalize_operator(operator: str) -> str:
    op = " ".join(operator.strip().lower().split())
    return _SYNONYMS.get(op, op)


# =============================================================================
# Compilation
# =============================================================================


class ParamBinder:
    """Collects bound values and hands out dialect placeholders in order."""

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect
        self.params: list[Any] = []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return self.dialect.placeholder(len(self.params) - 1)

    def bind_many(self, values: Sequence[Any]) -> str:
        return ", ".join(self.bind(v) for v in values)


def compile_condition(
    condition: Condition,
    binder: ParamBinder,
    qualify: Callable[[str], str] = lambda column: column,
) -> str:
    """Render one condition as a SQL fragment, binding its values."""
    column = qualify(condition.column)
    op = normalize_operator(condition.operator)
    value = condition.value

    if op in _LIKE_PATTERNS:
        return f"{column} LIKE {binder.bind(_LIKE_PATTERNS[op].format(value))}"

    if op in ("in", "not in"):
        if not isinstance(value, _LIST_TYPES):
            raise InvalidConditionShapeError(
                f"{op.upper()} operator requires a list value.", condition=condition
            )
        items = list(value)
        if not items:
            return "1 = 0" if op == "in" else "1 = 1"
        keyword = "IN" if op == "in" else "NOT IN"
        return f"{column} {keyword} ({binder.bind_many(items)})"

    if op == "between":
        if not isinstance(value, _LIST_TYPES) or len(value) != 2:
            raise InvalidConditionShapeError(
                "BETWEEN operator requires [min, max].", condition=condition
            )
        low, high = list(value)
        return f"{column} BETWEEN {binder.bind(low)} AND {binder.bind(high)}"

    if op == "null":
        return f"{column} IS NULL"
    if op == "not null":
        return f"{column} IS NOT NULL"

    if op in _DATE_OPERATORS:
        comparison = op[len("date"):]
        dialect = binder.dialect
        placeholder = binder.bind(date_string(value))
        return f"{dialect.date_of(column)} {comparison} {dialect.date_of(placeholder)}"

    if value is None and op == "=":
        return f"{column} IS NULL"
    if value is None and op in ("!=", "<>"):
        return f"{column} IS NOT NULL"
    if op == "!=":
        op = "<>"
    return f"{column} {op} {binder.bind(value)}"


def compile_conditions(
    conditions: Sequence[Condition],
    binder: ParamBinder,
    qualify: Callable[[str], str] = lambda column: column,
) -> list[str]:
    return [compile_condition(c, binder, qualify) for c in conditions]


def keyword_predicate(
    keywords: Sequence[str],
    columns: Sequence[str],
    binder: ParamBinder,
    qualify: Callable[[str], str] = lambda column: column,
) -> str | None:
    """``(c1 LIKE %t1% AND c1 LIKE %t2%) OR (c2 LIKE …)``; ``None`` if nothing to match."""
    tokens = [k for k in keywords if k]
    if not tokens or not columns:
        return None
    groups = []
    for column in columns:
        target = qualify(column)
        clauses = [f"{target} LIKE {binder.bind(f'%{token}%')}" for token in tokens]
        groups.append("(" + " AND ".join(clauses) + ")")
    return "(" + " OR ".join(groups) + ")"


def split_keywords(keywords: str | Sequence[str]) -> list[str]:
    if isinstance(keywords, str):
        return keywords.split()
    return [k for k in keywords if k]


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "Condition",
    "OrderSpec",
    "Pagination",
    "ParamBinder",
    "compile_condition",
    "compile_conditions",
    "is_flat_condition",
    "keyword_predicate",
    "normalize_conditions",
    "normalize_operator",
    "split_keywords",
]

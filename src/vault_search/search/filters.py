"""Filter AST — store-agnostic metadata filters with compilers for each store."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import and_ as sa_and
from sqlalchemy import not_ as sa_not
from sqlalchemy import or_ as sa_or

# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class FilterOp(Enum):
    """Comparison operators for metadata filtering."""

    EQ = "eq"
    NE = "ne"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"


class LogicalOp(Enum):
    """Logical combinators for grouping filter expressions."""

    AND = "and"
    OR = "or"


# ------------------------------------------------------------------
# AST nodes
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Comparison:
    """A single field comparison (e.g. ``folder == "databases"``).

    Attributes:
        field: Metadata field name.
        op: Comparison operator.
        value: Value to compare against.  For ``EXISTS``, this is a bool.
    """

    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True, slots=True)
class LogicalGroup:
    """A logical combination of filter expressions.

    Attributes:
        op: Logical operator (AND / OR).
        expressions: Child expressions to combine.
    """

    op: LogicalOp
    expressions: list[FilterExpression]


FilterExpression = Comparison | LogicalGroup
"""Union type for the filter AST: either a leaf :class:`Comparison` or a
:class:`LogicalGroup` combining sub-expressions."""


# ------------------------------------------------------------------
# Builder helpers
# ------------------------------------------------------------------


def eq(field: str, value: Any) -> Comparison:
    """``field == value`` (membership for list-valued fields such as tags)."""
    return Comparison(field=field, op=FilterOp.EQ, value=value)


def ne(field: str, value: Any) -> Comparison:
    """``field != value``."""
    return Comparison(field=field, op=FilterOp.NE, value=value)


def in_(field: str, values: list[Any]) -> Comparison:
    """``field IN values``."""
    return Comparison(field=field, op=FilterOp.IN, value=list(values))


def not_in(field: str, values: list[Any]) -> Comparison:
    """``field NOT IN values``."""
    return Comparison(field=field, op=FilterOp.NOT_IN, value=list(values))


def exists(field: str, *, exists: bool = True) -> Comparison:
    """Field is present and non-empty (or absent/empty if ``exists=False``)."""
    return Comparison(field=field, op=FilterOp.EXISTS, value=exists)


def and_(*exprs: FilterExpression) -> LogicalGroup:
    """Combine expressions with AND."""
    return LogicalGroup(op=LogicalOp.AND, expressions=list(exprs))


def or_(*exprs: FilterExpression) -> LogicalGroup:
    """Combine expressions with OR."""
    return LogicalGroup(op=LogicalOp.OR, expressions=list(exprs))


def fields_of(expr: FilterExpression) -> set[str]:
    """Return every field name referenced by *expr*."""
    if isinstance(expr, Comparison):
        return {expr.field}
    names: set[str] = set()
    for child in expr.expressions:
        names |= fields_of(child)
    return names


# ------------------------------------------------------------------
# Compilers: AST to store-native forms
# ------------------------------------------------------------------


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _matches(actual: Any, op: FilterOp, value: Any) -> bool:
    if op == FilterOp.EXISTS:
        present = actual is not None and actual != "" and actual != () and actual != []
        return present if value else not present
    if _is_sequence(actual):
        if op == FilterOp.EQ:
            return value in actual
        if op == FilterOp.NE:
            return value not in actual
        if op == FilterOp.IN:
            return any(v in actual for v in value)
        return not any(v in actual for v in value)
    if op == FilterOp.EQ:
        return actual == value
    if op == FilterOp.NE:
        return actual != value
    if op == FilterOp.IN:
        return actual in value
    return actual not in value


def compile_predicate(expr: FilterExpression) -> Callable[[Mapping[str, Any]], bool]:
    """Compile a ``FilterExpression`` to a predicate over a metadata mapping.

    List-valued fields match ``eq``/``in_`` by membership::

        pred = compile_predicate(and_(eq("folder", "databases"), eq("tags", "sql")))
        pred({"folder": "databases", "tags": ["sql", "postgres"]})  # True
    """
    if isinstance(expr, Comparison):
        field, op, value = expr.field, expr.op, expr.value
        return lambda meta: _matches(meta.get(field), op, value)

    children = [compile_predicate(child) for child in expr.expressions]
    if expr.op == LogicalOp.AND:
        return lambda meta: all(pred(meta) for pred in children)
    return lambda meta: any(pred(meta) for pred in children)


def compile_sqlalchemy(expr: FilterExpression, columns: Mapping[str, Any]) -> Any:
    """Compile a ``FilterExpression`` to a SQLAlchemy boolean clause.

    *columns* maps field names to scalar column expressions.  Raises
    ``KeyError`` for a field that has no column; callers check
    :func:`fields_of` first and fall back to :func:`compile_predicate`.
    """
    if isinstance(expr, Comparison):
        column = columns[expr.field]
        if expr.op == FilterOp.EQ:
            return column == expr.value
        if expr.op == FilterOp.NE:
            return column != expr.value
        if expr.op == FilterOp.IN:
            return column.in_(expr.value)
        if expr.op == FilterOp.NOT_IN:
            return sa_not(column.in_(expr.value))
        present = sa_and(column.is_not(None), column != "")
        return present if expr.value else sa_not(present)

    clauses = [compile_sqlalchemy(child, columns) for child in expr.expressions]
    if expr.op == LogicalOp.AND:
        return sa_and(*clauses)
    return sa_or(*clauses)

# vectorgate/filter_compiler.py
# SPDX-License-Identifier: Apache-2.0
"""
Filter Compiler: declarative metadata filters to parameterized SQL.

A filter expression is a mapping whose keys are dotted metadata field paths
and whose values are either a literal (implicit ``eq``) or a condition
``{"operator": <op>, "value": <any>}``. The combinator keys ``$and`` / ``$or``
take a list of sub-expressions:

    {
        "$and": [
            {"category": "shoes"},
            {"price": {"operator": "lte", "value": 100}},
            {"$or": [
                {"brand.name": {"operator": "ilike", "value": "acme"}},
                {"tags": {"operator": "in", "value": "sale,new"}},
            ]},
        ]
    }

`compile_filter` turns that into a PostgreSQL JSONB predicate with positional
placeholders plus the ordered parameter list:

    (metadata#>>'{category}' = $1 AND (metadata#>>'{price}')::numeric <= $2
     AND (metadata#>>'{brand,name}' ILIKE $3 OR metadata#>>'{tags}' = ANY($4::text[])))
    params = ["shoes", 100, "%acme%", ["sale", "new"]]

Placeholders are numbered in pre-order over the expression tree, so the n-th
value in `params` always binds to ``$(start_index + n)``. Values are never
rendered into the SQL text; field paths are, which is why path segments are
restricted to word characters and ``-``.

The compiler is pure: no I/O and no shared mutable state. The parsing helpers
(`parse_condition`, `normalize_in_value`, `build_contains_value`) are shared
with the native filter translators so every backend accepts and rejects the
same shapes.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from vectorgate.errors import ValidationError


class FilterOperator(str, Enum):
    """Closed set of filter operators."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    CONTAINS = "contains"
    EXISTS = "exists"
    AND = "$and"
    OR = "$or"

    @property
    def is_combinator(self) -> bool:
        return self in COMBINATORS


# combinator -> SQL boolean connective
COMBINATORS: Dict[FilterOperator, str] = {
    FilterOperator.AND: "AND",
    FilterOperator.OR: "OR",
}

METADATA_ROOT = "metadata"

_SEGMENT_RE = re.compile(r"^[\w\-]+$")
_COLUMN_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class ParameterizedPredicate:
    """
    Compiled predicate.

    Attributes:
        sql: Predicate text with ``$n`` placeholders
        params: Bound values, ``params[i]`` binds to ``$(start_index + i)``
        param_types: SQL type of each placeholder ("text", "numeric", "text[]", "jsonb")
        start_index: Index of the first placeholder
    """
    sql: str
    params: List[Any] = field(default_factory=list)
    param_types: List[str] = field(default_factory=list)
    start_index: int = 1

    @property
    def next_index(self) -> int:
        """First placeholder index free for the caller's own parameters."""
        return self.start_index + len(self.params)


@dataclass(frozen=True)
class FilterCondition:
    """A parsed leaf: one field path bound to one operator."""
    key: str
    path: Tuple[str, ...]
    operator: FilterOperator
    value: Any = None


@dataclass(frozen=True)
class OperatorSpec:
    """
    How a leaf operator is rendered.

    Attributes:
        render: (column, path, param_index) -> SQL fragment
        needs_value: Whether the operator binds a parameter
        transform: Optional (path, value) -> bound value
        param_type: SQL type of the bound parameter
    """
    render: Callable[[str, Tuple[str, ...], int], str]
    needs_value: bool = True
    transform: Optional[Callable[[Tuple[str, ...], Any], Any]] = None
    param_type: Optional[str] = "text"


# =============================================================================
# Shared parsing helpers
# =============================================================================

def split_path(key: Any) -> Tuple[str, ...]:
    """
    Split a dotted field path into validated segments.

    Paths address the metadata document; an explicit leading ``metadata.``
    is accepted and dropped, so ``"metadata.label"`` and ``"label"`` name
    the same field.
    """
    if not isinstance(key, str) or not key:
        raise ValidationError(
            "filter field path must be a non-empty string",
            details={"key": repr(key)},
        )
    segments = tuple(key.split("."))
    for segment in segments:
        if not _SEGMENT_RE.match(segment):
            raise ValidationError(
                f"invalid segment {segment!r} in filter field path {key!r}",
                details={"key": key},
            )
    if len(segments) > 1 and segments[0] == METADATA_ROOT:
        segments = segments[1:]
    return segments


def parse_condition(key: str, raw: Any) -> FilterCondition:
    """
    Parse one leaf of a filter expression.

    A literal becomes ``eq``; a mapping must carry an ``operator`` from the
    closed set and, for value-consuming operators, a ``value``.
    """
    if isinstance(key, str) and key.startswith("$"):
        raise ValidationError(
            f"unrecognized operator {key!r}",
            details={"key": key, "operator": key},
        )
    path = split_path(key)

    if not isinstance(raw, Mapping):
        return FilterCondition(key=key, path=path, operator=FilterOperator.EQ, value=raw)

    if "operator" not in raw:
        raise ValidationError(
            f"filter condition for {key!r} must be a literal or an object with an 'operator'",
            details={"key": key},
        )

    name = raw["operator"]
    try:
        operator = FilterOperator(name)
    except ValueError:
        operator = None
    if operator is None or operator.is_combinator:
        raise ValidationError(
            f"unrecognized operator {name!r} for key {key!r}",
            details={"key": key, "operator": repr(name)},
        )

    op_def = FILTER_OPERATORS[operator]
    if op_def.needs_value and "value" not in raw:
        raise ValidationError(
            f"operator {operator.value!r} for key {key!r} requires a 'value'",
            details={"key": key, "operator": operator.value},
        )
    return FilterCondition(key=key, path=path, operator=operator, value=raw.get("value"))


def combinator_children(operator: FilterOperator, raw: Any) -> List[Mapping[str, Any]]:
    """Validate the operand of ``$and`` / ``$or``."""
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValidationError(
            f"{operator.value} requires a non-empty list of filter expressions",
            details={"operator": operator.value},
        )
    return list(raw)


def normalize_in_value(value: Any) -> List[Any]:
    """``"a,b,c"`` -> ``["a", "b", "c"]``; lists pass through unchanged."""
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, str):
        return value.split(",")
    raise ValidationError(
        "'in' requires a list or a comma-separated string",
        details={"value_type": type(value).__name__},
    )


def build_contains_value(path: Tuple[str, ...], value: Any) -> Dict[str, Any]:
    """
    Nest `value` under the path segments, innermost first.

    ``("a", "b", "c"), V`` -> ``{"a": {"b": {"c": V}}}``
    """
    acc: Any = value
    for segment in reversed(path):
        acc = {segment: acc}
    return acc


# =============================================================================
# Operator table
# =============================================================================

def _extract(column: str, path: Tuple[str, ...]) -> str:
    return f"{column}#>>'{{{','.join(path)}}}'"


def _basic(symbol: str) -> OperatorSpec:
    wrap = "like" in symbol.lower()

    def render(column: str, path: Tuple[str, ...], index: int) -> str:
        return f"{_extract(column, path)} {symbol} ${index}"

    return OperatorSpec(
        render=render,
        transform=(lambda path, value: f"%{value}%") if wrap else None,
    )


def _require_number(path: Tuple[str, ...], value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError(
            "numeric comparison requires a number",
            details={"key": ".".join(path), "value_type": type(value).__name__},
        )
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            raise ValidationError(
                f"numeric comparison requires a number, got {value!r}",
                details={"key": ".".join(path)},
            ) from None
    return value


def _numeric(symbol: str) -> OperatorSpec:
    def render(column: str, path: Tuple[str, ...], index: int) -> str:
        return f"({_extract(column, path)})::numeric {symbol} ${index}"

    return OperatorSpec(render=render, transform=_require_number, param_type="numeric")


def _render_exists(column: str, path: Tuple[str, ...], index: int) -> str:
    if len(path) == 1:
        return f"{column} ? '{path[0]}'"
    return f"{column} #> '{{{','.join(path)}}}' IS NOT NULL"


FILTER_OPERATORS: Dict[FilterOperator, OperatorSpec] = {
    FilterOperator.EQ: _basic("="),
    FilterOperator.NEQ: _basic("!="),
    FilterOperator.GT: _numeric(">"),
    FilterOperator.GTE: _numeric(">="),
    FilterOperator.LT: _numeric("<"),
    FilterOperator.LTE: _numeric("<="),
    FilterOperator.LIKE: _basic("LIKE"),
    FilterOperator.ILIKE: _basic("ILIKE"),
    FilterOperator.IN: OperatorSpec(
        render=lambda column, path, index: f"{_extract(column, path)} = ANY(${index}::text[])",
        transform=lambda path, value: normalize_in_value(value),
        param_type="text[]",
    ),
    FilterOperator.CONTAINS: OperatorSpec(
        render=lambda column, path, index: f"{column} @> ${index}::jsonb",
        transform=lambda path, value: json.dumps(build_contains_value(path, value)),
        param_type="jsonb",
    ),
    FilterOperator.EXISTS: OperatorSpec(
        render=_render_exists,
        needs_value=False,
        param_type=None,
    ),
}


# =============================================================================
# Compiler
# =============================================================================

class FilterCompiler:
    """
    Compiles filter expressions against one JSONB column.

    Stateless apart from its configuration; one instance may be shared by
    any number of concurrent callers.
    """

    def __init__(self, column: str = "metadata") -> None:
        if not isinstance(column, str) or not _COLUMN_RE.match(column):
            raise ValidationError(
                "column must be a plain SQL identifier",
                details={"column": repr(column)},
            )
        self._column = column

    def compile(self, expression: Mapping[str, Any], start_index: int = 1) -> ParameterizedPredicate:
        if isinstance(start_index, bool) or not isinstance(start_index, int) or start_index < 1:
            raise ValidationError("start_index must be a positive integer")
        sql, params, types = self._compile_expression(expression, start_index)
        return ParameterizedPredicate(
            sql=sql,
            params=params,
            param_types=types,
            start_index=start_index,
        )

    def _compile_expression(
        self,
        expression: Any,
        index: int,
    ) -> Tuple[str, List[Any], List[str]]:
        if not isinstance(expression, Mapping):
            raise ValidationError(
                "filter expression must be a mapping",
                details={"type": type(expression).__name__},
            )
        if not expression:
            raise ValidationError("filter expression must not be empty")

        fragments: List[str] = []
        params: List[Any] = []
        types: List[str] = []
        for key, raw in expression.items():
            operator = _combinator_for(key)
            if operator is not None:
                sql, p, t = self._compile_combinator(operator, raw, index)
            else:
                sql, p, t = self._compile_leaf(parse_condition(key, raw), index)
            fragments.append(sql)
            params.extend(p)
            types.extend(t)
            index += len(p)

        if len(fragments) == 1:
            return fragments[0], params, types
        return f"({' AND '.join(fragments)})", params, types

    def _compile_combinator(
        self,
        operator: FilterOperator,
        raw: Any,
        index: int,
    ) -> Tuple[str, List[Any], List[str]]:
        fragments: List[str] = []
        params: List[Any] = []
        types: List[str] = []
        for child in combinator_children(operator, raw):
            sql, p, t = self._compile_expression(child, index)
            fragments.append(sql)
            params.extend(p)
            types.extend(t)
            index += len(p)
        connective = f" {COMBINATORS[operator]} "
        return f"({connective.join(fragments)})", params, types

    def _compile_leaf(
        self,
        condition: FilterCondition,
        index: int,
    ) -> Tuple[str, List[Any], List[str]]:
        op_def = FILTER_OPERATORS[condition.operator]
        sql = op_def.render(self._column, condition.path, index)
        if not op_def.needs_value:
            return sql, [], []
        value = condition.value
        if op_def.transform is not None:
            value = op_def.transform(condition.path, value)
        return sql, [value], [op_def.param_type]


def _combinator_for(key: Any) -> Optional[FilterOperator]:
    if key == FilterOperator.AND.value:
        return FilterOperator.AND
    if key == FilterOperator.OR.value:
        return FilterOperator.OR
    return None


_DEFAULT_COMPILER = FilterCompiler()


def compile_filter(
    expression: Mapping[str, Any],
    start_index: int = 1,
    *,
    column: str = "metadata",
) -> ParameterizedPredicate:
    """Compile `expression` into a predicate whose first placeholder is ``$start_index``."""
    compiler = _DEFAULT_COMPILER if column == "metadata" else FilterCompiler(column)
    return compiler.compile(expression, start_index)


def validate_filter(expression: Mapping[str, Any]) -> None:
    """Raise ValidationError if `expression` is malformed."""
    _DEFAULT_COMPILER.compile(expression, 1)


__all__ = [
    "FilterOperator",
    "COMBINATORS",
    "METADATA_ROOT",
    "ParameterizedPredicate",
    "FilterCondition",
    "OperatorSpec",
    "FILTER_OPERATORS",
    "FilterCompiler",
    "split_path",
    "parse_condition",
    "combinator_children",
    "normalize_in_value",
    "build_contains_value",
    "compile_filter",
    "validate_filter",
]

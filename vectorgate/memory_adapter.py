# vectorgate/memory_adapter.py
# SPDX-License-Identifier: Apache-2.0
"""
In-memory reference vector store.

Implements every `BaseVectorStore` hook against plain dictionaries and
evaluates filter expressions locally with the same semantics the pgvector
backend gets from PostgreSQL:

- Field values are compared as text, the way ``metadata#>>'{a,b}'`` yields
  them (numbers in JSON form, booleans as ``true`` / ``false``).
- ``gt`` / ``gte`` / ``lt`` / ``lte`` cast the stored value to a number; a
  value that is absent or not numeric does not match.
- ``like`` / ``ilike`` use SQL wildcards (``%`` and ``_``) around ``%value%``.
- ``contains`` is JSONB containment (``@>``) of the folded path object.
- ``exists`` is true when the path is present, even if its value is null.

Used by the test-suite and the examples; no network, no persistence.
"""

from __future__ import annotations

import copy
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from vectorgate.errors import ConflictError, NotFoundError, ValidationError
from vectorgate.filter_compiler import (
    FilterCondition,
    FilterOperator,
    build_contains_value,
    combinator_children,
    normalize_in_value,
    parse_condition,
)
from vectorgate.metric_mapping import SUPPORTED_METRICS, DistanceMetric
from vectorgate.vector_base import (
    BaseVectorStore,
    IndexDescriptor,
    OperationContext,
    QueryResult,
    VectorRecord,
    VectorStoreCapabilities,
)

logger = logging.getLogger(__name__)

_MISSING = object()

# ------------------------------- utilities --------------------------------- #


def _cosine_sim(a: List[float], b: List[float]) -> float:
    num = sum(x * y for x, y in zip(a, b))
    den_a = math.sqrt(sum(x * x for x in a)) or 1.0
    den_b = math.sqrt(sum(y * y for y in b)) or 1.0
    return num / (den_a * den_b)


def _euclidean(a: List[float], b: List[float]) -> float:
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def _dot(a: List[float], b: List[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def _score(metric: DistanceMetric, a: List[float], b: List[float]) -> float:
    if metric is DistanceMetric.COSINE:
        return _cosine_sim(a, b)
    if metric is DistanceMetric.EUCLIDEAN:
        return 1.0 / (1.0 + _euclidean(a, b))
    return _dot(a, b)


# ---------------------------- filter evaluation ----------------------------- #


def _extract(meta: Mapping[str, Any], path: Tuple[str, ...]) -> Any:
    node: Any = meta
    for segment in path:
        if isinstance(node, Mapping) and segment in node:
            node = node[segment]
        elif isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
            node = node[int(segment)]
        else:
            return _MISSING
    return node


def _as_text(value: Any) -> Optional[str]:
    """Render a JSON value the way PostgreSQL's ``#>>`` does."""
    if value is _MISSING or value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _as_number(value: Any) -> Optional[float]:
    text = _as_text(value)
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _like(text: Optional[str], pattern: str, *, ignore_case: bool) -> bool:
    if text is None:
        return False
    regex = "".join(
        ".*" if ch == "%" else "." if ch == "_" else re.escape(ch)
        for ch in pattern
    )
    flags = re.DOTALL | (re.IGNORECASE if ignore_case else 0)
    return re.fullmatch(regex, text, flags) is not None


def _json_equal(a: Any, b: Any) -> bool:
    # JSON distinguishes true from 1
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    return a == b


def _jsonb_contains(doc: Any, pattern: Any) -> bool:
    """PostgreSQL ``@>`` for JSON-like Python values."""
    if isinstance(pattern, Mapping):
        if not isinstance(doc, Mapping):
            return False
        return all(k in doc and _jsonb_contains(doc[k], v) for k, v in pattern.items())
    if isinstance(pattern, list):
        if not isinstance(doc, list):
            return False
        return all(any(_jsonb_contains(d, p) for d in doc) for p in pattern)
    if isinstance(doc, (Mapping, list)):
        return False
    return _json_equal(doc, pattern)


def _match_condition(meta: Mapping[str, Any], cond: FilterCondition) -> bool:
    op = cond.operator
    if op is FilterOperator.EXISTS:
        return _extract(meta, cond.path) is not _MISSING
    if op is FilterOperator.CONTAINS:
        # the folded value is matched the way it is bound: as JSON
        pattern = json.loads(json.dumps(build_contains_value(cond.path, cond.value)))
        return _jsonb_contains(meta, pattern)

    stored = _extract(meta, cond.path)
    text = _as_text(stored)

    if op is FilterOperator.EQ:
        return text is not None and text == _as_text(cond.value)
    if op is FilterOperator.NEQ:
        return text is not None and text != _as_text(cond.value)
    if op is FilterOperator.LIKE:
        return _like(text, f"%{cond.value}%", ignore_case=False)
    if op is FilterOperator.ILIKE:
        return _like(text, f"%{cond.value}%", ignore_case=True)
    if op is FilterOperator.IN:
        if text is None:
            return False
        return text in {_as_text(v) for v in normalize_in_value(cond.value)}

    left = _as_number(stored)
    right = float(cond.value)
    if left is None:
        return False
    if op is FilterOperator.GT:
        return left > right
    if op is FilterOperator.GTE:
        return left >= right
    if op is FilterOperator.LT:
        return left < right
    if op is FilterOperator.LTE:
        return left <= right
    raise ValidationError(f"unsupported operator {op.value!r}")


def _filter_match(meta: Mapping[str, Any], expression: Optional[Mapping[str, Any]]) -> bool:
    """Evaluate a (validated) filter expression against one metadata document."""
    if not expression:
        return True
    for key, raw in expression.items():
        if key == FilterOperator.AND.value:
            ok = all(_filter_match(meta, child) for child in combinator_children(FilterOperator.AND, raw))
        elif key == FilterOperator.OR.value:
            ok = any(_filter_match(meta, child) for child in combinator_children(FilterOperator.OR, raw))
        else:
            ok = _match_condition(meta, parse_condition(key, raw))
        if not ok:
            return False
    return True


# ------------------------------- store state -------------------------------- #


@dataclass
class _IndexState:
    dimension: int
    metric: DistanceMetric
    # id -> record, insertion ordered
    records: Dict[str, VectorRecord] = field(default_factory=dict)


# ------------------------------- store class -------------------------------- #


class InMemoryVectorStore(BaseVectorStore):
    """
    Dictionary-backed store with locally enforced filters.
    """

    _component = "vector_memory"

    def __init__(self, name: str = "memory", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.name = name
        self._indexes: Dict[str, _IndexState] = {}

    def _get(self, name: str) -> _IndexState:
        try:
            return self._indexes[name]
        except KeyError:
            raise NotFoundError(f"index '{name}' does not exist", details={"index": name}) from None

    # --------------------------- capability probe --------------------------- #

    async def _do_capabilities(self) -> VectorStoreCapabilities:
        return VectorStoreCapabilities(
            server=self.name,
            version="1.0.0",
            supported_metrics=SUPPORTED_METRICS,
            enforces_filters=True,
            filter_dialect="local",
        )

    # ------------------------------ lifecycle ------------------------------ #

    async def _do_create_index(
        self,
        name: str,
        dimension: int,
        metric: DistanceMetric,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        if name in self._indexes:
            raise ConflictError(f"index '{name}' already exists", details={"index": name})
        self._indexes[name] = _IndexState(dimension=dimension, metric=metric)

    async def _do_describe_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> IndexDescriptor:
        state = self._get(name)
        return IndexDescriptor(
            dimension=state.dimension,
            metric=state.metric,
            count=len(state.records),
        )

    async def _do_list_indexes(self, *, ctx: Optional[OperationContext] = None) -> List[str]:
        return list(self._indexes)

    async def _do_delete_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        self._get(name)
        del self._indexes[name]

    # ------------------------------ upsert --------------------------------- #

    async def _do_upsert_chunk(
        self,
        name: str,
        records: List[VectorRecord],
        offset: int,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> Optional[List[Dict[str, Any]]]:
        state = self._get(name)
        # the whole chunk is rejected, like a single multi-row INSERT
        for i, record in enumerate(records):
            if len(record.vector) != state.dimension:
                raise ValidationError(
                    f"expected {state.dimension} dimensions, not {len(record.vector)}",
                    details={"index": name, "position": offset + i, "id": record.id},
                )
        for record in records:
            state.records[record.id] = VectorRecord(
                id=record.id,
                vector=list(record.vector),
                metadata=copy.deepcopy(record.metadata),
            )
        return None

    # ------------------------------ query ---------------------------------- #

    async def _do_query(
        self,
        name: str,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]],
        include_vector: bool,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> List[QueryResult]:
        state = self._get(name)
        if len(vector) != state.dimension:
            raise ValidationError(
                f"expected {state.dimension} dimensions, not {len(vector)}",
                details={"index": name},
            )

        scored = [
            (_score(state.metric, vector, r.vector), r)
            for r in state.records.values()
            if _filter_match(r.metadata, filter)
        ]
        scored.sort(key=lambda t: t[0], reverse=True)

        return [
            QueryResult(
                id=r.id,
                score=float(score),
                metadata=copy.deepcopy(r.metadata),
                vector=list(r.vector) if include_vector else None,
            )
            for score, r in scored[:top_k]
        ]


__all__ = ["InMemoryVectorStore"]

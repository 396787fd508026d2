# vectorgate/qdrant_adapter.py
# SPDX-License-Identifier: Apache-2.0
"""
Qdrant backend (qdrant-client `AsyncQdrantClient`).

Indexes are Qdrant collections with a single unnamed vector. Metadata is the
point payload, so dotted filter paths address nested payload keys directly.

Filter translation
------------------
Filter expressions are validated by the Filter Compiler like on every other
backend, then translated into a native `models.Filter`:

    eq                  FieldCondition(match=MatchValue)   (Range for floats)
    neq                 must_not [eq, IsEmpty]             (absent fields never match)
    gt / gte / lt / lte FieldCondition(range=Range)
    like / ilike        FieldCondition(match=MatchText)    (substring)
    in                  FieldCondition(match=MatchAny)
    contains            one MatchValue per leaf of the folded path object
    exists              must_not [IsEmpty]
    $and / $or          Filter(must=...) / Filter(should=...)

Point ids
---------
Qdrant only accepts unsigned integers and UUIDs as point ids. Any other id is
mapped to a deterministic UUIDv5 and the caller's id is kept in the payload
under ``_vectorgate_id``; it is restored (and removed from metadata) on the
way out.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar

from vectorgate.errors import (
    AuthError,
    ConflictError,
    DeadlineExceeded,
    NotFoundError,
    NotSupported,
    RemoteServiceError,
    TransientNetwork,
    Unavailable,
    ValidationError,
    VectorStoreError,
)
from vectorgate.filter_compiler import (
    FilterCondition,
    FilterOperator,
    build_contains_value,
    combinator_children,
    normalize_in_value,
    parse_condition,
)
from vectorgate.metric_mapping import QDRANT_METRICS, SUPPORTED_METRICS, DistanceMetric
from vectorgate.vector_base import (
    BaseVectorStore,
    IndexDescriptor,
    OperationContext,
    QueryResult,
    VectorRecord,
    VectorStoreCapabilities,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

try:  # pragma: no cover - import surface only
    from qdrant_client import AsyncQdrantClient, models  # type: ignore
    from qdrant_client.http.exceptions import (  # type: ignore
        ResponseHandlingException,
        UnexpectedResponse,
    )
except Exception:  # pragma: no cover
    AsyncQdrantClient = None  # type: ignore[assignment]
    models = None  # type: ignore[assignment]
    ResponseHandlingException = None  # type: ignore[assignment]
    UnexpectedResponse = None  # type: ignore[assignment]

ORIGINAL_ID_FIELD = "_vectorgate_id"

# uuid5 namespace for ids Qdrant cannot store natively
_ID_NAMESPACE = uuid.UUID("6f1c2a8e-3d4b-5e6f-8a9b-0c1d2e3f4a5b")
_MAX_POINT_INT = 2 ** 64


def _point_id(record_id: str) -> Tuple[Any, bool]:
    """Return (qdrant point id, whether the caller id had to be remapped)."""
    # only canonical unsigned 64-bit decimals round-trip as integer point ids
    if record_id.isascii() and record_id.isdigit() and str(int(record_id)) == record_id:
        if int(record_id) < _MAX_POINT_INT:
            return int(record_id), False
    try:
        return str(uuid.UUID(record_id)), str(uuid.UUID(record_id)) != record_id
    except ValueError:
        return str(uuid.uuid5(_ID_NAMESPACE, record_id)), True


# =============================================================================
# Filter translation
# =============================================================================

def _match_value(key: str, value: Any):
    if isinstance(value, (bool, int, str)):
        return models.FieldCondition(key=key, match=models.MatchValue(value=value))
    if isinstance(value, float):
        return models.FieldCondition(key=key, range=models.Range(gte=value, lte=value))
    raise NotSupported(
        f"qdrant cannot compare {key!r} against a {type(value).__name__}",
        details={"key": key},
    )


def _is_empty(key: str):
    return models.IsEmptyCondition(is_empty=models.PayloadField(key=key))


def _flatten(prefix: str, value: Any) -> List[Tuple[str, Any]]:
    if isinstance(value, Mapping):
        out: List[Tuple[str, Any]] = []
        for k, v in value.items():
            out.extend(_flatten(f"{prefix}.{k}" if prefix else str(k), v))
        return out
    if isinstance(value, list):
        return [pair for item in value for pair in _flatten(prefix, item)]
    return [(prefix, value)]


def _translate_condition(cond: FilterCondition):
    key = ".".join(cond.path)
    op = cond.operator

    if op is FilterOperator.EQ:
        return _match_value(key, cond.value)
    if op is FilterOperator.NEQ:
        return models.Filter(must_not=[_match_value(key, cond.value), _is_empty(key)])
    if op in (FilterOperator.GT, FilterOperator.GTE, FilterOperator.LT, FilterOperator.LTE):
        bound = float(cond.value)
        return models.FieldCondition(key=key, range=models.Range(**{op.value: bound}))
    if op in (FilterOperator.LIKE, FilterOperator.ILIKE):
        return models.FieldCondition(key=key, match=models.MatchText(text=str(cond.value)))
    if op is FilterOperator.IN:
        values = normalize_in_value(cond.value)
        return models.FieldCondition(key=key, match=models.MatchAny(any=list(values)))
    if op is FilterOperator.CONTAINS:
        leaves = _flatten("", build_contains_value(cond.path, cond.value))
        return models.Filter(must=[_match_value(k, v) for k, v in leaves])
    if op is FilterOperator.EXISTS:
        return models.Filter(must_not=[_is_empty(key)])
    raise ValidationError(f"unsupported operator {op.value!r}")


def _translate_expression(expression: Mapping[str, Any]) -> List[Any]:
    conditions: List[Any] = []
    for key, raw in expression.items():
        if key == FilterOperator.AND.value:
            children = combinator_children(FilterOperator.AND, raw)
            conditions.append(models.Filter(must=[translate_filter(c) for c in children]))
        elif key == FilterOperator.OR.value:
            children = combinator_children(FilterOperator.OR, raw)
            conditions.append(models.Filter(should=[translate_filter(c) for c in children]))
        else:
            conditions.append(_translate_condition(parse_condition(key, raw)))
    return conditions


def translate_filter(expression: Mapping[str, Any]):
    """Translate a filter expression into a `qdrant_client.models.Filter`."""
    if not isinstance(expression, Mapping) or not expression:
        raise ValidationError("filter expression must be a non-empty mapping")
    conditions = _translate_expression(expression)
    if len(conditions) == 1 and isinstance(conditions[0], models.Filter):
        return conditions[0]
    return models.Filter(must=conditions)


# =============================================================================
# Store
# =============================================================================

class QdrantVectorStore(BaseVectorStore):
    """
    BaseVectorStore backed by Qdrant collections.

    Design notes
    ------------
    - One collection per index, one unnamed vector per point.
    - Writes use ``wait=True`` so a returned upsert is visible to queries.
    - Euclid results are distances; they are converted to ``1 / (1 + d)``.
    """

    _component = "vector_qdrant"

    def __init__(
        self,
        *,
        client: Optional["AsyncQdrantClient"] = None,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        config=None,
        metrics=None,
    ) -> None:
        if models is None or AsyncQdrantClient is None:
            raise RuntimeError(
                "QdrantVectorStore requires the `qdrant-client` Python package. "
                "Install via `pip install qdrant-client`."
            )

        if client is None:
            url = url or os.getenv("QDRANT_URL") or "http://localhost:6333"
            api_key = api_key or os.getenv("QDRANT_API_KEY")
            client_kwargs: Dict[str, Any] = {"url": url}
            if api_key:
                client_kwargs["api_key"] = api_key
            if timeout is not None:
                client_kwargs["timeout"] = int(timeout)
            client = AsyncQdrantClient(**client_kwargs)

        self._client = client
        # collection -> metric, filled by create/describe/query
        self._known_metrics: Dict[str, DistanceMetric] = {}

        super().__init__(config=config, metrics=metrics)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _safe_get(obj: Any, key: str, default: Any = None) -> Any:
        """Support both dict-style and attribute-style access."""
        if isinstance(obj, Mapping):
            return obj.get(key, default)
        return getattr(obj, key, default)

    async def close(self) -> None:
        await self._client.close()

    async def _call_qdrant(
        self,
        op: str,
        index: Optional[str],
        call: Callable[[], Awaitable[T]],
    ) -> T:
        try:
            return await call()
        except VectorStoreError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise self._translate_error(exc, op=op, index=index) from exc

    def _translate_error(self, err: Exception, *, op: str, index: Optional[str] = None) -> VectorStoreError:
        """Map qdrant-client errors into the vectorgate taxonomy."""
        msg = str(err) or f"Qdrant error during {op}"
        details: Dict[str, Any] = {"op": op}
        if index is not None:
            details["index"] = index
        logger.debug("Qdrant error in %s: %r", op, err)

        if isinstance(err, asyncio.TimeoutError):
            return DeadlineExceeded("Qdrant operation timed out", details=details)

        status = getattr(err, "status_code", None)
        if isinstance(status, int):
            details["status_code"] = status
            if status == 404:
                return NotFoundError(f"index '{index}' does not exist", details=details)
            if status == 409:
                return ConflictError(f"index '{index}' already exists", details=details)
            if status in (401, 403):
                return AuthError("Qdrant authentication/authorization error", details=details)
            if status in (400, 422):
                return ValidationError(msg, details=details)
            if status == 429:
                retry = getattr(err, "retry_after_s", None)
                return Unavailable(
                    "Qdrant rate limit exceeded",
                    retry_after_ms=int(retry * 1000) if isinstance(retry, (int, float)) else None,
                    details=details,
                )
            if status >= 500:
                return Unavailable(msg, details=details)
            return RemoteServiceError(msg, details=details)

        lowered = msg.lower()
        if ResponseHandlingException is not None and isinstance(err, ResponseHandlingException):
            if "timed out" in lowered or "timeout" in lowered:
                return DeadlineExceeded("Qdrant request timed out", details=details)
            return TransientNetwork("Qdrant connection error", details=details)
        if isinstance(err, (OSError, ConnectionError)) or "connection" in lowered:
            return TransientNetwork("Qdrant connection error", details=details)
        if "not found" in lowered:
            return NotFoundError(f"index '{index}' does not exist", details=details)

        return Unavailable(msg, details=details)

    def _convert_score(self, metric: DistanceMetric, raw_score: float) -> float:
        s = float(raw_score)
        if metric is DistanceMetric.EUCLIDEAN:
            return 1.0 / (1.0 + max(0.0, s))
        return s

    def _vector_params(self, info: Any):
        params = self._safe_get(self._safe_get(info, "config"), "params")
        vectors = self._safe_get(params, "vectors")
        if isinstance(vectors, Mapping):
            if len(vectors) != 1:
                raise NotSupported("collections with several named vectors are not supported")
            vectors = next(iter(vectors.values()))
        return vectors

    async def _collection_metric(self, name: str) -> DistanceMetric:
        known = self._known_metrics.get(name)
        if known is not None:
            return known
        info = await self._client.get_collection(collection_name=name)
        metric = QDRANT_METRICS.from_native(self._safe_get(self._vector_params(info), "distance"))
        self._known_metrics[name] = metric
        return metric

    # ------------------------------------------------------------------ #
    # Capabilities
    # ------------------------------------------------------------------ #

    async def _do_capabilities(self) -> VectorStoreCapabilities:
        return VectorStoreCapabilities(
            server="qdrant",
            version="1.0.0",
            supported_metrics=SUPPORTED_METRICS,
            enforces_filters=True,
            filter_dialect="native",
            max_dimensions=65536,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def _do_create_index(
        self,
        name: str,
        dimension: int,
        metric: DistanceMetric,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        distance = models.Distance(QDRANT_METRICS.to_native(metric))

        async def call() -> None:
            if await self._client.collection_exists(collection_name=name):
                raise ConflictError(f"index '{name}' already exists", details={"index": name})
            await self._client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(size=int(dimension), distance=distance),
            )

        await self._call_qdrant("create_index", name, call)
        self._known_metrics[name] = metric

    async def _do_describe_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> IndexDescriptor:
        info = await self._call_qdrant(
            "describe_index", name, lambda: self._client.get_collection(collection_name=name)
        )
        params = self._vector_params(info)
        metric = QDRANT_METRICS.from_native(self._safe_get(params, "distance"))
        self._known_metrics[name] = metric
        return IndexDescriptor(
            dimension=int(self._safe_get(params, "size")),
            metric=metric,
            count=int(self._safe_get(info, "points_count") or 0),
        )

    async def _do_list_indexes(self, *, ctx: Optional[OperationContext] = None) -> List[str]:
        res = await self._call_qdrant("list_indexes", None, self._client.get_collections)
        return [str(self._safe_get(c, "name")) for c in self._safe_get(res, "collections") or []]

    async def _do_delete_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        async def call() -> None:
            if not await self._client.collection_exists(collection_name=name):
                raise NotFoundError(f"index '{name}' does not exist", details={"index": name})
            await self._client.delete_collection(collection_name=name)

        await self._call_qdrant("delete_index", name, call)
        self._known_metrics.pop(name, None)

    # ------------------------------------------------------------------ #
    # Upsert
    # ------------------------------------------------------------------ #

    async def _do_upsert_chunk(
        self,
        name: str,
        records: List[VectorRecord],
        offset: int,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> Optional[List[Dict[str, Any]]]:
        points = []
        for r in records:
            point_id, remapped = _point_id(r.id)
            payload = dict(r.metadata or {})
            if remapped:
                payload[ORIGINAL_ID_FIELD] = r.id
            points.append(models.PointStruct(id=point_id, vector=list(r.vector), payload=payload))

        await self._call_qdrant(
            "upsert",
            name,
            lambda: self._client.upsert(collection_name=name, points=points, wait=True),
        )
        return None

    # ------------------------------------------------------------------ #
    # Query
    # ------------------------------------------------------------------ #

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
        query_filter = translate_filter(filter) if filter else None

        async def call():
            metric = await self._collection_metric(name)
            res = await self._client.query_points(
                collection_name=name,
                query=list(vector),
                limit=int(top_k),
                query_filter=query_filter,
                with_payload=True,
                with_vectors=include_vector,
            )
            return metric, res

        metric, res = await self._call_qdrant("query", name, call)

        results: List[QueryResult] = []
        for point in self._safe_get(res, "points") or []:
            payload = dict(self._safe_get(point, "payload") or {})
            original_id = payload.pop(ORIGINAL_ID_FIELD, None)
            vec = self._safe_get(point, "vector") if include_vector else None
            if isinstance(vec, Mapping):
                vec = next(iter(vec.values()), None)
            results.append(
                QueryResult(
                    id=str(original_id if original_id is not None else self._safe_get(point, "id")),
                    score=self._convert_score(metric, self._safe_get(point, "score")),
                    metadata=payload,
                    vector=[float(x) for x in vec] if vec is not None else None,
                )
            )
        return results


__all__ = ["QdrantVectorStore", "translate_filter", "ORIGINAL_ID_FIELD"]

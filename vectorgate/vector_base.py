# vectorgate/vector_base.py
# SPDX-License-Identifier: Apache-2.0
"""
vectorgate: Vector Store Contract

Purpose
-------
One async lifecycle and query contract that heterogeneous vector-index
backends satisfy despite differing native capabilities (filter support,
metric naming, consistency guarantees).

This file provides:

- Typed Python contracts for records, query results and index descriptors
- `BaseVectorStore`, which validates every request, applies deadlines,
  records metrics, batches writes and normalizes query results before and
  after calling the backend-specific `_do_*` hooks
- A thin `WireVectorStoreHandler` that converts canonical JSON envelopes
  <-> the typed API:

    Request:
        {
            "op": "vector.<operation>",
            "ctx": { ... },
            "args": { ... }
        }

    Response (success):
        {
            "ok": true,
            "code": "OK",
            "ms": <float>,
            "result": { ... }
        }

    Response (error):
        {
            "ok": false,
            "code": "<UPPER_SNAKE_CASE>",
            "error": "<ErrorClassName>",
            "message": "<human readable>",
            "retry_after_ms": <int|null>,
            "details": { ... },
            "ms": <float>
        }

Validation happens here, once, for every backend: dimensions and top_k must
be positive integers, metrics must be canonical, and filters are compiled by
the Filter Compiler even when the backend will never see them, so a malformed
filter is rejected identically everywhere. Backends that cannot enforce
filters declare ``enforces_filters=False``; the store then logs a warning for
every filtered query, or refuses it with `NotSupported` when configured with
``strict_filters=True``.

Deliberate Non-Goals
--------------------
- No retries, backoff, caching or circuit breaking; every backend error is
  surfaced once, translated and chained.
- No tracing; `traceparent` is carried for callers that propagate it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

from vectorgate.batching import DEFAULT_BATCH_SIZE, BatchUpsertResult, upsert_batched
from vectorgate.errors import (
    AuthError,
    BatchUpsertError,
    ConflictError,
    ConsistencyWarning,
    DeadlineExceeded,
    NotFoundError,
    NotSupported,
    PartialUpsertError,
    RemoteServiceError,
    TransientNetwork,
    Unavailable,
    ValidationError,
    VectorStoreError,
)
from vectorgate.filter_compiler import validate_filter
from vectorgate.metric_mapping import SUPPORTED_METRICS, DistanceMetric

VECTORGATE_PROTOCOL_VERSION = "1.0.0"
VECTORGATE_PROTOCOL_ID = "vectorgate/v1.0"
LOG = logging.getLogger(__name__)

# =============================================================================
# Context (used for deadlines and correlation)
# =============================================================================

@dataclass(frozen=True)
class OperationContext:
    """
    Per-call context.

    Attributes:
        request_id: Correlation id for the request chain
        deadline_ms: Absolute epoch milliseconds when the operation must finish
        traceparent: W3C Trace Context header, carried but not interpreted
        attrs: Free-form attributes for middleware
    """
    request_id: Optional[str] = None
    deadline_ms: Optional[int] = None
    traceparent: Optional[str] = None
    attrs: Mapping[str, Any] = None

    def __post_init__(self) -> None:
        if self.attrs is None:
            object.__setattr__(self, "attrs", {})

    def remaining_ms(self) -> Optional[int]:
        """
        Return remaining milliseconds until deadline, or None if no deadline set.
        Non-negative (0 if expired).
        """
        if self.deadline_ms is None:
            return None
        now_ms = int(time.time() * 1000)
        return max(0, self.deadline_ms - now_ms)

# =============================================================================
# Metrics Interface (low-cardinality)
# =============================================================================

class MetricsSink(Protocol):
    """
    Protocol for metrics collection implementations.

    Extras must stay low-cardinality: index names and operation names are
    fine, vectors, ids and metadata values are not.
    """
    def observe(
        self,
        *,
        component: str,
        op: str,
        ms: float,
        ok: bool,
        code: str = "OK",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None: ...

    def counter(
        self,
        *,
        component: str,
        name: str,
        value: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None: ...

class NoopMetrics:
    """No-operation metrics sink for testing or when metrics are disabled."""
    def observe(self, **_: Any) -> None: ...
    def counter(self, **_: Any) -> None: ...

# =============================================================================
# Configuration
# =============================================================================

def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class VectorStoreConfig:
    """
    Store-level behavior shared by all backends.

    Attributes:
        batch_size: Records per backend write request
        batch_max_concurrency: Concurrent write requests per upsert (1 = sequential)
        strict_filters: Refuse filtered queries on backends that cannot enforce them
        max_top_k: Optional upper bound on top_k, in addition to the backend's own
    """
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_max_concurrency: int = 1
    strict_filters: bool = False
    max_top_k: Optional[int] = None

    def __post_init__(self) -> None:
        for name in ("batch_size", "batch_max_concurrency"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer")
        if self.max_top_k is not None and (
            isinstance(self.max_top_k, bool) or not isinstance(self.max_top_k, int) or self.max_top_k <= 0
        ):
            raise ValueError("max_top_k must be a positive integer when set")

    @classmethod
    def from_env(cls) -> "VectorStoreConfig":
        """
        Build a config from ``VECTORGATE_*`` environment variables:

            VECTORGATE_BATCH_SIZE, VECTORGATE_BATCH_CONCURRENCY,
            VECTORGATE_STRICT_FILTERS, VECTORGATE_MAX_TOP_K
        """
        return cls(
            batch_size=_env_int("VECTORGATE_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            batch_max_concurrency=_env_int("VECTORGATE_BATCH_CONCURRENCY", 1),
            strict_filters=_env_bool("VECTORGATE_STRICT_FILTERS", False),
            max_top_k=_env_int("VECTORGATE_MAX_TOP_K", None),
        )

# =============================================================================
# Core Type Definitions
# =============================================================================

@dataclass(frozen=True)
class VectorRecord:
    """
    One record as handed to a backend write.

    Attributes:
        id: Caller-supplied or generated (uuid4) identifier
        vector: The embedding
        metadata: Filterable key-value payload ({} when none was given)
    """
    id: str
    vector: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)

@dataclass(frozen=True)
class QueryResult:
    """
    A single match.

    Attributes:
        id: Record id
        score: Similarity, higher is more similar
        metadata: Record metadata
        vector: The stored embedding, only when requested
    """
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    vector: Optional[List[float]] = None

@dataclass(frozen=True)
class IndexDescriptor:
    """
    Index shape as reported by the backend.

    `count` is advisory: eventually consistent backends may lag recent writes.
    """
    dimension: int
    metric: DistanceMetric
    count: int = 0

# =============================================================================
# Capabilities
# =============================================================================

@dataclass(frozen=True)
class VectorStoreCapabilities:
    """
    Describes what a backend can do.

    Attributes:
        server: Backend identifier ("pgvector", "qdrant", "vectorize", "memory")
        version: Adapter or backend version string
        protocol: Protocol identifier
        supported_metrics: Canonical metric names the backend accepts
        enforces_filters: Whether query filters are applied by the backend
        filter_dialect: How filters reach the backend ("sql", "native", "local", "none")
        max_batch_size: Largest write request the backend accepts (None = unspecified)
        max_top_k: Upper bound on top_k per query (None = unspecified)
        max_dimensions: Upper bound on index dimension (0 = unspecified)
    """
    server: str
    version: str
    protocol: str = VECTORGATE_PROTOCOL_ID
    supported_metrics: Tuple[str, ...] = SUPPORTED_METRICS
    enforces_filters: bool = True
    filter_dialect: str = "native"
    max_batch_size: Optional[int] = None
    max_top_k: Optional[int] = None
    max_dimensions: int = 0

# =============================================================================
# Stable Protocol Interface
# =============================================================================

@runtime_checkable
class VectorStoreProtocol(Protocol):
    """Async lifecycle and query contract every backend satisfies."""

    async def capabilities(self) -> VectorStoreCapabilities: ...

    async def create_index(
        self,
        name: str,
        dimension: int,
        metric: str = "cosine",
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None: ...

    async def upsert(
        self,
        name: str,
        vectors: Sequence[Sequence[float]],
        metadata: Optional[Sequence[Optional[Mapping[str, Any]]]] = None,
        ids: Optional[Sequence[Optional[str]]] = None,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> List[str]: ...

    async def upsert_with_report(
        self,
        name: str,
        vectors: Sequence[Sequence[float]],
        metadata: Optional[Sequence[Optional[Mapping[str, Any]]]] = None,
        ids: Optional[Sequence[Optional[str]]] = None,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> BatchUpsertResult: ...

    async def query(
        self,
        name: str,
        vector: Sequence[float],
        top_k: int = 10,
        filter: Optional[Mapping[str, Any]] = None,
        include_vector: bool = False,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> List[QueryResult]: ...

    async def describe_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> IndexDescriptor: ...

    async def list_indexes(self, *, ctx: Optional[OperationContext] = None) -> List[str]: ...

    async def delete_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None: ...

# =============================================================================
# Base Instrumented Store (validation, metrics, deadlines, batching)
# =============================================================================

class BaseVectorStore(VectorStoreProtocol):
    """
    Base class for vector store backends.

    Subclasses implement the `_do_*` hooks; the public methods own
    validation, deadlines, metrics, batching and result normalization.

    Example:
        class MyStore(BaseVectorStore):
            async def _do_query(self, name, vector, top_k, filter, include_vector, *, ctx):
                ...
    """

    _component = "vector"

    def __init__(
        self,
        *,
        config: Optional[VectorStoreConfig] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        self._config = config or VectorStoreConfig()
        self._metrics: MetricsSink = metrics or NoopMetrics()

    @property
    def config(self) -> VectorStoreConfig:
        return self._config

    # --- internal helpers (validation and instrumentation) ---

    @staticmethod
    def _require_non_empty(name: str, value: Any) -> None:
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} must be a non-empty string")

    @staticmethod
    def _require_positive_int(name: str, value: Any) -> int:
        # bool is an int subclass; True must not pass as 1
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(
                f"{name} must be a positive integer",
                details={name: repr(value)},
            )
        return value

    @staticmethod
    def _validate_vector(vector: Any, *, field_name: str = "vector") -> List[float]:
        if not isinstance(vector, (list, tuple)) or not vector:
            raise ValidationError(f"{field_name} must be a non-empty list of numbers")
        for x in vector:
            if isinstance(x, bool) or not isinstance(x, (int, float)):
                raise ValidationError(f"{field_name} must contain only numeric values")
        return [float(x) for x in vector]

    def _record(
        self,
        op: str,
        t0: float,
        ok: bool,
        *,
        code: str = "OK",
        ctx: Optional[OperationContext] = None,
        **extra: Any,
    ) -> None:
        try:
            ms = (time.monotonic() - t0) * 1000.0
            x = dict(extra or {})
            if ctx:
                rem = ctx.remaining_ms()
                if rem is not None:
                    if rem < 1000: x["deadline_bucket"] = "<1s"
                    elif rem < 5000: x["deadline_bucket"] = "<5s"
                    elif rem < 15000: x["deadline_bucket"] = "<15s"
                    else: x["deadline_bucket"] = ">=15s"
            self._metrics.observe(
                component=self._component,
                op=op,
                ms=ms,
                ok=ok,
                code=code,
                extra=x or None,
            )
        except Exception:
            # Never let metrics recording break the operation
            pass

    def _fail_if_expired(self, ctx: Optional[OperationContext]) -> None:
        if ctx is None or ctx.deadline_ms is None:
            return
        if ctx.remaining_ms() == 0:
            raise DeadlineExceeded("operation timed out (preflight)", details={"preflight": True})

    async def _apply_deadline(self, coro, ctx: Optional[OperationContext]):
        """Bound `coro` by ctx.deadline_ms; map timeouts to DeadlineExceeded."""
        rem = ctx.remaining_ms() if ctx is not None else None
        try:
            if rem is None:
                return await coro
            return await asyncio.wait_for(coro, timeout=rem / 1000.0)
        except DeadlineExceeded:
            raise
        except asyncio.TimeoutError:
            raise DeadlineExceeded("operation timed out") from None

    # --- public APIs (validation + instrumentation) ---

    async def capabilities(self) -> VectorStoreCapabilities:
        """Describe what this backend can do."""
        t0 = time.monotonic()
        try:
            caps = await self._do_capabilities()
            self._record("capabilities", t0, True)
            return caps
        except VectorStoreError as e:
            self._record("capabilities", t0, False, code=e.code)
            raise
        except Exception as e:
            self._record("capabilities", t0, False, code="UNAVAILABLE")
            raise Unavailable("capabilities fetch failed") from e

    async def create_index(
        self,
        name: str,
        dimension: int,
        metric: str = "cosine",
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        """
        Create an index of `dimension` using `metric`.

        Raises ValidationError before any backend call for a non-integer or
        non-positive dimension or an unknown metric; ConflictError if the
        index already exists.
        """
        self._require_non_empty("name", name)
        self._require_positive_int("dimension", dimension)
        canonical = DistanceMetric.parse(metric)

        self._fail_if_expired(ctx)

        t0 = time.monotonic()
        try:
            caps = await self.capabilities()
            if caps.max_dimensions and dimension > caps.max_dimensions:
                raise ValidationError(
                    f"dimension {dimension} exceeds maximum of {caps.max_dimensions}",
                    details={"max_dimensions": caps.max_dimensions},
                )
            if canonical.value not in caps.supported_metrics:
                raise NotSupported(
                    f"metric '{canonical.value}' not supported",
                    details={"supported_metrics": list(caps.supported_metrics)},
                )

            await self._apply_deadline(
                self._do_create_index(name, dimension, canonical, ctx=ctx), ctx
            )
            self._record("create_index", t0, True, ctx=ctx, index=name, metric=canonical.value)
        except VectorStoreError as e:
            self._record("create_index", t0, False, code=e.code, ctx=ctx, index=name)
            raise
        except Exception:
            self._record("create_index", t0, False, code="UNAVAILABLE", ctx=ctx, index=name)
            raise

    async def upsert(
        self,
        name: str,
        vectors: Sequence[Sequence[float]],
        metadata: Optional[Sequence[Optional[Mapping[str, Any]]]] = None,
        ids: Optional[Sequence[Optional[str]]] = None,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> List[str]:
        """
        Insert or overwrite records and return their ids in input order.

        Ids that are omitted (or None) are generated. Raises
        PartialUpsertError when the backend reports per-item failures; use
        `upsert_with_report` to receive them as data instead.
        """
        result = await self._run_upsert("upsert", name, vectors, metadata, ids, ctx)
        if result.failures:
            raise PartialUpsertError(
                f"{len(result.failures)} of {len(result.ids)} record(s) were rejected",
                ids=result.ids,
                failures=result.failures,
            )
        return result.ids

    async def upsert_with_report(
        self,
        name: str,
        vectors: Sequence[Sequence[float]],
        metadata: Optional[Sequence[Optional[Mapping[str, Any]]]] = None,
        ids: Optional[Sequence[Optional[str]]] = None,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> BatchUpsertResult:
        """Like `upsert`, but per-item failures are returned rather than raised."""
        return await self._run_upsert("upsert_with_report", name, vectors, metadata, ids, ctx)

    def _build_records(
        self,
        vectors: Any,
        metadata: Any,
        ids: Any,
    ) -> List[VectorRecord]:
        if not isinstance(vectors, (list, tuple)) or not vectors:
            raise ValidationError("vectors must be a non-empty list")
        n = len(vectors)

        if metadata is not None:
            if not isinstance(metadata, (list, tuple)) or len(metadata) != n:
                raise ValidationError(
                    "metadata must have exactly one entry per vector",
                    details={"vectors": n, "metadata": len(metadata) if isinstance(metadata, (list, tuple)) else None},
                )
        if ids is not None:
            if not isinstance(ids, (list, tuple)) or len(ids) != n:
                raise ValidationError(
                    "ids must have exactly one entry per vector",
                    details={"vectors": n, "ids": len(ids) if isinstance(ids, (list, tuple)) else None},
                )

        records: List[VectorRecord] = []
        for i, raw in enumerate(vectors):
            vec = self._validate_vector(raw, field_name=f"vectors[{i}]")
            meta = metadata[i] if metadata is not None else None
            if meta is not None and not isinstance(meta, Mapping):
                raise ValidationError(f"metadata[{i}] must be a mapping or None")
            rid = ids[i] if ids is not None else None
            if rid is None:
                rid = str(uuid.uuid4())
            elif not isinstance(rid, str) or not rid:
                raise ValidationError(f"ids[{i}] must be a non-empty string or None")
            records.append(VectorRecord(id=rid, vector=vec, metadata=dict(meta or {})))
        return records

    async def _run_upsert(
        self,
        op: str,
        name: str,
        vectors: Any,
        metadata: Any,
        ids: Any,
        ctx: Optional[OperationContext],
    ) -> BatchUpsertResult:
        self._require_non_empty("name", name)
        records = self._build_records(vectors, metadata, ids)

        self._fail_if_expired(ctx)

        t0 = time.monotonic()
        try:
            caps = await self.capabilities()
            batch_size = self._config.batch_size
            if caps.max_batch_size is not None:
                batch_size = min(batch_size, caps.max_batch_size)

            async def write_chunk(chunk: List[VectorRecord], offset: int):
                return await self._do_upsert_chunk(name, chunk, offset, ctx=ctx)

            result = await self._apply_deadline(
                upsert_batched(
                    records,
                    write_chunk,
                    batch_size=batch_size,
                    max_concurrency=self._config.batch_max_concurrency,
                ),
                ctx,
            )

            if result.failures:
                LOG.warning(
                    "upsert into %r: backend rejected %d of %d record(s)",
                    name, len(result.failures), len(records),
                )
            self._record(
                op, t0, True, ctx=ctx, index=name,
                records=len(records), chunks=result.chunks, failed=len(result.failures),
            )
            self._metrics.counter(
                component=self._component,
                name="vectors_upserted",
                value=len(records) - len(result.failures),
            )
            return result
        except VectorStoreError as e:
            self._record(op, t0, False, code=e.code, ctx=ctx, index=name)
            raise
        except Exception:
            self._record(op, t0, False, code="UNAVAILABLE", ctx=ctx, index=name)
            raise

    async def query(
        self,
        name: str,
        vector: Sequence[float],
        top_k: int = 10,
        filter: Optional[Mapping[str, Any]] = None,
        include_vector: bool = False,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> List[QueryResult]:
        """
        Return at most `top_k` matches ordered by descending score.

        `filter` is validated for every backend. An empty mapping means no
        filter.
        """
        self._require_non_empty("name", name)
        vec = self._validate_vector(vector)
        self._require_positive_int("top_k", top_k)
        if filter is not None and not isinstance(filter, Mapping):
            raise ValidationError("filter must be a mapping (dict) when provided")
        if filter:
            validate_filter(filter)
        if not isinstance(include_vector, bool):
            raise ValidationError("include_vector must be a boolean")

        self._fail_if_expired(ctx)

        t0 = time.monotonic()
        try:
            caps = await self.capabilities()
            limit = self._config.max_top_k or caps.max_top_k
            if caps.max_top_k is not None:
                limit = min(limit, caps.max_top_k)
            if limit is not None and top_k > limit:
                raise ValidationError(
                    f"top_k {top_k} exceeds maximum of {limit}",
                    details={"max_top_k": limit},
                )

            if filter and not caps.enforces_filters:
                if self._config.strict_filters:
                    raise NotSupported(
                        f"{caps.server} does not enforce metadata filters",
                        details={"server": caps.server, "filter_dialect": caps.filter_dialect},
                    )
                LOG.warning(
                    "%s does not enforce metadata filters; results for %r are unfiltered",
                    caps.server, name,
                )

            matches = await self._apply_deadline(
                self._do_query(
                    name,
                    vec,
                    top_k,
                    dict(filter) if filter else None,
                    include_vector,
                    ctx=ctx,
                ),
                ctx,
            )
            results = sorted(matches, key=lambda m: m.score, reverse=True)[:top_k]

            self._record("query", t0, True, ctx=ctx, index=name, top_k=top_k, matches=len(results))
            self._metrics.counter(component=self._component, name="queries", value=1)
            return results
        except VectorStoreError as e:
            self._record("query", t0, False, code=e.code, ctx=ctx, index=name, top_k=top_k)
            raise
        except Exception:
            self._record("query", t0, False, code="UNAVAILABLE", ctx=ctx, index=name, top_k=top_k)
            raise

    async def describe_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> IndexDescriptor:
        """Dimension, metric and (advisory) record count of an index."""
        self._require_non_empty("name", name)
        self._fail_if_expired(ctx)

        t0 = time.monotonic()
        try:
            desc = await self._apply_deadline(self._do_describe_index(name, ctx=ctx), ctx)
            self._record("describe_index", t0, True, ctx=ctx, index=name)
            return desc
        except VectorStoreError as e:
            self._record("describe_index", t0, False, code=e.code, ctx=ctx, index=name)
            raise
        except Exception:
            self._record("describe_index", t0, False, code="UNAVAILABLE", ctx=ctx, index=name)
            raise

    async def list_indexes(self, *, ctx: Optional[OperationContext] = None) -> List[str]:
        self._fail_if_expired(ctx)

        t0 = time.monotonic()
        try:
            names = await self._apply_deadline(self._do_list_indexes(ctx=ctx), ctx)
            self._record("list_indexes", t0, True, ctx=ctx, indexes=len(names))
            return list(names)
        except VectorStoreError as e:
            self._record("list_indexes", t0, False, code=e.code, ctx=ctx)
            raise
        except Exception:
            self._record("list_indexes", t0, False, code="UNAVAILABLE", ctx=ctx)
            raise

    async def delete_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        """Drop an index and all its records. NotFoundError if it does not exist."""
        self._require_non_empty("name", name)
        self._fail_if_expired(ctx)

        t0 = time.monotonic()
        try:
            await self._apply_deadline(self._do_delete_index(name, ctx=ctx), ctx)
            self._record("delete_index", t0, True, ctx=ctx, index=name)
        except VectorStoreError as e:
            self._record("delete_index", t0, False, code=e.code, ctx=ctx, index=name)
            raise
        except Exception:
            self._record("delete_index", t0, False, code="UNAVAILABLE", ctx=ctx, index=name)
            raise

    # --- hooks to implement per backend (override these) ---

    async def _do_capabilities(self) -> VectorStoreCapabilities:
        raise NotImplementedError

    async def _do_create_index(
        self,
        name: str,
        dimension: int,
        metric: DistanceMetric,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        raise NotImplementedError

    async def _do_upsert_chunk(
        self,
        name: str,
        records: List[VectorRecord],
        offset: int,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> Optional[List[Dict[str, Any]]]:
        """
        Write one chunk. Return per-item failures (``{"index": <chunk-relative>,
        "id": ..., "error": ...}``) or None; raise for whole-request failures.
        """
        raise NotImplementedError

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
        raise NotImplementedError

    async def _do_describe_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> IndexDescriptor:
        raise NotImplementedError

    async def _do_list_indexes(self, *, ctx: Optional[OperationContext] = None) -> List[str]:
        raise NotImplementedError

    async def _do_delete_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        raise NotImplementedError

# =============================================================================
# Wire-Level Helpers (canonical envelopes)
# =============================================================================

def _ctx_from_wire(ctx_dict: Optional[Mapping[str, Any]]) -> OperationContext:
    """
    Convert a wire-level ctx dict into an OperationContext.
    Unknown keys are ignored.
    """
    if not ctx_dict:
        return OperationContext()
    return OperationContext(
        request_id=ctx_dict.get("request_id"),
        deadline_ms=ctx_dict.get("deadline_ms"),
        traceparent=ctx_dict.get("traceparent"),
        attrs=ctx_dict.get("attrs") or {},
    )

def _error_to_wire(e: Exception, ms: float) -> Dict[str, Any]:
    """
    Map VectorStoreError (or unexpected Exception) to canonical error envelope.
    """
    if isinstance(e, VectorStoreError):
        payload = e.asdict()
        return {
            "ok": False,
            "code": payload.get("code") or type(e).__name__.upper(),
            "error": type(e).__name__,
            "message": payload.get("message", ""),
            "retry_after_ms": payload.get("retry_after_ms"),
            "details": payload.get("details") or None,
            "ms": ms,
        }
    return {
        "ok": False,
        "code": "UNAVAILABLE",
        "error": type(e).__name__,
        "message": str(e) or "internal error",
        "retry_after_ms": None,
        "details": None,
        "ms": ms,
    }

def _success_to_wire(result: Any, ms: float) -> Dict[str, Any]:
    if hasattr(result, "__dataclass_fields__"):
        result_payload = asdict(result)
    else:
        result_payload = result
    return {
        "ok": True,
        "code": "OK",
        "ms": ms,
        "result": result_payload,
    }

def _require_arg(args: Mapping[str, Any], key: str) -> Any:
    if key not in args or args[key] is None:
        raise ValidationError(f"missing required argument '{key}'", details={"arg": key})
    return args[key]

class WireVectorStoreHandler:
    """
    Exposes a VectorStoreProtocol implementation over the canonical JSON
    envelope contract:

        { "op": "vector.query", "ctx": {...}, "args": {...} } -> { ... }

    Transport-agnostic: plug it into HTTP, gRPC, WebSockets, etc.
    """

    def __init__(self, store: VectorStoreProtocol):
        self._store = store

    async def handle(self, envelope: Mapping[str, Any]) -> Dict[str, Any]:
        t0 = time.monotonic()
        try:
            op = envelope.get("op")
            if not isinstance(op, str):
                raise ValidationError("missing or invalid 'op'")

            ctx = _ctx_from_wire(envelope.get("ctx") or {})
            args = envelope.get("args") or {}
            if not isinstance(args, Mapping):
                raise ValidationError("'args' must be an object")

            if op == "vector.capabilities":
                res = await self._store.capabilities()
                return _success_to_wire(res, (time.monotonic() - t0) * 1000.0)

            if op == "vector.create_index":
                name = _require_arg(args, "name")
                await self._store.create_index(
                    name,
                    _require_arg(args, "dimension"),
                    args.get("metric") or "cosine",
                    ctx=ctx,
                )
                return _success_to_wire({"name": name}, (time.monotonic() - t0) * 1000.0)

            if op == "vector.upsert":
                report = await self._store.upsert_with_report(
                    _require_arg(args, "name"),
                    _require_arg(args, "vectors"),
                    args.get("metadata"),
                    args.get("ids"),
                    ctx=ctx,
                )
                return _success_to_wire(report, (time.monotonic() - t0) * 1000.0)

            if op == "vector.query":
                matches = await self._store.query(
                    _require_arg(args, "name"),
                    _require_arg(args, "vector"),
                    args.get("top_k", 10),
                    args.get("filter"),
                    args.get("include_vector", False),
                    ctx=ctx,
                )
                return _success_to_wire(
                    {"matches": [asdict(m) for m in matches]},
                    (time.monotonic() - t0) * 1000.0,
                )

            if op == "vector.describe_index":
                desc = await self._store.describe_index(_require_arg(args, "name"), ctx=ctx)
                return _success_to_wire(
                    {"dimension": desc.dimension, "metric": desc.metric.value, "count": desc.count},
                    (time.monotonic() - t0) * 1000.0,
                )

            if op == "vector.list_indexes":
                names = await self._store.list_indexes(ctx=ctx)
                return _success_to_wire({"indexes": names}, (time.monotonic() - t0) * 1000.0)

            if op == "vector.delete_index":
                name = _require_arg(args, "name")
                await self._store.delete_index(name, ctx=ctx)
                return _success_to_wire({"name": name}, (time.monotonic() - t0) * 1000.0)

            raise NotSupported(f"unknown operation '{op}'")

        except Exception as e:
            ms = (time.monotonic() - t0) * 1000.0
            if not isinstance(e, VectorStoreError):
                LOG.debug("unexpected error in wire handler: %r", e)
            return _error_to_wire(e, ms)

# =============================================================================
# Public Exports
# =============================================================================

__all__ = [
    "VECTORGATE_PROTOCOL_VERSION",
    "VECTORGATE_PROTOCOL_ID",
    "OperationContext",
    "MetricsSink",
    "NoopMetrics",
    "VectorStoreConfig",
    "VectorRecord",
    "QueryResult",
    "IndexDescriptor",
    "VectorStoreCapabilities",
    "VectorStoreProtocol",
    "BaseVectorStore",
    "BatchUpsertResult",
    "DistanceMetric",
    # errors
    "VectorStoreError",
    "ValidationError",
    "NotSupported",
    "ConflictError",
    "NotFoundError",
    "RemoteServiceError",
    "AuthError",
    "TransientNetwork",
    "Unavailable",
    "DeadlineExceeded",
    "BatchUpsertError",
    "PartialUpsertError",
    "ConsistencyWarning",
    # wire helpers
    "WireVectorStoreHandler",
    "_ctx_from_wire",
    "_error_to_wire",
    "_success_to_wire",
]

# vectorgate/__init__.py
# SPDX-License-Identifier: Apache-2.0
"""
vectorgate: one async contract over heterogeneous vector indexes.

Core pieces:

- `compile_filter` / `FilterCompiler`: declarative metadata filters to
  parameterized PostgreSQL JSONB predicates
- `MetricMapper`: canonical metric names <-> backend-native identifiers
- `upsert_batched`: chunked writes with ordered ids and chunk-level failure reporting
- `BaseVectorStore`: the validated, instrumented lifecycle/query contract

Backends live in their own modules so their SDKs stay optional imports:

    from vectorgate.pgvector_adapter import PgVectorStore
    from vectorgate.qdrant_adapter import QdrantVectorStore
    from vectorgate.vectorize_adapter import CloudflareVectorStore
    from vectorgate.memory_adapter import InMemoryVectorStore
"""

from vectorgate.batching import DEFAULT_BATCH_SIZE, BatchUpsertResult, chunked, upsert_batched
from vectorgate.consistency import wait_for_condition, wait_for_count
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
from vectorgate.filter_compiler import (
    FilterCompiler,
    FilterOperator,
    ParameterizedPredicate,
    compile_filter,
    validate_filter,
)
from vectorgate.metric_mapping import (
    PGVECTOR_METRICS,
    QDRANT_METRICS,
    VECTORIZE_METRICS,
    DistanceMetric,
    MetricMapper,
)
from vectorgate.vector_base import (
    VECTORGATE_PROTOCOL_ID,
    VECTORGATE_PROTOCOL_VERSION,
    BaseVectorStore,
    IndexDescriptor,
    MetricsSink,
    NoopMetrics,
    OperationContext,
    QueryResult,
    VectorRecord,
    VectorStoreCapabilities,
    VectorStoreConfig,
    VectorStoreProtocol,
    WireVectorStoreHandler,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # filters / metrics / batching
    "FilterCompiler",
    "FilterOperator",
    "ParameterizedPredicate",
    "compile_filter",
    "validate_filter",
    "DistanceMetric",
    "MetricMapper",
    "PGVECTOR_METRICS",
    "QDRANT_METRICS",
    "VECTORIZE_METRICS",
    "DEFAULT_BATCH_SIZE",
    "BatchUpsertResult",
    "chunked",
    "upsert_batched",
    # contract
    "VECTORGATE_PROTOCOL_ID",
    "VECTORGATE_PROTOCOL_VERSION",
    "BaseVectorStore",
    "IndexDescriptor",
    "MetricsSink",
    "NoopMetrics",
    "OperationContext",
    "QueryResult",
    "VectorRecord",
    "VectorStoreCapabilities",
    "VectorStoreConfig",
    "VectorStoreProtocol",
    "WireVectorStoreHandler",
    # consistency
    "wait_for_condition",
    "wait_for_count",
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
]

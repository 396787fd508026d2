# vectorgate/vectorize_adapter.py
# SPDX-License-Identifier: Apache-2.0
"""
Cloudflare Vectorize backend (cloudflare `AsyncCloudflare`).

Notes
-----
- Upserts are sent as NDJSON, one ``{"id", "values", "metadata"}`` object
  per line.
- Vectorize names the inner-product metric ``dot-product``.
- Vectorize is eventually consistent: an acknowledged upsert is applied
  asynchronously, so `describe_index().count` and query results may lag.
  See `vectorgate.consistency` for polling helpers.
- Metadata filters are accepted and validated but NOT enforced: the store
  declares ``enforces_filters=False`` and never sends the filter, so
  `BaseVectorStore.query` warns (or refuses under ``strict_filters``).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

from vectorgate.errors import (
    AuthError,
    ConflictError,
    DeadlineExceeded,
    NotFoundError,
    RemoteServiceError,
    TransientNetwork,
    Unavailable,
    ValidationError,
    VectorStoreError,
)
from vectorgate.metric_mapping import SUPPORTED_METRICS, VECTORIZE_METRICS, DistanceMetric
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
    import cloudflare  # type: ignore
    from cloudflare import AsyncCloudflare  # type: ignore
except Exception:  # pragma: no cover
    cloudflare = None  # type: ignore[assignment]
    AsyncCloudflare = None  # type: ignore[assignment]

# service limits
VECTORIZE_MAX_BATCH_SIZE = 1000
VECTORIZE_MAX_TOP_K = 100
VECTORIZE_MAX_TOP_K_WITH_VALUES = 20
VECTORIZE_MAX_DIMENSIONS = 1536


def to_ndjson(records: List[VectorRecord]) -> bytes:
    """Serialize records as the NDJSON body Vectorize expects."""
    lines = [
        json.dumps({"id": r.id, "values": list(r.vector), "metadata": r.metadata or {}})
        for r in records
    ]
    return ("\n".join(lines) + "\n").encode("utf-8")


class CloudflareVectorStore(BaseVectorStore):
    """
    BaseVectorStore backed by Cloudflare Vectorize indexes.
    """

    _component = "vector_vectorize"

    def __init__(
        self,
        *,
        client: Optional["AsyncCloudflare"] = None,
        account_id: Optional[str] = None,
        api_token: Optional[str] = None,
        config=None,
        metrics=None,
    ) -> None:
        if cloudflare is None or AsyncCloudflare is None:
            raise RuntimeError(
                "CloudflareVectorStore requires the `cloudflare` Python package. "
                "Install via `pip install cloudflare`."
            )

        account_id = account_id or os.getenv("CLOUDFLARE_ACCOUNT_ID")
        if not account_id:
            raise ValidationError(
                "CloudflareVectorStore needs an account_id or CLOUDFLARE_ACCOUNT_ID in the environment"
            )
        if client is None:
            api_token = api_token or os.getenv("CLOUDFLARE_API_TOKEN")
            if not api_token:
                raise ValidationError(
                    "CloudflareVectorStore needs a client, an api_token, or CLOUDFLARE_API_TOKEN in the environment"
                )
            client = AsyncCloudflare(api_token=api_token)

        self._client = client
        self._account_id = account_id

        super().__init__(config=config, metrics=metrics)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @property
    def _indexes(self):
        return self._client.vectorize.indexes

    @staticmethod
    def _safe_get(obj: Any, key: str, default: Any = None) -> Any:
        """Support both dict-style and attribute-style access."""
        if isinstance(obj, Mapping):
            return obj.get(key, default)
        return getattr(obj, key, default)

    async def _call_vectorize(
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
        """Map Cloudflare SDK errors into the vectorgate taxonomy."""
        msg = str(err) or f"Vectorize error during {op}"
        details: Dict[str, Any] = {"op": op}
        if index is not None:
            details["index"] = index
        logger.debug("Vectorize error in %s: %r", op, err)

        if isinstance(err, asyncio.TimeoutError):
            return DeadlineExceeded("Vectorize operation timed out", details=details)
        if cloudflare is not None and isinstance(err, cloudflare.APITimeoutError):
            return DeadlineExceeded("Vectorize request timed out", details=details)
        if cloudflare is not None and isinstance(err, cloudflare.APIConnectionError):
            return TransientNetwork("Vectorize connection error", details=details)

        lowered = msg.lower()
        status = getattr(err, "status_code", None)
        if isinstance(status, int):
            details["status_code"] = status
        if status == 404 or "not_found" in lowered or "not found" in lowered:
            return NotFoundError(f"index '{index}' does not exist", details=details)
        if status == 409 or "duplicate" in lowered or "already exists" in lowered:
            return ConflictError(f"index '{index}' already exists", details=details)
        if status in (401, 403):
            return AuthError("Vectorize authentication/authorization error", details=details)
        if status in (400, 422):
            return ValidationError(msg, details=details)
        if status == 429:
            return Unavailable("Vectorize rate limit exceeded", details=details)
        if isinstance(status, int) and status >= 500:
            return Unavailable(msg, details=details)
        if isinstance(status, int):
            return RemoteServiceError(msg, details=details)
        return Unavailable(msg, details=details)

    def _convert_score(self, metric: DistanceMetric, raw_score: float) -> float:
        s = float(raw_score)
        if metric is DistanceMetric.EUCLIDEAN:
            # euclidean results are distances
            return 1.0 / (1.0 + max(0.0, s))
        return s

    async def _index_config(self, name: str) -> Any:
        index = await self._indexes.get(name, account_id=self._account_id)
        return self._safe_get(index, "config")

    # ------------------------------------------------------------------ #
    # Capabilities
    # ------------------------------------------------------------------ #

    async def _do_capabilities(self) -> VectorStoreCapabilities:
        return VectorStoreCapabilities(
            server="vectorize",
            version="1.0.0",
            supported_metrics=SUPPORTED_METRICS,
            enforces_filters=False,
            filter_dialect="none",
            max_batch_size=VECTORIZE_MAX_BATCH_SIZE,
            max_top_k=VECTORIZE_MAX_TOP_K,
            max_dimensions=VECTORIZE_MAX_DIMENSIONS,
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
        await self._call_vectorize(
            "create_index",
            name,
            lambda: self._indexes.create(
                account_id=self._account_id,
                name=name,
                config={"dimensions": int(dimension), "metric": VECTORIZE_METRICS.to_native(metric)},
            ),
        )

    async def _do_describe_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> IndexDescriptor:
        async def call():
            config = await self._index_config(name)
            info = await self._indexes.info(name, account_id=self._account_id)
            return config, info

        config, info = await self._call_vectorize("describe_index", name, call)
        dimension = self._safe_get(info, "dimensions") or self._safe_get(config, "dimensions")
        return IndexDescriptor(
            dimension=int(dimension),
            metric=VECTORIZE_METRICS.from_native(self._safe_get(config, "metric")),
            count=int(self._safe_get(info, "vector_count") or 0),
        )

    async def _do_list_indexes(self, *, ctx: Optional[OperationContext] = None) -> List[str]:
        async def call() -> List[str]:
            names: List[str] = []
            async for index in self._indexes.list(account_id=self._account_id):
                names.append(str(self._safe_get(index, "name")))
            return names

        return await self._call_vectorize("list_indexes", None, call)

    async def _do_delete_index(
        self,
        name: str,
        *,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        await self._call_vectorize(
            "delete_index",
            name,
            lambda: self._indexes.delete(name, account_id=self._account_id),
        )

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
        body = to_ndjson(records)
        res = await self._call_vectorize(
            "upsert",
            name,
            lambda: self._indexes.upsert(name, account_id=self._account_id, body=body),
        )
        logger.debug(
            "vectorize upsert into %r accepted (mutation %s)",
            name, self._safe_get(res, "mutation_id"),
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
        if include_vector and top_k > VECTORIZE_MAX_TOP_K_WITH_VALUES:
            raise ValidationError(
                f"top_k {top_k} exceeds maximum of {VECTORIZE_MAX_TOP_K_WITH_VALUES} when vectors are returned",
                details={"max_top_k": VECTORIZE_MAX_TOP_K_WITH_VALUES},
            )

        async def call():
            config = await self._index_config(name)
            res = await self._indexes.query(
                name,
                account_id=self._account_id,
                vector=list(vector),
                top_k=int(top_k),
                return_values=include_vector,
                return_metadata="all",
            )
            return config, res

        config, res = await self._call_vectorize("query", name, call)
        metric = VECTORIZE_METRICS.from_native(self._safe_get(config, "metric"))

        results: List[QueryResult] = []
        for match in self._safe_get(res, "matches") or []:
            values = self._safe_get(match, "values") if include_vector else None
            results.append(
                QueryResult(
                    id=str(self._safe_get(match, "id")),
                    score=self._convert_score(metric, self._safe_get(match, "score")),
                    metadata=dict(self._safe_get(match, "metadata") or {}),
                    vector=[float(x) for x in values] if values is not None else None,
                )
            )
        return results


__all__ = [
    "CloudflareVectorStore",
    "to_ndjson",
    "VECTORIZE_MAX_BATCH_SIZE",
    "VECTORIZE_MAX_TOP_K",
]

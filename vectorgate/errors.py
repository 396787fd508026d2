# vectorgate/errors.py
# SPDX-License-Identifier: Apache-2.0
"""
Normalized error taxonomy for vectorgate.

Every failure raised by a vector store, whatever its backend, is one of the
classes below. Local validation failures never reach the wire; remote
failures are translated by each adapter and chained to the original driver
exception (``raise ... from exc``) so nothing is reinterpreted or lost.

    VectorStoreError
    ├── ValidationError          VALIDATION_ERROR
    │   └── NotSupported         NOT_SUPPORTED
    ├── ConflictError            CONFLICT
    ├── NotFoundError            NOT_FOUND
    └── RemoteServiceError       REMOTE_SERVICE_ERROR
        ├── AuthError            AUTH_ERROR
        ├── TransientNetwork     TRANSIENT_NETWORK
        ├── Unavailable          UNAVAILABLE
        ├── DeadlineExceeded     DEADLINE_EXCEEDED
        ├── BatchUpsertError     BATCH_UPSERT_FAILED
        └── PartialUpsertError   PARTIAL_UPSERT

`ConsistencyWarning` is not an error: it is emitted through `warnings` when
post-write state has not become visible yet.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class VectorStoreError(Exception):
    """
    Base exception for all vector store errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (UPPER_SNAKE_CASE)
        retry_after_ms: Backend hint for callers that own a retry policy
        details: JSON-serializable context (operation, index, offsets, ...)
    """

    default_code = "VECTOR_STORE_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        retry_after_ms: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.retry_after_ms = retry_after_ms
        self.details = dict(details or {})

    def asdict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization and logging."""
        return {
            "message": self.message,
            "code": self.code,
            "retry_after_ms": self.retry_after_ms,
            "details": {k: self.details[k] for k in sorted(self.details)},
        }


class ValidationError(VectorStoreError):
    """Invalid dimension, metric, operator or filter shape. Raised before any network call."""
    default_code = "VALIDATION_ERROR"


class NotSupported(ValidationError):
    """Requested behavior is not available on this backend."""
    default_code = "NOT_SUPPORTED"


class ConflictError(VectorStoreError):
    """An index with the requested name already exists."""
    default_code = "CONFLICT"


class NotFoundError(VectorStoreError):
    """The addressed index does not exist."""
    default_code = "NOT_FOUND"


class RemoteServiceError(VectorStoreError):
    """Network, authentication or backend-internal failure."""
    default_code = "REMOTE_SERVICE_ERROR"


class AuthError(RemoteServiceError):
    """Authentication or authorization failed."""
    default_code = "AUTH_ERROR"


class TransientNetwork(RemoteServiceError):
    """Connection-level failure that may succeed if the caller retries."""
    default_code = "TRANSIENT_NETWORK"


class Unavailable(RemoteServiceError):
    """Backend is unavailable or failed internally."""
    default_code = "UNAVAILABLE"


class DeadlineExceeded(RemoteServiceError):
    """Operation exceeded ctx.deadline_ms or the driver timeout."""
    default_code = "DEADLINE_EXCEEDED"


class BatchUpsertError(RemoteServiceError):
    """
    A chunk of a batched upsert failed after earlier chunks were committed.

    `details` carries `chunk_index`, `chunk_offset` and `committed_ids`; the
    backend error is available as `__cause__`.
    """
    default_code = "BATCH_UPSERT_FAILED"


class PartialUpsertError(RemoteServiceError):
    """
    The backend accepted the request but reported per-item failures.

    Attributes:
        ids: Ids assigned to every input record, in input order
        failures: Per-item failure dicts with absolute `index` offsets
    """
    default_code = "PARTIAL_UPSERT"

    def __init__(self, message: str, *, ids, failures, **kwargs: Any):
        kwargs.setdefault("details", {"failed_count": len(failures)})
        super().__init__(message, **kwargs)
        self.ids = list(ids)
        self.failures = list(failures)


class ConsistencyWarning(UserWarning):
    """Index count or query results do not yet reflect a recent write."""


__all__ = [
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

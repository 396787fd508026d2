# SPDX-License-Identifier: Apache-2.0
"""
Context helpers for examples.

Builds `vectorgate.OperationContext` objects with generated correlation ids
and a relative deadline:

    from vectorgate import OperationContext
    from examples.common.ctx import make_ctx, remaining_budget_ms

    ctx = make_ctx(OperationContext, timeout_ms=5_000, attrs={"example": "ex01"})
    print(remaining_budget_ms(ctx))
"""
from __future__ import annotations

import time
import uuid
from typing import Any, Mapping, Optional, Type, TypeVar

CtxT = TypeVar("CtxT")

__all__ = ["make_ctx", "remaining_budget_ms", "now_ms"]


def now_ms() -> int:
    """Return current epoch time in milliseconds."""
    return int(time.time() * 1000)


def _default_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:16]}"


def _default_traceparent() -> str:
    """W3C Trace Context (version 00) with random trace/span ids."""
    return f"00-{uuid.uuid4().hex}-{uuid.uuid4().hex[:16]}-01"


def make_ctx(
    factory: Type[CtxT],
    *,
    request_id: Optional[str] = None,
    deadline_ms: Optional[int] = None,
    timeout_ms: Optional[int] = None,
    traceparent: Optional[str] = None,
    attrs: Optional[Mapping[str, Any]] = None,
) -> CtxT:
    """
    Create an OperationContext using the provided factory.

    `deadline_ms` is absolute, `timeout_ms` relative to now; give at most one.
    An already-expired `deadline_ms` is allowed so examples can show the
    preflight check.
    """
    if deadline_ms is not None and timeout_ms is not None:
        raise ValueError("Cannot specify both deadline_ms and timeout_ms")
    if timeout_ms is not None and timeout_ms <= 0:
        raise ValueError("timeout_ms must be positive")

    if deadline_ms is None and timeout_ms is not None:
        deadline_ms = now_ms() + int(timeout_ms)

    return factory(
        request_id=request_id or _default_request_id(),
        deadline_ms=deadline_ms,
        traceparent=traceparent or _default_traceparent(),
        attrs=dict(attrs or {}),
    )


def remaining_budget_ms(ctx: Any) -> Optional[int]:
    """Remaining ms (>= 0) until ctx.deadline_ms, or None without a deadline."""
    deadline = getattr(ctx, "deadline_ms", None)
    if deadline is None:
        return None
    return max(0, int(deadline - now_ms()))

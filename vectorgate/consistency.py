# vectorgate/consistency.py
# SPDX-License-Identifier: Apache-2.0
"""
Helpers for eventually consistent backends.

Hosted indexes (Vectorize in particular) acknowledge writes before they are
visible to `describe_index` or `query`. These helpers poll until the state
converges or a timeout elapses; a timeout is reported as a
`ConsistencyWarning`, not an error, because the write itself succeeded.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import warnings
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from vectorgate.errors import ConsistencyWarning
from vectorgate.vector_base import IndexDescriptor, OperationContext, VectorStoreProtocol

logger = logging.getLogger(__name__)

Condition = Callable[[], Union[bool, Awaitable[bool]]]


async def wait_for_condition(
    condition: Condition,
    timeout_s: float = 10.0,
    interval_s: float = 1.0,
) -> bool:
    """
    Poll `condition` until it returns truthy or `timeout_s` elapses.

    `condition` may be a plain or an async callable. Returns whether it was
    satisfied; never raises on timeout.
    """
    deadline = time.monotonic() + timeout_s
    while True:
        outcome = condition()
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if outcome:
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        await asyncio.sleep(min(interval_s, remaining))


async def wait_for_count(
    store: VectorStoreProtocol,
    name: str,
    expected: int,
    *,
    timeout_s: float = 10.0,
    interval_s: float = 1.0,
    ctx: Optional[OperationContext] = None,
) -> IndexDescriptor:
    """
    Wait until `describe_index(name).count` reaches `expected`.

    Returns the last descriptor seen. If the count has not converged by the
    timeout a ConsistencyWarning is emitted and the stale descriptor is
    returned.
    """
    latest: Dict[str, Any] = {}

    async def check() -> bool:
        latest["desc"] = await store.describe_index(name, ctx=ctx)
        return latest["desc"].count >= expected

    if not await wait_for_condition(check, timeout_s=timeout_s, interval_s=interval_s):
        desc = latest["desc"]
        logger.debug("index %r count %d did not reach %d", name, desc.count, expected)
        warnings.warn(
            f"index {name!r} reports {desc.count} record(s) after {timeout_s}s, expected {expected}",
            ConsistencyWarning,
            stacklevel=2,
        )
    return latest["desc"]


__all__ = ["wait_for_condition", "wait_for_count"]

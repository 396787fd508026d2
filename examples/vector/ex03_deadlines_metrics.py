# SPDX-License-Identifier: Apache-2.0
"""
Vector ex03: Deadlines, metrics and partial failures

Demonstrates:
  • Pre-expired deadline fails fast (preflight)
  • ConsoleMetrics printing one line per operation
  • upsert_with_report returning per-item failures as data

Run with:  python -m examples.vector.ex03_deadlines_metrics
"""

import asyncio
import time

from vectorgate import DeadlineExceeded, OperationContext, VectorStoreConfig
from vectorgate.memory_adapter import InMemoryVectorStore
from examples.common.ctx import make_ctx, remaining_budget_ms
from examples.common.metrics_console import ConsoleMetrics
from examples.common.printing import box, print_kv


async def main():
    box("Vector ex03: Deadlines & metrics")
    store = InMemoryVectorStore(metrics=ConsoleMetrics(), config=VectorStoreConfig(batch_size=2))

    pre_ctx = make_ctx(OperationContext, deadline_ms=int(time.time() * 1000) - 1)
    try:
        await store.create_index("ex03", 2, ctx=pre_ctx)
    except DeadlineExceeded as e:
        print_kv({"preflight_deadline": "EXPECTED", "details": e.details})

    ctx = make_ctx(OperationContext, timeout_ms=2_000)
    print_kv({"budget_ms": remaining_budget_ms(ctx)})
    await store.create_index("ex03", 2, ctx=ctx)

    report = await store.upsert_with_report(
        "ex03",
        [[1, 0], [0, 1], [1, 1], [0.5, 0.5], [0.2, 0.8]],
        ids=["a", "b", "c", "d", "e"],
        ctx=ctx,
    )
    print_kv({"ids": report.ids, "chunks": report.chunks, "failures": report.failures})

    await store.query("ex03", [1, 0], top_k=2, ctx=ctx)

    print("\n[lesson] ex03: budgets are checked before any I/O; metrics never see vectors or ids.")


if __name__ == "__main__":
    asyncio.run(main())

# SPDX-License-Identifier: Apache-2.0
"""
Vector ex01: Index lifecycle and basic query

Demonstrates:
  • create_index / describe_index / list_indexes / delete_index
  • upsert with caller ids and generated ids
  • query ordering (descending score) and include_vector

Run with:  python -m examples.vector.ex01_index_lifecycle
"""

import asyncio

from vectorgate import ConflictError, NotFoundError, OperationContext
from vectorgate.memory_adapter import InMemoryVectorStore
from examples.common.ctx import make_ctx
from examples.common.printing import box, print_hits, print_kv


async def main():
    box("Vector ex01: Index lifecycle")
    store = InMemoryVectorStore()
    ctx = make_ctx(OperationContext, timeout_ms=5_000, attrs={"example": "ex01"})

    await store.create_index("ex01", 3, "cosine", ctx=ctx)
    try:
        await store.create_index("ex01", 3, ctx=ctx)
    except ConflictError as e:
        print_kv({"duplicate_create": "EXPECTED", "code": e.code})

    ids = await store.upsert(
        "ex01",
        [[1, 0, 0], [0, 1, 0], [0.7, 0.7, 0]],
        metadata=[{"label": "x"}, {"label": "y"}, None],
        ids=["x", "y", None],
        ctx=ctx,
    )
    print_kv({"ids": ids})

    desc = await store.describe_index("ex01", ctx=ctx)
    print_kv({"dimension": desc.dimension, "metric": desc.metric.value, "count": desc.count})

    hits = await store.query("ex01", [0.9, 0.1, 0.0], top_k=2, include_vector=True, ctx=ctx)
    print_hits(hits)

    print_kv({"indexes": await store.list_indexes(ctx=ctx)})
    await store.delete_index("ex01", ctx=ctx)
    try:
        await store.describe_index("ex01", ctx=ctx)
    except NotFoundError as e:
        print_kv({"after_delete": "EXPECTED", "code": e.code})

    print("\n[lesson] ex01: one contract for the whole lifecycle; ids come back in input order.")


if __name__ == "__main__":
    asyncio.run(main())

# SPDX-License-Identifier: Apache-2.0
"""
Vector ex02: Metadata filters

Demonstrates:
  • Shorthand equality and explicit {"operator", "value"} conditions
  • $and / $or combinators
  • The parameterized SQL the pgvector backend would run for the same filter
  • Malformed filters rejected before any backend call

Run with:  python -m examples.vector.ex02_filters
"""

import asyncio

from vectorgate import ValidationError, compile_filter
from vectorgate.memory_adapter import InMemoryVectorStore
from examples.common.printing import box, print_hits, print_kv

DOCS = [
    ("shoe-1", [1.0, 0.0], {"brand": "acme", "price": 40, "tags": ["running"]}),
    ("shoe-2", [0.9, 0.1], {"brand": "acme", "price": 120, "tags": ["trail", "running"]}),
    ("shoe-3", [0.8, 0.2], {"brand": "zeta", "price": 60}),
]

FILTERS = {
    "brand == acme": {"brand": "acme"},
    "price < 100": {"price": {"operator": "lt", "value": 100}},
    "zeta OR price <= 40": {"$or": [{"brand": "zeta"}, {"price": {"operator": "lte", "value": 40}}]},
    "tags contains trail": {"tags": {"operator": "contains", "value": ["trail"]}},
}


async def main():
    box("Vector ex02: Filters")
    store = InMemoryVectorStore()
    await store.create_index("ex02", 2)
    await store.upsert(
        "ex02",
        [vec for _, vec, _ in DOCS],
        metadata=[meta for _, _, meta in DOCS],
        ids=[doc_id for doc_id, _, _ in DOCS],
    )

    for title, expr in FILTERS.items():
        print(f"\n{title}")
        print_hits(await store.query("ex02", [1.0, 0.0], top_k=3, filter=expr))
        predicate = compile_filter(expr, start_index=2)
        print_kv({"sql": predicate.sql, "params": predicate.params}, indent=4)

    try:
        await store.query("ex02", [1.0, 0.0], filter={"price": {"operator": "regex", "value": ".*"}})
    except ValidationError as e:
        print_kv({"bad_operator": "EXPECTED", "message": e.message})

    print("\n[lesson] ex02: one filter language, enforced locally here and as bound SQL on pgvector.")


if __name__ == "__main__":
    asyncio.run(main())

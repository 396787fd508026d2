# SPDX-License-Identifier: Apache-2.0
"""
Vector Conformance: Upsert semantics.

Asserts:
  • Returned ids follow input order; omitted ids are generated and unique
  • Re-upserting an id overwrites vector and metadata
  • Length mismatches and bad vectors raise ValidationError
  • Backend per-item failures surface as PartialUpsertError, or as data
    through upsert_with_report
  • Writes are chunked by the configured batch size
"""

import pytest

from vectorgate.errors import BatchUpsertError, PartialUpsertError, ValidationError
from vectorgate.memory_adapter import InMemoryVectorStore
from vectorgate.vector_base import VectorStoreConfig

pytestmark = pytest.mark.asyncio


async def test_upsert_ids_follow_input_order(adapter, index_name):
    await adapter.create_index(index_name, 2)
    try:
        ids = await adapter.upsert(index_name, [[1.0, 0.0], [0.0, 1.0]], ids=["b", "a"])
        assert ids == ["b", "a"]
        desc = await adapter.describe_index(index_name)
        assert desc.count == 2
    finally:
        await adapter.delete_index(index_name)


async def test_upsert_generated_ids_are_unique(adapter, index_name):
    await adapter.create_index(index_name, 2)
    try:
        ids = await adapter.upsert(index_name, [[1.0, float(i)] for i in range(20)])
        assert len(ids) == 20
        assert len(set(ids)) == 20
        assert all(isinstance(i, str) and i for i in ids)
    finally:
        await adapter.delete_index(index_name)


async def test_upsert_mixed_explicit_and_generated_ids(adapter, index_name):
    await adapter.create_index(index_name, 2)
    try:
        ids = await adapter.upsert(index_name, [[1.0, 0.0], [0.0, 1.0]], ids=["keep", None])
        assert ids[0] == "keep"
        assert ids[1] and ids[1] != "keep"
    finally:
        await adapter.delete_index(index_name)


async def test_upsert_overwrites_existing_id(adapter, index_name):
    await adapter.create_index(index_name, 2)
    try:
        await adapter.upsert(index_name, [[1.0, 0.0]], metadata=[{"v": 1}], ids=["x"])
        await adapter.upsert(index_name, [[0.0, 1.0]], metadata=[{"v": 2}], ids=["x"])
        results = await adapter.query(index_name, [0.0, 1.0], top_k=1)
        assert results[0].id == "x"
        assert results[0].metadata == {"v": 2}
        assert (await adapter.describe_index(index_name)).count == 1
    finally:
        await adapter.delete_index(index_name)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"metadata": [{"a": 1}]},
        {"ids": ["only-one"]},
        {"metadata": {"a": 1}},
        {"metadata": [{"a": 1}, "nope"]},
        {"ids": ["a", ""]},
    ],
)
async def test_upsert_shape_mismatch_rejected(adapter, index_name, kwargs):
    with pytest.raises(ValidationError):
        await adapter.upsert(index_name, [[1.0, 0.0], [0.0, 1.0]], **kwargs)


@pytest.mark.parametrize("vectors", [[], [[]], [["a", 1.0]], "vectors"])
async def test_upsert_invalid_vectors_rejected(adapter, index_name, vectors):
    with pytest.raises(ValidationError):
        await adapter.upsert(index_name, vectors)


async def test_upsert_wrong_dimension_rejected():
    store = InMemoryVectorStore()
    await store.create_index("idx", 3)
    with pytest.raises(ValidationError):
        await store.upsert("idx", [[1.0, 0.0]])
    assert (await store.describe_index("idx")).count == 0


class RecordingStore(InMemoryVectorStore):
    """Records chunk sizes and rejects records whose metadata says so."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.chunk_sizes = []

    async def _do_upsert_chunk(self, name, records, offset, *, ctx=None):
        self.chunk_sizes.append(len(records))
        accepted = [r for r in records if not r.metadata.get("reject")]
        await super()._do_upsert_chunk(name, accepted, offset, ctx=ctx)
        return [
            {"index": i, "id": r.id, "error": "rejected by backend"}
            for i, r in enumerate(records)
            if r.metadata.get("reject")
        ]


async def test_upsert_per_item_failures_raise_partial_error():
    store = RecordingStore(config=VectorStoreConfig(batch_size=2))
    await store.create_index("idx", 2)
    meta = [{}, {}, {"reject": True}, {}]
    with pytest.raises(PartialUpsertError) as exc_info:
        await store.upsert("idx", [[1.0, 0.0]] * 4, metadata=meta, ids=["a", "b", "c", "d"])
    err = exc_info.value
    assert err.code == "PARTIAL_UPSERT"
    assert err.ids == ["a", "b", "c", "d"]
    assert [f["index"] for f in err.failures] == [2]
    assert (await store.describe_index("idx")).count == 3


async def test_upsert_with_report_returns_failures():
    store = RecordingStore(config=VectorStoreConfig(batch_size=3))
    await store.create_index("idx", 2)
    meta = [{}, {}, {}, {"reject": True}, {}]
    report = await store.upsert_with_report("idx", [[0.0, 1.0]] * 5, metadata=meta)
    assert report.chunks == 2
    assert store.chunk_sizes == [3, 2]
    assert report.failed_count == 1
    assert report.failures[0]["index"] == 3
    assert report.failures[0]["id"] == report.ids[3]


async def test_upsert_batch_size_capped_by_backend_maximum():
    class Capped(RecordingStore):
        async def _do_capabilities(self):
            caps = await super()._do_capabilities()
            return type(caps)(server=caps.server, version=caps.version, max_batch_size=2)

    store = Capped(config=VectorStoreConfig(batch_size=100))
    await store.create_index("idx", 2)
    await store.upsert("idx", [[1.0, 0.0]] * 5)
    assert store.chunk_sizes == [2, 2, 1]


async def test_upsert_later_chunk_failure_reports_committed_prefix():
    class Flaky(InMemoryVectorStore):
        async def _do_upsert_chunk(self, name, records, offset, *, ctx=None):
            if offset >= 2:
                raise RuntimeError("backend went away")
            return await super()._do_upsert_chunk(name, records, offset, ctx=ctx)

    store = Flaky(config=VectorStoreConfig(batch_size=2))
    await store.create_index("idx", 2)
    with pytest.raises(BatchUpsertError) as exc_info:
        await store.upsert("idx", [[1.0, 0.0]] * 3, ids=["a", "b", "c"])
    assert exc_info.value.details["committed_ids"] == ["a", "b"]
    assert (await store.describe_index("idx")).count == 2


async def test_upsert_metadata_is_copied():
    store = InMemoryVectorStore()
    await store.create_index("idx", 2)
    meta = {"nested": {"k": 1}}
    await store.upsert("idx", [[1.0, 0.0]], metadata=[meta], ids=["a"])
    meta["nested"]["k"] = 2
    results = await store.query("idx", [1.0, 0.0], top_k=1)
    assert results[0].metadata == {"nested": {"k": 1}}

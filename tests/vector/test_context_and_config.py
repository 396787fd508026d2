# SPDX-License-Identifier: Apache-2.0
"""
Vector Conformance: Deadlines, metrics and configuration.

Asserts:
  • remaining_ms() is never negative and None without a deadline
  • An expired deadline fails before the backend is called
  • A slow backend call is cut off at the deadline with DeadlineExceeded
  • Metrics are recorded per operation and never break the operation
  • VectorStoreConfig validates its fields and reads VECTORGATE_* variables
"""

import asyncio
import time

import pytest

from vectorgate.errors import DeadlineExceeded, ValidationError
from vectorgate.memory_adapter import InMemoryVectorStore
from vectorgate.vector_base import OperationContext, VectorStoreConfig

pytestmark = pytest.mark.asyncio


def _now_ms() -> int:
    return int(time.time() * 1000)


async def test_deadline_remaining_budget_nonnegative():
    assert OperationContext(deadline_ms=_now_ms() - 100).remaining_ms() == 0
    remaining = OperationContext(deadline_ms=_now_ms() + 5000).remaining_ms()
    assert remaining is not None and 0 < remaining <= 5000
    assert OperationContext().remaining_ms() is None


async def test_deadline_expired_fails_preflight():
    class Counting(InMemoryVectorStore):
        calls = 0

        async def _do_list_indexes(self, *, ctx=None):
            Counting.calls += 1
            return await super()._do_list_indexes(ctx=ctx)

    store = Counting()
    ctx = OperationContext(request_id="expired", deadline_ms=_now_ms() - 1)
    with pytest.raises(DeadlineExceeded) as exc_info:
        await store.list_indexes(ctx=ctx)
    assert exc_info.value.code == "DEADLINE_EXCEEDED"
    assert exc_info.value.details == {"preflight": True}
    assert Counting.calls == 0


async def test_deadline_expired_upsert_validates_first():
    store = InMemoryVectorStore()
    ctx = OperationContext(deadline_ms=_now_ms() - 1)
    # argument errors win over the deadline
    with pytest.raises(ValidationError):
        await store.upsert("idx", [], ctx=ctx)
    with pytest.raises(DeadlineExceeded):
        await store.upsert("idx", [[1.0]], ctx=ctx)


async def test_deadline_slow_backend_is_cut_off():
    class Slow(InMemoryVectorStore):
        async def _do_describe_index(self, name, *, ctx=None):
            await asyncio.sleep(5)

    store = Slow()
    ctx = OperationContext(deadline_ms=_now_ms() + 50)
    with pytest.raises(DeadlineExceeded):
        await store.describe_index("idx", ctx=ctx)


async def test_deadline_generous_budget_succeeds():
    store = InMemoryVectorStore()
    ctx = OperationContext(deadline_ms=_now_ms() + 30000)
    await store.create_index("idx", 2, ctx=ctx)
    ids = await store.upsert("idx", [[1.0, 0.0]], ctx=ctx)
    results = await store.query("idx", [1.0, 0.0], top_k=1, ctx=ctx)
    assert results[0].id == ids[0]


class RecordingMetrics:
    def __init__(self):
        self.observations = []
        self.counters = []

    def observe(self, *, component, op, ms, ok, code="OK", extra=None):
        self.observations.append({"component": component, "op": op, "ok": ok, "code": code, "extra": extra})

    def counter(self, *, component, name, value=1, extra=None):
        self.counters.append((name, value))


async def test_metrics_recorded_per_operation():
    metrics = RecordingMetrics()
    store = InMemoryVectorStore(metrics=metrics)
    await store.create_index("idx", 2)
    await store.upsert("idx", [[1.0, 0.0], [0.0, 1.0]])
    await store.query("idx", [1.0, 0.0], top_k=1)
    with pytest.raises(Exception):
        await store.describe_index("missing")

    ops = [(o["op"], o["ok"]) for o in metrics.observations if o["op"] != "capabilities"]
    assert ops == [
        ("create_index", True),
        ("upsert", True),
        ("query", True),
        ("describe_index", False),
    ]
    failed = [o for o in metrics.observations if o["op"] == "describe_index"][0]
    assert failed["code"] == "NOT_FOUND"
    assert failed["component"] == "vector_memory"
    assert ("vectors_upserted", 2) in metrics.counters
    assert ("queries", 1) in metrics.counters


async def test_metrics_deadline_bucket_attached():
    metrics = RecordingMetrics()
    store = InMemoryVectorStore(metrics=metrics)
    await store.list_indexes(ctx=OperationContext(deadline_ms=_now_ms() + 60000))
    obs = [o for o in metrics.observations if o["op"] == "list_indexes"][0]
    assert obs["extra"]["deadline_bucket"] == ">=15s"


async def test_metrics_sink_failure_does_not_break_operation():
    class Broken:
        def observe(self, **_):
            raise RuntimeError("sink down")

        def counter(self, **_):
            pass

    store = InMemoryVectorStore(metrics=Broken())
    await store.create_index("idx", 2)
    assert await store.list_indexes() == ["idx"]


async def test_config_defaults():
    cfg = VectorStoreConfig()
    assert cfg.batch_size == 256
    assert cfg.batch_max_concurrency == 1
    assert cfg.strict_filters is False
    assert cfg.max_top_k is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"batch_size": 0},
        {"batch_size": True},
        {"batch_max_concurrency": -1},
        {"max_top_k": 0},
        {"max_top_k": "10"},
    ],
)
async def test_config_rejects_invalid_values(kwargs):
    with pytest.raises(ValueError):
        VectorStoreConfig(**kwargs)


async def test_config_from_env(monkeypatch):
    monkeypatch.setenv("VECTORGATE_BATCH_SIZE", "64")
    monkeypatch.setenv("VECTORGATE_BATCH_CONCURRENCY", "4")
    monkeypatch.setenv("VECTORGATE_STRICT_FILTERS", "yes")
    monkeypatch.setenv("VECTORGATE_MAX_TOP_K", "")
    cfg = VectorStoreConfig.from_env()
    assert cfg == VectorStoreConfig(batch_size=64, batch_max_concurrency=4, strict_filters=True)


async def test_config_from_env_rejects_garbage(monkeypatch):
    monkeypatch.setenv("VECTORGATE_BATCH_SIZE", "lots")
    with pytest.raises(ValueError):
        VectorStoreConfig.from_env()

# SPDX-License-Identifier: Apache-2.0
"""
Vector Conformance: Qdrant backend against a scripted AsyncQdrantClient.

Asserts:
  • Filter expressions translate into native `models.Filter` trees
  • Collections are created with the mapped distance and size
  • Non-native ids are remapped and restored transparently
  • Euclid distances are converted to similarity scores
  • HTTP status codes map onto the error taxonomy
"""

from types import SimpleNamespace

import pytest

pytest.importorskip("qdrant_client")

from qdrant_client import models  # noqa: E402

from vectorgate.errors import (  # noqa: E402
    AuthError,
    ConflictError,
    NotFoundError,
    NotSupported,
    RemoteServiceError,
    TransientNetwork,
    Unavailable,
    ValidationError,
)
from vectorgate.metric_mapping import DistanceMetric  # noqa: E402
from vectorgate.qdrant_adapter import (  # noqa: E402
    ORIGINAL_ID_FIELD,
    QdrantVectorStore,
    translate_filter,
)

pytestmark = pytest.mark.asyncio


def _eq(key, value):
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))


def _is_empty(key):
    return models.IsEmptyCondition(is_empty=models.PayloadField(key=key))


# ---------------------------------------------------------------------------
# Filter translation
# ---------------------------------------------------------------------------

async def test_qdrant_filter_eq_and_metadata_prefix():
    assert translate_filter({"label": "v2"}) == models.Filter(must=[_eq("label", "v2")])
    assert translate_filter({"metadata.label": {"operator": "eq", "value": "v2"}}) == models.Filter(
        must=[_eq("label", "v2")]
    )


async def test_qdrant_filter_nested_path():
    assert translate_filter({"brand.name": "acme"}) == models.Filter(must=[_eq("brand.name", "acme")])


async def test_qdrant_filter_float_equality_uses_closed_range():
    assert translate_filter({"price": 9.5}) == models.Filter(
        must=[models.FieldCondition(key="price", range=models.Range(gte=9.5, lte=9.5))]
    )


async def test_qdrant_filter_neq_excludes_missing_fields():
    assert translate_filter({"k": {"operator": "neq", "value": "x"}}) == models.Filter(
        must_not=[_eq("k", "x"), _is_empty("k")]
    )


@pytest.mark.parametrize("op", ["gt", "gte", "lt", "lte"])
async def test_qdrant_filter_range(op):
    assert translate_filter({"n": {"operator": op, "value": 3}}) == models.Filter(
        must=[models.FieldCondition(key="n", range=models.Range(**{op: 3.0}))]
    )


async def test_qdrant_filter_in_like_contains_exists():
    assert translate_filter({"t": {"operator": "in", "value": "a,b"}}) == models.Filter(
        must=[models.FieldCondition(key="t", match=models.MatchAny(any=["a", "b"]))]
    )
    assert translate_filter({"t": {"operator": "ilike", "value": "ac"}}) == models.Filter(
        must=[models.FieldCondition(key="t", match=models.MatchText(text="ac"))]
    )
    assert translate_filter({"tags": {"operator": "contains", "value": ["a", "b"]}}) == models.Filter(
        must=[_eq("tags", "a"), _eq("tags", "b")]
    )
    assert translate_filter({"t": {"operator": "exists"}}) == models.Filter(must_not=[_is_empty("t")])


async def test_qdrant_filter_combinators():
    got = translate_filter({"$or": [{"a": 1}, {"$and": [{"b": 2}, {"c": 3}]}]})
    assert got == models.Filter(
        should=[
            models.Filter(must=[_eq("a", 1)]),
            models.Filter(must=[
                models.Filter(must=[_eq("b", 2)]),
                models.Filter(must=[_eq("c", 3)]),
            ]),
        ]
    )


async def test_qdrant_filter_multiple_keys_are_anded():
    assert translate_filter({"a": 1, "b": "x"}) == models.Filter(must=[_eq("a", 1), _eq("b", "x")])


async def test_qdrant_filter_rejects_untranslatable_values():
    with pytest.raises(NotSupported):
        translate_filter({"a": {"operator": "eq", "value": {"nested": 1}}})
    with pytest.raises(ValidationError):
        translate_filter({"a": {"operator": "regex", "value": "x"}})
    with pytest.raises(ValidationError):
        translate_filter({})


# ---------------------------------------------------------------------------
# Scripted client
# ---------------------------------------------------------------------------

class FakeHttpError(Exception):
    def __init__(self, status_code, message="qdrant error"):
        super().__init__(message)
        self.status_code = status_code


def _collection_info(size=4, distance=models.Distance.COSINE, count=0):
    params = SimpleNamespace(vectors=models.VectorParams(size=size, distance=distance))
    return SimpleNamespace(config=SimpleNamespace(params=params), points_count=count)


class FakeQdrantClient:
    def __init__(self, info=None, points=(), existing=(), error=None):
        self.info = info or _collection_info()
        self.points = list(points)
        self.existing = set(existing)
        self.error = error
        self.calls = []

    def _maybe_fail(self):
        if self.error is not None:
            raise self.error

    async def collection_exists(self, collection_name):
        self.calls.append(("collection_exists", collection_name))
        self._maybe_fail()
        return collection_name in self.existing

    async def create_collection(self, collection_name, vectors_config):
        self.calls.append(("create_collection", collection_name, vectors_config))
        self.existing.add(collection_name)

    async def delete_collection(self, collection_name):
        self.calls.append(("delete_collection", collection_name))
        self.existing.discard(collection_name)

    async def get_collection(self, collection_name):
        self.calls.append(("get_collection", collection_name))
        self._maybe_fail()
        return self.info

    async def get_collections(self):
        self.calls.append(("get_collections",))
        self._maybe_fail()
        return SimpleNamespace(collections=[SimpleNamespace(name=n) for n in sorted(self.existing)])

    async def upsert(self, collection_name, points, wait):
        self.calls.append(("upsert", collection_name, points, wait))
        self._maybe_fail()

    async def query_points(self, **kwargs):
        self.calls.append(("query_points", kwargs))
        self._maybe_fail()
        return SimpleNamespace(points=self.points)

    async def close(self):
        self.calls.append(("close",))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "metric,distance",
    [
        ("cosine", models.Distance.COSINE),
        ("euclidean", models.Distance.EUCLID),
        ("dotproduct", models.Distance.DOT),
    ],
)
async def test_qdrant_create_collection(metric, distance):
    client = FakeQdrantClient()
    store = QdrantVectorStore(client=client)
    await store.create_index("docs", 8, metric)
    name, collection, params = client.calls[-1]
    assert (name, collection) == ("create_collection", "docs")
    assert params == models.VectorParams(size=8, distance=distance)


async def test_qdrant_create_existing_collection_conflicts():
    client = FakeQdrantClient(existing={"docs"})
    store = QdrantVectorStore(client=client)
    with pytest.raises(ConflictError):
        await store.create_index("docs", 4)
    assert not [c for c in client.calls if c[0] == "create_collection"]


async def test_qdrant_describe_index():
    client = FakeQdrantClient(info=_collection_info(size=3, distance=models.Distance.DOT, count=11))
    store = QdrantVectorStore(client=client)
    desc = await store.describe_index("docs")
    assert desc.dimension == 3
    assert desc.metric is DistanceMetric.DOTPRODUCT
    assert desc.count == 11


async def test_qdrant_list_and_delete():
    client = FakeQdrantClient(existing={"b", "a"})
    store = QdrantVectorStore(client=client)
    assert await store.list_indexes() == ["a", "b"]
    await store.delete_index("a")
    assert ("delete_collection", "a") in client.calls
    with pytest.raises(NotFoundError):
        await store.delete_index("a")


async def test_qdrant_close_closes_client():
    client = FakeQdrantClient()
    await QdrantVectorStore(client=client).close()
    assert client.calls == [("close",)]


# ---------------------------------------------------------------------------
# Upsert / query
# ---------------------------------------------------------------------------

async def test_qdrant_upsert_maps_point_ids():
    client = FakeQdrantClient()
    store = QdrantVectorStore(client=client)
    native_uuid = "5c56c793-69f3-4fbf-87e6-c4bf54c28c26"
    ids = await store.upsert(
        "docs",
        [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]],
        metadata=[{"k": 1}, None, {"k": 3}],
        ids=["42", native_uuid, "doc-1"],
    )
    assert ids == ["42", native_uuid, "doc-1"]

    _, collection, points, wait = client.calls[-1]
    assert wait is True
    assert points[0].id == 42 and points[0].payload == {"k": 1}
    assert points[1].id == native_uuid and points[1].payload == {}
    assert points[2].id != "doc-1"
    assert points[2].payload == {"k": 3, ORIGINAL_ID_FIELD: "doc-1"}


@pytest.mark.parametrize("caller_id", ["007", "²", "18446744073709551616", "-5"])
async def test_qdrant_non_canonical_numeric_ids_round_trip(caller_id):
    client = FakeQdrantClient()
    store = QdrantVectorStore(client=client)
    assert await store.upsert("docs", [[1.0, 0.0, 0.0, 0.0]], ids=[caller_id]) == [caller_id]

    stored = client.calls[-1][2][0]
    assert isinstance(stored.id, str)
    assert stored.payload == {ORIGINAL_ID_FIELD: caller_id}

    client.points = [SimpleNamespace(id=stored.id, score=0.9, payload=dict(stored.payload), vector=None)]
    results = await store.query("docs", [1.0, 0.0, 0.0, 0.0], top_k=1)
    assert [r.id for r in results] == [caller_id]
    assert results[0].metadata == {}


async def test_qdrant_largest_uint64_id_stays_native():
    client = FakeQdrantClient()
    store = QdrantVectorStore(client=client)
    await store.upsert("docs", [[1.0, 0.0, 0.0, 0.0]], ids=["18446744073709551615"])
    stored = client.calls[-1][2][0]
    assert stored.id == 2 ** 64 - 1
    assert stored.payload == {}


async def test_qdrant_query_restores_ids_and_converts_scores():
    points = [
        SimpleNamespace(id="uuid-1", score=0.0, payload={"k": 1, ORIGINAL_ID_FIELD: "doc-1"}, vector=[1.0, 0.0]),
        SimpleNamespace(id=7, score=1.0, payload={"k": 2}, vector=None),
    ]
    client = FakeQdrantClient(info=_collection_info(size=2, distance=models.Distance.EUCLID), points=points)
    store = QdrantVectorStore(client=client)
    results = await store.query(
        "docs", [1.0, 0.0], top_k=2, filter={"k": {"operator": "lte", "value": 2}}, include_vector=True,
    )
    assert [r.id for r in results] == ["doc-1", "7"]
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score == pytest.approx(0.5)
    assert results[0].metadata == {"k": 1}
    assert results[0].vector == [1.0, 0.0]

    kwargs = [c for c in client.calls if c[0] == "query_points"][0][1]
    assert kwargs["collection_name"] == "docs"
    assert kwargs["limit"] == 2
    assert kwargs["with_vectors"] is True
    assert kwargs["query_filter"] == translate_filter({"k": {"operator": "lte", "value": 2}})


async def test_qdrant_query_without_filter_passes_none():
    client = FakeQdrantClient()
    store = QdrantVectorStore(client=client)
    await store.query("docs", [1.0, 0.0, 0.0, 0.0], top_k=1)
    kwargs = [c for c in client.calls if c[0] == "query_points"][0][1]
    assert kwargs["query_filter"] is None
    assert kwargs["with_vectors"] is False


async def test_qdrant_metric_cached_after_create():
    client = FakeQdrantClient()
    store = QdrantVectorStore(client=client)
    await store.create_index("docs", 4, "dotproduct")
    await store.query("docs", [1.0, 0.0, 0.0, 0.0], top_k=1)
    assert not [c for c in client.calls if c[0] == "get_collection"]


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "status,expected",
    [
        (404, NotFoundError),
        (409, ConflictError),
        (401, AuthError),
        (403, AuthError),
        (400, ValidationError),
        (429, Unavailable),
        (503, Unavailable),
        (418, RemoteServiceError),
    ],
)
async def test_qdrant_status_mapping(status, expected):
    driver_error = FakeHttpError(status)
    store = QdrantVectorStore(client=FakeQdrantClient(error=driver_error))
    with pytest.raises(expected) as exc_info:
        await store.describe_index("docs")
    assert type(exc_info.value) is expected
    assert exc_info.value.__cause__ is driver_error
    assert exc_info.value.details["status_code"] == status


async def test_qdrant_connection_error_is_transient():
    store = QdrantVectorStore(client=FakeQdrantClient(error=ConnectionRefusedError("refused")))
    with pytest.raises(TransientNetwork):
        await store.list_indexes()

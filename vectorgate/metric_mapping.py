# vectorgate/metric_mapping.py
# SPDX-License-Identifier: Apache-2.0
"""
Metric Mapper: canonical distance metrics <-> backend-native identifiers.

Each backend spells the same three metrics differently (``Cosine`` / ``Euclid``
/ ``Dot`` in Qdrant, ``dot-product`` in Cloudflare Vectorize, operator classes
in pgvector). A `MetricMapper` holds one backend's table and guarantees that
`to_native` and `from_native` are exact inverses; anything outside the table
is a `ValidationError`, never a silent default.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Union

from vectorgate.errors import ValidationError


class DistanceMetric(str, Enum):
    """Canonical similarity metrics."""

    COSINE = "cosine"
    EUCLIDEAN = "euclidean"
    DOTPRODUCT = "dotproduct"

    @classmethod
    def parse(cls, value: Union["DistanceMetric", str]) -> "DistanceMetric":
        """Validate a canonical metric name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"metric must be one of: {', '.join(m.value for m in cls)}",
                details={"metric": repr(value)},
            ) from None


SUPPORTED_METRICS: Tuple[str, ...] = tuple(m.value for m in DistanceMetric)


class MetricMapper:
    """Bidirectional metric table for one backend."""

    def __init__(self, backend: str, table: Mapping[DistanceMetric, str]) -> None:
        missing = [m.value for m in DistanceMetric if m not in table]
        if missing:
            raise ValueError(f"{backend}: metric table is missing {missing}")
        reverse: Dict[str, DistanceMetric] = {}
        for metric, native in table.items():
            if native in reverse:
                raise ValueError(f"{backend}: native metric {native!r} is mapped twice")
            reverse[native] = metric
        self.backend = backend
        self._forward: Dict[DistanceMetric, str] = dict(table)
        self._reverse = reverse

    def to_native(self, metric: Union[DistanceMetric, str]) -> str:
        return self._forward[DistanceMetric.parse(metric)]

    def from_native(self, native: Any) -> DistanceMetric:
        # SDK enums (e.g. qdrant Distance) carry the identifier in .value
        key = getattr(native, "value", native)
        try:
            return self._reverse[key]
        except (KeyError, TypeError):
            raise ValidationError(
                f"unrecognized {self.backend} metric {native!r}",
                details={"backend": self.backend, "native": repr(native)},
            ) from None

    def __repr__(self) -> str:
        return f"MetricMapper({self.backend!r})"


QDRANT_METRICS = MetricMapper(
    "qdrant",
    {
        DistanceMetric.COSINE: "Cosine",
        DistanceMetric.EUCLIDEAN: "Euclid",
        DistanceMetric.DOTPRODUCT: "Dot",
    },
)

VECTORIZE_METRICS = MetricMapper(
    "vectorize",
    {
        DistanceMetric.COSINE: "cosine",
        DistanceMetric.EUCLIDEAN: "euclidean",
        DistanceMetric.DOTPRODUCT: "dot-product",
    },
)

# pgvector encodes the metric in the HNSW operator class
PGVECTOR_METRICS = MetricMapper(
    "pgvector",
    {
        DistanceMetric.COSINE: "vector_cosine_ops",
        DistanceMetric.EUCLIDEAN: "vector_l2_ops",
        DistanceMetric.DOTPRODUCT: "vector_ip_ops",
    },
)


__all__ = [
    "DistanceMetric",
    "SUPPORTED_METRICS",
    "MetricMapper",
    "QDRANT_METRICS",
    "VECTORIZE_METRICS",
    "PGVECTOR_METRICS",
]

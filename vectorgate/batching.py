# vectorgate/batching.py
# SPDX-License-Identifier: Apache-2.0
"""
Batch Upserter: split large writes into backend-sized chunks.

Records are cut into contiguous chunks of at most `batch_size` (original
order preserved) and each chunk is handed to a backend-specific writer. With
``max_concurrency == 1`` chunks are written strictly one after another;
higher values fan out under an `asyncio.Semaphore`, and results are still
reassembled by chunk index so the returned ids always follow input order.

Failure policy
--------------
- A writer that raises aborts the whole operation: no further chunk is
  dispatched, though chunks already in flight run to completion. If no
  chunk was committed the backend error propagates unchanged; otherwise a
  `BatchUpsertError` names the first failing chunk's offset and the ids of
  every committed chunk, chained to the backend error.
- A writer may instead return per-item failures (dicts with a chunk-relative
  ``index``); they are passed through with absolute offsets.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    TypeVar,
)

from vectorgate.errors import BatchUpsertError, ValidationError, VectorStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 256

# returned by chunks never dispatched because an earlier write failed
_SKIPPED = object()

# writer(chunk, chunk_offset) -> optional per-item failures (chunk-relative "index")
ChunkWriter = Callable[[List[T], int], Awaitable[Optional[List[Dict[str, Any]]]]]


@dataclass
class BatchUpsertResult:
    """
    Outcome of a batched upsert.

    Attributes:
        ids: Ids of all records, in input order
        failures: Per-item failures reported by the backend (absolute `index`)
        chunks: Number of write requests issued
    """
    ids: List[str]
    failures: List[Dict[str, Any]] = field(default_factory=list)
    chunks: int = 0

    @property
    def failed_count(self) -> int:
        return len(self.failures)


@dataclass
class _Chunk(Generic[T]):
    index: int
    offset: int
    records: List[T]


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Contiguous slices of at most `size` items."""
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise ValidationError("batch_size must be a positive integer", details={"batch_size": repr(size)})
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def upsert_batched(
    records: Sequence[T],
    write_chunk: ChunkWriter,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_concurrency: int = 1,
    id_of: Callable[[T], str] = lambda record: record.id,  # type: ignore[attr-defined]
) -> BatchUpsertResult:
    """
    Write `records` through `write_chunk` in chunks and aggregate the result.

    Every record must already carry its id; ids are returned in input order.
    """
    if isinstance(max_concurrency, bool) or not isinstance(max_concurrency, int) or max_concurrency <= 0:
        raise ValidationError("max_concurrency must be a positive integer")

    chunks = [
        _Chunk(index=i, offset=i * batch_size, records=part)
        for i, part in enumerate(chunked(records, batch_size))
    ]
    outcomes: List[Any] = [None] * len(chunks)

    if max_concurrency == 1 or len(chunks) <= 1:
        for chunk in chunks:
            try:
                outcomes[chunk.index] = await write_chunk(chunk.records, chunk.offset)
            except Exception as exc:  # noqa: BLE001
                _raise_chunk_failure(chunks, chunk.index, exc, id_of, committed=range(chunk.index))
    else:
        semaphore = asyncio.Semaphore(max_concurrency)
        aborted = False

        async def run_one(chunk: _Chunk) -> Any:
            nonlocal aborted
            async with semaphore:
                if aborted:
                    return _SKIPPED
                try:
                    return await write_chunk(chunk.records, chunk.offset)
                except Exception:
                    aborted = True
                    raise

        results = await asyncio.gather(
            *(run_one(chunk) for chunk in chunks),
            return_exceptions=True,
        )
        for res in results:
            if isinstance(res, BaseException) and not isinstance(res, Exception):
                raise res
        failed = [i for i, res in enumerate(results) if isinstance(res, Exception)]
        if failed:
            # chunks already in flight when the first failure happened may have landed
            done = [i for i, res in enumerate(results) if not isinstance(res, Exception) and res is not _SKIPPED]
            _raise_chunk_failure(chunks, failed[0], results[failed[0]], id_of, committed=done)
        outcomes = list(results)

    failures: List[Dict[str, Any]] = []
    for chunk, reported in zip(chunks, outcomes):
        for item in reported or []:
            entry = dict(item)
            entry["index"] = chunk.offset + int(entry.get("index", 0))
            entry.setdefault("chunk_index", chunk.index)
            failures.append(entry)

    if failures:
        logger.warning("batched upsert reported %d per-item failure(s)", len(failures))

    return BatchUpsertResult(
        ids=[id_of(r) for r in records],
        failures=failures,
        chunks=len(chunks),
    )


def _raise_chunk_failure(
    chunks: List[_Chunk],
    failed_index: int,
    exc: Exception,
    id_of: Callable[[Any], str],
    *,
    committed: Iterable[int],
) -> None:
    failed = chunks[failed_index]
    committed_ids = [id_of(r) for i in sorted(committed) for r in chunks[i].records]
    if not committed_ids:
        raise exc

    logger.debug("chunk %d (offset %d) failed: %r", failed.index, failed.offset, exc)
    code = exc.code if isinstance(exc, VectorStoreError) else None
    raise BatchUpsertError(
        f"upsert failed at chunk {failed.index} (offset {failed.offset}); "
        f"{len(committed_ids)} record(s) already committed",
        details={
            "chunk_index": failed.index,
            "chunk_offset": failed.offset,
            "chunk_size": len(failed.records),
            "committed_ids": committed_ids,
            "cause_code": code or type(exc).__name__,
        },
    ) from exc


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "BatchUpsertResult",
    "ChunkWriter",
    "chunked",
    "upsert_batched",
]

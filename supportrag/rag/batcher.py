from __future__ import annotations

"""Batch embedding with one atomic write per batch."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Sequence, TypeVar

from supportrag.app.metrics import BATCH_LATENCY, BATCHES_FAILED, CHUNKS_STORED
from supportrag.rag.embeddings import EmbeddingError
from supportrag.rag.errors import ConfigurationError, EmbeddingFailure, StoreWriteFailure
from supportrag.rag.types import Chunk, EmbeddedChunk

logger = logging.getLogger(__name__)

EmbedFn = Callable[[Chunk], Awaitable[list[float]]]
WriteFn = Callable[[list[EmbeddedChunk]], Awaitable[int]]
T = TypeVar("T")


class FailurePolicy(str, Enum):
    """What to do with the rest of a run once a batch fails."""
    HALT = "halt"
    SKIP = "skip"

    @classmethod
    def parse(cls, value: str | FailurePolicy) -> FailurePolicy:
        if isinstance(value, FailurePolicy):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown failure policy {value!r}; expected 'halt' or 'skip'"
            ) from exc


@dataclass(frozen=True)
class BatchProgress:
    """Progress snapshot emitted after each committed batch."""
    batch_number: int
    total_batches: int
    batch_stored: int
    total_stored: int
    total_chunks: int


@dataclass
class IngestionReport:
    """Outcome of one ingestion run."""
    total_chunks: int
    total_batches: int
    stored: int = 0
    failed_batches: list[int] = field(default_factory=list)
    failures: list[EmbeddingFailure | StoreWriteFailure] = field(default_factory=list)
    halted: bool = False
    stopped: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.stopped


def split_batches(chunks: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split into consecutive non-overlapping batches; the last may be short."""
    if batch_size <= 0:
        raise ConfigurationError(f"batch_size must be positive, got {batch_size}")
    return [list(chunks[i : i + batch_size]) for i in range(0, len(chunks), batch_size)]


async def _with_timeout(awaitable: Awaitable[T], timeout: float | None) -> T:
    if timeout is None or timeout <= 0:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=timeout)


@dataclass(frozen=True)
class EmbeddingBatcher:
    """Embed chunks batch by batch and write each batch once all embeds resolve."""
    embedding_model: str
    batch_size: int = 20
    policy: FailurePolicy = FailurePolicy.HALT
    max_concurrency: int | None = None
    embed_timeout: float | None = 30.0
    write_timeout: float | None = 60.0

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.max_concurrency is not None and self.max_concurrency <= 0:
            raise ConfigurationError(
                f"max_concurrency must be positive, got {self.max_concurrency}"
            )
        if not self.embedding_model:
            raise ConfigurationError("embedding_model is required to stamp stored records")

    async def run(
        self,
        chunks: Sequence[Chunk],
        embed: EmbedFn,
        write: WriteFn,
        *,
        stop_event: asyncio.Event | None = None,
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> IngestionReport:
        """Process all chunks and return the run report."""
        batches = split_batches(chunks, self.batch_size)
        report = IngestionReport(total_chunks=len(chunks), total_batches=len(batches))
        logger.info(
            "ingestion_started",
            extra={
                "chunks": report.total_chunks,
                "batches": report.total_batches,
                "batch_size": self.batch_size,
                "policy": self.policy.value,
            },
        )
        dimension: int | None = None
        for batch_index, batch in enumerate(batches):
            if stop_event is not None and stop_event.is_set():
                report.stopped = True
                logger.warning(
                    "ingestion_stopped",
                    extra={"next_batch": batch_index, "stored": report.stored},
                )
                break
            started = time.monotonic()
            try:
                embedded = await self._embed_batch(batch_index, batch, embed, dimension)
            except EmbeddingFailure as failure:
                self._record_failure(report, failure, "embedding")
                if self.policy is FailurePolicy.HALT:
                    report.halted = True
                    break
                continue
            dimension = len(embedded[0].embedding)

            try:
                written = await self._write_batch(batch_index, embedded, write)
            except StoreWriteFailure as failure:
                report.stored += failure.inserted
                CHUNKS_STORED.inc(failure.inserted)
                self._record_failure(report, failure, "write")
                if self.policy is FailurePolicy.HALT:
                    report.halted = True
                    break
                continue

            report.stored += written
            CHUNKS_STORED.inc(written)
            BATCH_LATENCY.observe(time.monotonic() - started)
            progress = BatchProgress(
                batch_number=batch_index + 1,
                total_batches=report.total_batches,
                batch_stored=written,
                total_stored=report.stored,
                total_chunks=report.total_chunks,
            )
            logger.info(
                "batch_stored",
                extra={
                    "batch": f"{progress.batch_number}/{progress.total_batches}",
                    "inserted": written,
                    "stored": f"{report.stored}/{report.total_chunks}",
                },
            )
            if on_progress is not None:
                on_progress(progress)

        logger.info(
            "ingestion_finished",
            extra={
                "stored": report.stored,
                "failed_batches": report.failed_batches,
                "halted": report.halted,
                "stopped": report.stopped,
            },
        )
        return report

    async def _embed_batch(
        self,
        batch_index: int,
        batch: list[Chunk],
        embed: EmbedFn,
        dimension: int | None,
    ) -> list[EmbeddedChunk]:
        """Embed every chunk of a batch concurrently, or none of them."""
        limit = min(self.max_concurrency or len(batch), len(batch))
        semaphore = asyncio.Semaphore(limit)

        async def _embed_one(chunk: Chunk) -> list[float]:
            async with semaphore:
                try:
                    return await _with_timeout(embed(chunk), self.embed_timeout)
                except Exception as exc:
                    raise EmbeddingFailure(batch_index, exc, chunk_id=chunk.chunk_id) from exc

        tasks = [asyncio.ensure_future(_embed_one(chunk)) for chunk in batch]
        try:
            vectors = await asyncio.gather(*tasks)
        except EmbeddingFailure:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        expected = dimension if dimension is not None else len(vectors[0])
        embedded: list[EmbeddedChunk] = []
        for chunk, vector in zip(batch, vectors):
            if len(vector) != expected or expected == 0:
                cause = EmbeddingError(
                    f"Embedding dimension drift: expected {expected}, got {len(vector)}"
                )
                raise EmbeddingFailure(batch_index, cause, chunk_id=chunk.chunk_id)
            embedded.append(
                EmbeddedChunk(
                    chunk=chunk,
                    embedding=list(vector),
                    embedding_model=self.embedding_model,
                )
            )
        return embedded

    async def _write_batch(
        self,
        batch_index: int,
        embedded: list[EmbeddedChunk],
        write: WriteFn,
    ) -> int:
        """Write a fully embedded batch in a single call."""
        try:
            written = await _with_timeout(write(embedded), self.write_timeout)
        except StoreWriteFailure as exc:
            raise StoreWriteFailure(exc.inserted, exc.cause, batch_index=batch_index) from exc
        except Exception as exc:
            raise StoreWriteFailure(0, exc, batch_index=batch_index) from exc
        if written < len(embedded):
            raise StoreWriteFailure(
                written,
                f"store acknowledged {written} of {len(embedded)} records",
                batch_index=batch_index,
            )
        return written

    def _record_failure(
        self,
        report: IngestionReport,
        failure: EmbeddingFailure | StoreWriteFailure,
        reason: str,
    ) -> None:
        batch_index = failure.batch_index if failure.batch_index is not None else -1
        report.failed_batches.append(batch_index)
        report.failures.append(failure)
        BATCHES_FAILED.labels(reason).inc()
        logger.error(
            "batch_failed",
            extra={
                "batch": f"{batch_index + 1}/{report.total_batches}",
                "reason": reason,
                "policy": self.policy.value,
                "detail": str(failure),
            },
        )


async def embed_and_store(
    chunks: Sequence[Chunk],
    batch_size: int,
    embed: EmbedFn,
    write: WriteFn,
    *,
    embedding_model: str,
    policy: FailurePolicy = FailurePolicy.HALT,
    max_concurrency: int | None = None,
    stop_event: asyncio.Event | None = None,
    on_progress: Callable[[BatchProgress], None] | None = None,
) -> IngestionReport:
    """Functional entry point over EmbeddingBatcher."""
    batcher = EmbeddingBatcher(
        embedding_model=embedding_model,
        batch_size=batch_size,
        policy=policy,
        max_concurrency=max_concurrency,
    )
    return await batcher.run(
        chunks,
        embed,
        write,
        stop_event=stop_event,
        on_progress=on_progress,
    )

from __future__ import annotations

"""Query embedding and top-k retrieval under an explicit ranking strategy."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from supportrag.rag.embeddings import EmbeddingProvider
from supportrag.rag.errors import (
    ConfigurationError,
    ConnectivityError,
    EmbeddingFailure,
    EmbeddingSpaceMismatch,
)
from supportrag.rag.similarity import cosine_similarity, rank_exact
from supportrag.rag.types import RetrievalResult, StoredRecord
from supportrag.vectorstore.base import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_CANDIDATE_POOL = 50


class RetrievalStrategy(str, Enum):
    """Ranking strategy; score scales differ, so callers always pick one."""
    EXACT = "exact"
    APPROXIMATE = "approximate"

    @classmethod
    def parse(cls, value: str | RetrievalStrategy) -> RetrievalStrategy:
        if isinstance(value, RetrievalStrategy):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown retrieval strategy {value!r}; expected 'exact' or 'approximate'"
            ) from exc


def check_embedding_space(
    record: StoredRecord, model: str, dimension: int
) -> None:
    """Reject records embedded by a different model or with another dimension."""
    if record.embedding_model != model:
        raise EmbeddingSpaceMismatch(
            f"Record {record.record_id} was embedded with {record.embedding_model!r}, "
            f"query uses {model!r}; rebuild the index or switch models"
        )
    if record.embedding and len(record.embedding) != dimension:
        raise EmbeddingSpaceMismatch(
            f"Record {record.record_id} has dimension {len(record.embedding)}, "
            f"query embedding has {dimension}"
        )


def dedupe_results(results: Sequence[RetrievalResult]) -> list[RetrievalResult]:
    """Collapse duplicate chunks to their best score, keeping first-seen order."""
    best: dict[tuple[str, int], RetrievalResult] = {}
    for result in results:
        key = result.record.chunk.sort_key
        current = best.get(key)
        if current is None or result.score > current.score:
            best[key] = result
    return list(best.values())


def recall_at_k(
    exact: Sequence[RetrievalResult], approximate: Sequence[RetrievalResult]
) -> float:
    """Share of the exact baseline's chunks that the approximate path also found."""
    expected = {result.record.chunk.sort_key for result in exact}
    if not expected:
        return 1.0
    found = {result.record.chunk.sort_key for result in approximate}
    return len(expected & found) / len(expected)


@dataclass
class Retriever:
    """Embed a query with the ingestion embedder and rank stored chunks."""
    embedder: EmbeddingProvider
    store: VectorStore
    strategy: RetrievalStrategy
    candidate_pool: int = DEFAULT_CANDIDATE_POOL
    embed_timeout: float = 30.0
    store_timeout: float = 30.0

    def __post_init__(self) -> None:
        self.strategy = RetrievalStrategy.parse(self.strategy)
        if self.candidate_pool <= 0:
            raise ConfigurationError(
                f"candidate_pool must be positive, got {self.candidate_pool}"
            )

    async def embed_query(self, query: str) -> list[float]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.embedder.embed, query),
                timeout=self.embed_timeout,
            )
        except Exception as exc:
            raise EmbeddingFailure(None, exc, query=query) from exc

    async def retrieve(
        self, query: str, k: int, strategy: RetrievalStrategy | None = None
    ) -> list[RetrievalResult]:
        """Return at most k results sorted by the strategy's score."""
        if k <= 0:
            raise ConfigurationError(f"k must be positive, got {k}")
        resolved = RetrievalStrategy.parse(strategy) if strategy is not None else self.strategy
        query_vector = await self.embed_query(query)
        if resolved is RetrievalStrategy.EXACT:
            results = await self._retrieve_exact(query_vector, k)
        else:
            results = await self._retrieve_approximate(query_vector, k)
        logger.info(
            "retrieval_complete",
            extra={
                "strategy": resolved.value,
                "results": len(results),
                "k": k,
                "query_length": len(query),
            },
        )
        return results

    async def _call_store(self, func, *args):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args), timeout=self.store_timeout
            )
        except (ConfigurationError, ConnectivityError):
            raise
        except Exception as exc:
            raise ConnectivityError("Vector store query failed", exc) from exc

    async def _retrieve_exact(self, query_vector: list[float], k: int) -> list[RetrievalResult]:
        records = await self._call_store(self.store.find_all)
        scored: list[RetrievalResult] = []
        for record in records:
            check_embedding_space(record, self.embedder.model, len(query_vector))
            scored.append(
                RetrievalResult(
                    record=record,
                    score=cosine_similarity(query_vector, record.embedding),
                )
            )
        return rank_exact(scored, k)

    async def _retrieve_approximate(
        self, query_vector: list[float], k: int
    ) -> list[RetrievalResult]:
        pool = max(self.candidate_pool, k)
        hits = await self._call_store(self.store.vector_search, query_vector, k, pool)
        for hit in hits:
            check_embedding_space(hit.record, self.embedder.model, len(query_vector))
        return dedupe_results(hits)[:k]

from __future__ import annotations

"""Retrieval ranking tests for the exact and approximate strategies."""

import pytest

from supportrag.rag.errors import (
    ConfigurationError,
    ConnectivityError,
    EmbeddingFailure,
    EmbeddingSpaceMismatch,
)
from supportrag.rag.retriever import RetrievalStrategy, Retriever, dedupe_results, recall_at_k
from supportrag.rag.similarity import cosine_similarity
from supportrag.rag.types import Chunk, EmbeddedChunk, RetrievalResult, StoredRecord
from supportrag.vectorstore.inmemory import InMemoryVectorStore

pytestmark = pytest.mark.anyio


class StaticEmbedder:
    def __init__(self, vectors: dict[str, list[float]], model: str = "static") -> None:
        self.vectors = vectors
        self.model = model
        self.dimension = len(next(iter(vectors.values())))

    def embed(self, text: str) -> list[float]:
        return self.vectors[text]


class RecordingStore(InMemoryVectorStore):
    """In-memory store that returns scripted hits and records search calls."""

    def __init__(self, hits: list[RetrievalResult]) -> None:
        super().__init__()
        self.hits = hits
        self.calls: list[tuple[int, int]] = []

    def vector_search(self, query_vector, k, candidate_pool):
        self.calls.append((k, candidate_pool))
        return list(self.hits)


class BrokenStore(InMemoryVectorStore):
    def find_all(self):
        raise RuntimeError("socket closed")


def _record(source_id: str, chunk_index: int, vector: list[float], model: str = "static") -> EmbeddedChunk:
    chunk = Chunk(source_id=source_id, chunk_index=chunk_index, text=f"{source_id}-{chunk_index}")
    return EmbeddedChunk(chunk=chunk, embedding=vector, embedding_model=model)


def _stored(source_id: str, chunk_index: int, vector: list[float]) -> StoredRecord:
    record = _record(source_id, chunk_index, vector)
    return StoredRecord(
        record_id=record.chunk.chunk_id,
        chunk=record.chunk,
        embedding=vector,
        embedding_model="static",
    )


def _store(*records: EmbeddedChunk) -> InMemoryVectorStore:
    store = InMemoryVectorStore()
    store.insert_many(list(records))
    return store


def _retriever(store, strategy=RetrievalStrategy.EXACT, **kwargs) -> Retriever:
    embedder = StaticEmbedder({"q": [1.0, 0.0]})
    return Retriever(embedder=embedder, store=store, strategy=strategy, **kwargs)


@pytest.mark.parametrize("strategy", [RetrievalStrategy.EXACT, RetrievalStrategy.APPROXIMATE])
async def test_top_k_orders_by_cosine(strategy: RetrievalStrategy) -> None:
    store = _store(
        _record("a", 0, [1.0, 0.0]),
        _record("b", 0, [0.0, 1.0]),
        _record("c", 0, [0.7, 0.7]),
    )

    results = await _retriever(store, strategy).retrieve("q", 2)

    assert [result.record.record_id for result in results] == ["a:0", "c:0"]
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score == pytest.approx(0.7071, abs=1e-4)


@pytest.mark.parametrize("strategy", [RetrievalStrategy.EXACT, RetrievalStrategy.APPROXIMATE])
async def test_empty_corpus_returns_no_results(strategy: RetrievalStrategy) -> None:
    assert await _retriever(InMemoryVectorStore(), strategy).retrieve("q", 5) == []


async def test_fewer_records_than_k() -> None:
    store = _store(_record("a", 0, [1.0, 0.0]))
    results = await _retriever(store).retrieve("q", 5)
    assert len(results) == 1


async def test_ties_break_by_source_then_chunk_index() -> None:
    store = _store(
        _record("b", 0, [1.0, 0.0]),
        _record("a", 1, [1.0, 0.0]),
        _record("a", 0, [1.0, 0.0]),
    )

    results = await _retriever(store).retrieve("q", 3)

    assert [result.record.record_id for result in results] == ["a:0", "a:1", "b:0"]


async def test_zero_vector_record_scores_zero() -> None:
    store = _store(_record("a", 0, [0.0, 0.0]), _record("b", 0, [-1.0, 0.0]))

    results = await _retriever(store).retrieve("q", 2)

    assert [result.score for result in results] == [0.0, pytest.approx(-1.0)]


@pytest.mark.parametrize("k", [0, -3])
async def test_non_positive_k_is_rejected(k: int) -> None:
    with pytest.raises(ConfigurationError):
        await _retriever(InMemoryVectorStore()).retrieve("q", k)


async def test_mismatched_embedding_model_is_rejected() -> None:
    store = _store(_record("a", 0, [1.0, 0.0], model="other-model"))
    with pytest.raises(EmbeddingSpaceMismatch):
        await _retriever(store).retrieve("q", 1)


async def test_mismatched_dimension_is_rejected() -> None:
    store = _store(_record("a", 0, [1.0, 0.0, 0.0]))
    with pytest.raises(EmbeddingSpaceMismatch):
        await _retriever(store, RetrievalStrategy.APPROXIMATE).retrieve("q", 1)


async def test_approximate_dedupes_and_widens_candidate_pool() -> None:
    store = RecordingStore(
        [
            RetrievalResult(record=_stored("a", 0, [1.0, 0.0]), score=0.8),
            RetrievalResult(record=_stored("b", 0, [1.0, 0.0]), score=0.7),
            RetrievalResult(record=_stored("a", 0, [1.0, 0.0]), score=0.9),
            RetrievalResult(record=_stored("c", 0, [1.0, 0.0]), score=0.6),
        ]
    )

    results = await _retriever(
        store, RetrievalStrategy.APPROXIMATE, candidate_pool=10
    ).retrieve("q", 2)

    assert [(r.record.record_id, r.score) for r in results] == [("a:0", 0.9), ("b:0", 0.7)]
    assert store.calls == [(2, 10)]

    await _retriever(store, RetrievalStrategy.APPROXIMATE, candidate_pool=10).retrieve("q", 25)
    assert store.calls[-1] == (25, 25)


async def test_store_errors_become_connectivity_errors() -> None:
    with pytest.raises(ConnectivityError):
        await _retriever(BrokenStore()).retrieve("q", 1)


async def test_query_embedding_failure_carries_query() -> None:
    retriever = _retriever(InMemoryVectorStore())
    with pytest.raises(EmbeddingFailure) as excinfo:
        await retriever.retrieve("unknown query", 1)
    assert excinfo.value.query == "unknown query"


async def test_per_call_strategy_override() -> None:
    store = _store(_record("a", 0, [1.0, 0.0]))
    retriever = _retriever(store, RetrievalStrategy.APPROXIMATE)
    results = await retriever.retrieve("q", 1, strategy=RetrievalStrategy.EXACT)
    assert results[0].record.record_id == "a:0"


def test_strategy_parsing() -> None:
    assert RetrievalStrategy.parse("Exact") is RetrievalStrategy.EXACT
    with pytest.raises(ConfigurationError):
        RetrievalStrategy.parse("hybrid")


def test_dedupe_and_recall_helpers() -> None:
    exact = [
        RetrievalResult(record=_stored("a", 0, [1.0, 0.0]), score=1.0),
        RetrievalResult(record=_stored("b", 0, [1.0, 0.0]), score=0.9),
    ]
    approximate = [
        RetrievalResult(record=_stored("a", 0, [1.0, 0.0]), score=0.99),
        RetrievalResult(record=_stored("c", 0, [1.0, 0.0]), score=0.5),
    ]
    assert recall_at_k(exact, approximate) == 0.5
    assert recall_at_k([], approximate) == 1.0
    assert len(dedupe_results(exact + exact)) == 2


def test_cosine_similarity_bounds() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([3.0, 4.0], [3.0, 4.0]) <= 1.0
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_inmemory_store_upserts_and_reports_stats() -> None:
    store = _store(_record("a", 0, [1.0, 0.0]), _record("a", 1, [0.0, 1.0]))
    store.insert_many([_record("a", 0, [0.5, 0.5])])

    assert len(store.find_all()) == 2
    assert store.records["a:0"].embedding == [0.5, 0.5]
    assert store.stats() == {
        "backend": "memory",
        "record_count": 2,
        "embedding_models": ["static"],
    }

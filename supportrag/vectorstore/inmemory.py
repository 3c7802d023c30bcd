from __future__ import annotations

"""In-memory vector store for local testing and small datasets."""

from dataclasses import dataclass, field
from typing import Any, Sequence

from supportrag.rag.similarity import cosine_similarity, rank_exact
from supportrag.rag.types import EmbeddedChunk, RetrievalResult, StoredRecord


@dataclass
class InMemoryVectorStore:
    """Simple in-memory vector store keyed by chunk identity."""
    records: dict[str, StoredRecord] = field(default_factory=dict)

    def ping(self) -> None:
        """In-process storage is always reachable."""
        return None

    def insert_many(self, records: Sequence[EmbeddedChunk]) -> int:
        """Upsert records; re-inserting a chunk replaces the previous copy."""
        written = 0
        for record in records:
            record_id = record.chunk.chunk_id
            self.records[record_id] = StoredRecord(
                record_id=record_id,
                chunk=record.chunk,
                embedding=list(record.embedding),
                embedding_model=record.embedding_model,
            )
            written += 1
        return written

    def find_all(self) -> list[StoredRecord]:
        return list(self.records.values())

    def vector_search(
        self, query_vector: list[float], k: int, candidate_pool: int
    ) -> list[RetrievalResult]:
        """Score every record; small corpora need no approximate index."""
        if k <= 0 or not self.records:
            return []
        scored = [
            RetrievalResult(record=record, score=cosine_similarity(query_vector, record.embedding))
            for record in self.records.values()
        ]
        return rank_exact(scored, k)

    def stats(self) -> dict[str, Any]:
        """Return basic stats for the vector store."""
        models = sorted({record.embedding_model for record in self.records.values()})
        return {
            "backend": "memory",
            "record_count": len(self.records),
            "embedding_models": models,
        }

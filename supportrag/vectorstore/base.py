from __future__ import annotations

"""Vector store contract shared by the in-memory and Milvus backends."""

from typing import Any, Protocol, Sequence

from supportrag.rag.types import EmbeddedChunk, RetrievalResult, StoredRecord


class VectorStore(Protocol):
    """Persistence and nearest-neighbour search over embedded chunks."""

    def ping(self) -> None:
        """Raise ConnectivityError when the store is unreachable."""
        raise NotImplementedError

    def insert_many(self, records: Sequence[EmbeddedChunk]) -> int:
        """Upsert records keyed by chunk identity and return the count written."""
        raise NotImplementedError

    def find_all(self) -> list[StoredRecord]:
        """Return every stored record."""
        raise NotImplementedError

    def vector_search(
        self, query_vector: list[float], k: int, candidate_pool: int
    ) -> list[RetrievalResult]:
        """Return the store's own top-k matches."""
        raise NotImplementedError

    def stats(self) -> dict[str, Any]:
        """Return backend name and record counts."""
        raise NotImplementedError

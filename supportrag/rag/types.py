from __future__ import annotations

"""Core data types for documents, chunks and retrieval."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Document:
    """Support article as loaded from the corpus."""
    doc_id: str
    title: str
    date: str
    permalink: str
    categories: str
    raw_content: str

    def metadata(self) -> dict[str, Any]:
        """Return the article fields copied onto every chunk."""
        return {
            "title": self.title,
            "date": self.date,
            "permalink": self.permalink,
            "categories": self.categories,
        }


@dataclass(frozen=True)
class PlainTextDocument:
    """Document paired with its HTML-free text."""
    document: Document
    plain_text: str

    @property
    def doc_id(self) -> str:
        return self.document.doc_id


@dataclass(frozen=True)
class Chunk:
    """Text window cut from a source document."""
    source_id: str
    chunk_index: int
    text: str
    source_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def chunk_id(self) -> str:
        """Deterministic identity used to upsert chunks."""
        return f"{self.source_id}:{self.chunk_index}"

    @property
    def sort_key(self) -> tuple[str, int]:
        return (self.source_id, self.chunk_index)


@dataclass(frozen=True)
class EmbeddedChunk:
    """Chunk with its embedding and the model that produced it."""
    chunk: Chunk
    embedding: list[float]
    embedding_model: str


@dataclass(frozen=True)
class StoredRecord:
    """Embedded chunk as persisted by a vector store."""
    record_id: str
    chunk: Chunk
    embedding: list[float]
    embedding_model: str


@dataclass(frozen=True)
class RetrievalResult:
    """Stored record with its relevance score."""
    record: StoredRecord
    score: float

    @property
    def text(self) -> str:
        return self.record.chunk.text


@dataclass(frozen=True)
class Answer:
    """Synthesized answer and the context it was built from."""
    query: str
    text: str
    context: list[RetrievalResult]


class Groundedness(str, Enum):
    GROUNDED = "GROUNDED"
    NOT_GROUNDED = "NOT_GROUNDED"


class Relevance(str, Enum):
    RELEVANT = "RELEVANT"
    NOT_RELEVANT = "NOT_RELEVANT"


@dataclass(frozen=True)
class JudgeVerdict:
    """Parsed judge output."""
    reasoning: str
    verdict: str
    raw: str


@dataclass(frozen=True)
class Evaluation:
    """Advisory groundedness and relevance verdicts for one answer."""
    groundedness: JudgeVerdict
    relevance: JudgeVerdict

    @property
    def grounded(self) -> bool:
        return self.groundedness.verdict == Groundedness.GROUNDED.value

    @property
    def relevant(self) -> bool:
        return self.relevance.verdict == Relevance.RELEVANT.value

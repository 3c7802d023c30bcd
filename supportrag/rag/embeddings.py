from __future__ import annotations

"""Embedding providers for chunks and queries.

Every provider exposes ``model`` and ``dimension``; together they name the
embedding space a stored record belongs to, and the retriever refuses to
compare vectors from different spaces.
"""

import hashlib
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from supportrag.rag.errors import ConfigurationError

_WORD_RE = re.compile(r"[a-z0-9]+")

DEFAULT_OPENAI_EMBEDDING_MODEL = "text-embedding-ada-002"
OPENAI_DIMENSIONS = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}


class EmbeddingError(RuntimeError):
    """Raised when a provider fails or returns an unusable vector."""
    pass


class EmbeddingConfigError(ConfigurationError):
    """Raised when an embedding provider is misconfigured."""
    pass


class EmbeddingProvider(Protocol):
    """Text-to-vector capability shared by ingestion and retrieval."""
    model: str
    dimension: int

    def embed(self, text: str) -> list[float]:
        raise NotImplementedError


def validate_vector(vector: Sequence[Any], dimension: int) -> list[float]:
    """Return the vector as floats, or raise if it cannot be stored."""
    if len(vector) != dimension:
        raise EmbeddingError(f"expected {dimension} dimensions, got {len(vector)}")
    for position, value in enumerate(vector):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingError(f"non-numeric value at position {position}")
        if not math.isfinite(value):
            raise EmbeddingError(f"non-finite value at position {position}")
    return [float(value) for value in vector]


def resolve_openai_dimension(model: str) -> int | None:
    return OPENAI_DIMENSIONS.get(model)


@dataclass
class HashEmbedder:
    """Offline embedder using signed feature hashing over lowercase words.

    Texts sharing words land near each other, which is enough for local
    runs and tests without network access.
    """
    dimension: int = 256
    model: str = ""

    def __post_init__(self) -> None:
        if self.dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be greater than zero")
        if not self.model:
            self.model = f"hash-{self.dimension}"

    def _bucket(self, word: str) -> tuple[int, float]:
        digest = hashlib.blake2b(word.encode("utf-8"), digest_size=8).digest()
        index = int.from_bytes(digest[:7], "big") % self.dimension
        sign = 1.0 if digest[7] & 1 else -1.0
        return index, sign

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            index, sign = self._bucket(word)
            vector[index] += sign
        norm = math.sqrt(sum(value * value for value in vector))
        if norm:
            vector = [value / norm for value in vector]
        return validate_vector(vector, self.dimension)


@dataclass
class OpenAIEmbedder:
    """Embeddings from the OpenAI API with a bounded request timeout."""
    api_key: str
    model: str = DEFAULT_OPENAI_EMBEDDING_MODEL
    dimension: int = 0
    timeout: float = 30.0
    base_url: str | None = None
    client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.api_key:
            raise EmbeddingConfigError("OPENAI_API_KEY is required for OpenAI embeddings")
        if not self.model:
            raise EmbeddingConfigError("OPENAI_EMBEDDING_MODEL is required for OpenAI embeddings")
        known = resolve_openai_dimension(self.model)
        if self.dimension <= 0 and known is None:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION must be set for unrecognised model {self.model!r}"
            )
        if self.dimension > 0 and known is not None and self.dimension != known:
            raise EmbeddingConfigError(
                f"{self.model} produces {known} dimensions, EMBEDDING_DIMENSION is {self.dimension}"
            )
        self.dimension = self.dimension or known
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise EmbeddingError("openai package is required for OpenAIEmbedder") from exc
        # Retries belong to the caller's failure policy.
        self.client = OpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
        )

    def embed(self, text: str) -> list[float]:
        from openai import OpenAIError

        try:
            response = self.client.embeddings.create(model=self.model, input=text)
        except OpenAIError as exc:
            raise EmbeddingError(f"{self.model} embedding request failed: {exc}") from exc
        if not response.data:
            raise EmbeddingError(f"{self.model} returned no embedding")
        return validate_vector(response.data[0].embedding, self.dimension)

from __future__ import annotations

"""Cosine scoring and deterministic ranking."""

import math
from typing import Sequence

from supportrag.rag.types import RetrievalResult


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity; zero vectors score 0.0."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    # Rounding can push parallel vectors slightly past 1.
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def rank_exact(results: Sequence[RetrievalResult], k: int) -> list[RetrievalResult]:
    """Sort by score descending, ties by (source_id, chunk_index), and keep k."""
    ordered = sorted(results, key=lambda item: (-item.score, *item.record.chunk.sort_key))
    return ordered[:k]

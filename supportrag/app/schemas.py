from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int | None = Field(default=None, ge=1, le=50)
    evaluate: bool = False


class ContextItem(BaseModel):
    record_id: str
    source_id: str
    chunk_index: int
    content: str
    metadata: dict[str, Any]
    score: float


class VerdictModel(BaseModel):
    verdict: str
    reasoning: str


class EvaluationModel(BaseModel):
    groundedness: VerdictModel
    relevance: VerdictModel


class QueryResponse(BaseModel):
    query: str
    answer: str
    context: list[ContextItem]
    evaluation: EvaluationModel | None = None
    evaluation_error: str | None = None
    request_id: str


class StoreHealthResponse(BaseModel):
    status: str
    backend: str
    record_count: int | None = None

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from supportrag.app.metrics import QUERY_FAILURES
from supportrag.loaders.chunking import chunk_document, validate_window
from supportrag.loaders.html import to_plain_text
from supportrag.rag.answerer import AnswerSynthesizer
from supportrag.rag.batcher import BatchProgress, EmbeddingBatcher, IngestionReport
from supportrag.rag.embeddings import EmbeddingProvider
from supportrag.rag.errors import ConnectivityError, EmbeddingFailure, JudgeFailure, SynthesisFailure
from supportrag.rag.evaluator import Evaluator
from supportrag.rag.retriever import Retriever
from supportrag.rag.types import Answer, Chunk, Document, EmbeddedChunk, Evaluation
from supportrag.vectorstore.base import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class IngestionPipeline:
    embedder: EmbeddingProvider
    store: VectorStore
    batcher: EmbeddingBatcher
    chunk_size: int = 1000
    chunk_overlap: int = 200
    ping_timeout: float = 5.0

    def __post_init__(self) -> None:
        validate_window(self.chunk_size, self.chunk_overlap)

    def chunk(self, documents: Iterable[Document]) -> list[Chunk]:
        chunks: list[Chunk] = []
        article_count = 0
        for document in documents:
            article_count += 1
            chunks.extend(
                chunk_document(to_plain_text(document), self.chunk_size, self.chunk_overlap)
            )
        logger.info(
            "chunking_complete",
            extra={"articles": article_count, "chunks": len(chunks)},
        )
        return chunks

    async def preflight(self) -> None:
        """Ping the store once before committing to a long batch job."""
        try:
            await asyncio.wait_for(asyncio.to_thread(self.store.ping), timeout=self.ping_timeout)
        except ConnectivityError:
            raise
        except Exception as exc:
            raise ConnectivityError("Vector store ping failed", exc) from exc
        logger.info("store_ping_ok")

    async def _embed(self, chunk: Chunk) -> list[float]:
        return await asyncio.to_thread(self.embedder.embed, chunk.text)

    async def _write(self, records: list[EmbeddedChunk]) -> int:
        return await asyncio.to_thread(self.store.insert_many, records)

    async def run(
        self,
        documents: Iterable[Document],
        *,
        stop_event: asyncio.Event | None = None,
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> IngestionReport:
        chunks = self.chunk(documents)
        await self.preflight()
        return await self.batcher.run(
            chunks,
            self._embed,
            self._write,
            stop_event=stop_event,
            on_progress=on_progress,
        )


@dataclass(frozen=True)
class QueryResult:
    answer: Answer
    evaluation: Evaluation | None = None
    evaluation_error: JudgeFailure | None = None


@dataclass
class QueryPipeline:
    retriever: Retriever
    synthesizer: AnswerSynthesizer
    evaluator: Evaluator | None = None
    top_k: int = 5

    async def answer(
        self,
        query: str,
        top_k: int | None = None,
        evaluate: bool = False,
    ) -> QueryResult:
        """Retrieve, synthesize and optionally judge one query.

        Judge failures never discard the answer: they are returned on
        ``evaluation_error`` next to it.
        """
        k = top_k if top_k is not None else self.top_k
        try:
            context = await self.retriever.retrieve(query, k)
        except (EmbeddingFailure, ConnectivityError):
            QUERY_FAILURES.labels("retrieval").inc()
            raise
        try:
            answer = await self.synthesizer.synthesize(query, context)
        except SynthesisFailure:
            QUERY_FAILURES.labels("synthesis").inc()
            raise
        evaluation = None
        evaluation_error = None
        if evaluate:
            try:
                if self.evaluator is None:
                    raise JudgeFailure("evaluator", query, "no evaluator configured")
                evaluation = await self.evaluator.evaluate(query, answer.text, context)
            except JudgeFailure as exc:
                QUERY_FAILURES.labels("judge").inc()
                logger.warning(
                    "evaluation_failed",
                    extra={"judge": exc.judge, "error": str(exc)},
                )
                evaluation_error = exc
        logger.info(
            "query_completed",
            extra={
                "query_length": len(query),
                "context": len(context),
                "answer_length": len(answer.text),
                "grounded": evaluation.grounded if evaluation else None,
                "relevant": evaluation.relevant if evaluation else None,
            },
        )
        return QueryResult(answer=answer, evaluation=evaluation, evaluation_error=evaluation_error)

from __future__ import annotations

"""Grounded answer synthesis over retrieved context."""

import logging
from dataclasses import dataclass
from typing import Sequence

from supportrag.rag.errors import SynthesisFailure
from supportrag.rag.llm import CompletionProvider, LLMError
from supportrag.rag.types import Answer, RetrievalResult

logger = logging.getLogger(__name__)


def build_context_block(context: Sequence[RetrievalResult]) -> str:
    """Label each chunk by its retrieval position."""
    return "\n\n".join(
        f"Context {idx}:\n{result.text}" for idx, result in enumerate(context, start=1)
    )


def build_answer_prompt(query: str, context: Sequence[RetrievalResult]) -> str:
    return (
        "You are a helpful support assistant. "
        "Use the following context to answer the user's question.\n\n"
        f"{build_context_block(context)}\n\n"
        f"Question: {query}\n"
        "Answer:"
    )


@dataclass(frozen=True)
class AnswerSynthesizer:
    """Ask the completion backend for an answer grounded in the context."""
    completion: CompletionProvider

    async def synthesize(self, query: str, context: Sequence[RetrievalResult]) -> Answer:
        """Issue exactly one completion call; empty context is still sent."""
        if not context:
            logger.warning("synthesis_without_context", extra={"query_length": len(query)})
        prompt = build_answer_prompt(query, context)
        try:
            text = await self.completion.complete(prompt)
        except LLMError as exc:
            raise SynthesisFailure(query, exc) from exc
        return Answer(query=query, text=text, context=list(context))

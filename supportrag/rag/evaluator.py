from __future__ import annotations

"""LLM judges for answer groundedness and context relevance.

Both judges must reply in exactly this shape::

    REASONING: <short explanation>
    VERDICT: <label>

Anything else is a JudgeFailure. Verdicts are advisory: they are reported
next to the answer and never change it.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from supportrag.rag.answerer import build_context_block
from supportrag.rag.errors import JudgeFailure
from supportrag.rag.llm import CompletionProvider, LLMError
from supportrag.rag.types import Evaluation, Groundedness, JudgeVerdict, Relevance, RetrievalResult

logger = logging.getLogger(__name__)

_REASONING_PREFIX = "REASONING:"
_VERDICT_PREFIX = "VERDICT:"

_GROUNDEDNESS_PROMPT = """You are a groundedness evaluator. Decide whether the answer is fully supported by the context.

An answer is GROUNDED if every claim in it can be traced back to the context and it adds nothing the context does not support.
An answer is NOT_GROUNDED if it contains unsupported claims, adds details missing from the context, or generalizes beyond it.

Context:
{context}

Question: {question}

Answer to evaluate:
{answer}

Briefly explain your reasoning (2-3 sentences), then give your verdict.
Respond in this exact format:
REASONING: <your brief explanation>
VERDICT: <GROUNDED or NOT_GROUNDED>"""

_RELEVANCE_PROMPT = """You are a relevance judge. Decide whether the retrieved context helps answer the question.

The context is RELEVANT if it contains information that would help answer the question, even partially.
The context is NOT_RELEVANT if it contains nothing useful for answering the question.

Question: {question}

Retrieved context:
{context}

Briefly explain your reasoning (2-3 sentences), then give your verdict.
Respond in this exact format:
REASONING: <your brief explanation>
VERDICT: <RELEVANT or NOT_RELEVANT>"""


def parse_judge_response(
    content: str,
    allowed: set[str],
    *,
    judge: str = "judge",
    query: str = "",
) -> JudgeVerdict:
    """Parse the REASONING/VERDICT reply, rejecting anything else."""
    lines = [line.strip() for line in content.strip().splitlines() if line.strip()]
    if not lines or not lines[0].upper().startswith(_REASONING_PREFIX):
        raise JudgeFailure(judge, query, "response does not start with REASONING:")
    verdict_lines = [idx for idx, line in enumerate(lines) if line.upper().startswith(_VERDICT_PREFIX)]
    if len(verdict_lines) != 1 or verdict_lines[0] != len(lines) - 1:
        raise JudgeFailure(judge, query, "response must end with a single VERDICT: line")

    reasoning_parts = [lines[0][len(_REASONING_PREFIX):].strip(), *lines[1:-1]]
    reasoning = " ".join(part for part in reasoning_parts if part)
    if not reasoning:
        raise JudgeFailure(judge, query, "empty REASONING")
    verdict = lines[-1][len(_VERDICT_PREFIX):].strip().strip(".*").upper()
    if verdict not in allowed:
        raise JudgeFailure(
            judge, query, f"verdict {verdict!r} not in {sorted(allowed)}"
        )
    return JudgeVerdict(reasoning=reasoning, verdict=verdict, raw=content.strip())


@dataclass(frozen=True)
class Evaluator:
    """Run the groundedness and relevance judges for one answer."""
    completion: CompletionProvider

    async def _judge(self, judge: str, query: str, prompt: str, allowed: set[str]) -> JudgeVerdict:
        try:
            content = await self.completion.complete(prompt)
        except LLMError as exc:
            raise JudgeFailure(judge, query, exc) from exc
        result = parse_judge_response(content, allowed, judge=judge, query=query)
        logger.info(
            "judge_verdict",
            extra={"judge": judge, "verdict": result.verdict, "query_length": len(query)},
        )
        return result

    async def judge_groundedness(
        self, query: str, answer: str, context: Sequence[RetrievalResult]
    ) -> JudgeVerdict:
        prompt = _GROUNDEDNESS_PROMPT.format(
            context=build_context_block(context),
            question=query,
            answer=answer,
        )
        return await self._judge(
            "groundedness", query, prompt, {item.value for item in Groundedness}
        )

    async def judge_relevance(
        self, query: str, context: Sequence[RetrievalResult]
    ) -> JudgeVerdict:
        prompt = _RELEVANCE_PROMPT.format(
            context=build_context_block(context),
            question=query,
        )
        return await self._judge(
            "relevance", query, prompt, {item.value for item in Relevance}
        )

    async def evaluate(
        self, query: str, answer: str, context: Sequence[RetrievalResult]
    ) -> Evaluation:
        """Run both judges concurrently.

        Both judges always run to completion; the first failure, in
        groundedness then relevance order, is raised afterwards.
        """
        groundedness, relevance = await asyncio.gather(
            self.judge_groundedness(query, answer, context),
            self.judge_relevance(query, context),
            return_exceptions=True,
        )
        for outcome in (groundedness, relevance):
            if isinstance(outcome, BaseException):
                raise outcome
        return Evaluation(groundedness=groundedness, relevance=relevance)

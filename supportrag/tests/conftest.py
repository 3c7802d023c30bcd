from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("MILVUS_URI", None)
os.environ.setdefault("RAG_VECTORSTORE", "memory")
os.environ.setdefault("EMBEDDING_PROVIDER", "hash")
os.environ.setdefault("RAG_LLM_PROVIDER", "ollama")

from supportrag.rag.llm import LLMError  # noqa: E402


class ScriptedCompletion:
    """Completion fake that replays canned replies and records prompts."""

    def __init__(self, replies: list[str] | None = None, model: str = "scripted") -> None:
        self.model = model
        self.replies = list(replies or [])
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            raise LLMError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class KeyedCompletion:
    """Completion fake that picks a reply by a marker found in the prompt."""

    def __init__(self, replies: dict[str, str], default: str = "", model: str = "keyed") -> None:
        self.model = model
        self.replies = replies
        self.default = default
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        for marker, reply in self.replies.items():
            if marker in prompt:
                return reply
        return self.default


@pytest.fixture
def scripted_completion():
    return ScriptedCompletion


@pytest.fixture
def keyed_completion():
    return KeyedCompletion


@pytest.fixture
def anyio_backend():
    return "asyncio"

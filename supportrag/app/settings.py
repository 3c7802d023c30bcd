from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from supportrag.rag.errors import ConfigurationError

ENV_FILES = (".env.local", ".env")


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from exc


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from exc


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    embedding_provider: str = "openai"
    embedding_dimension: int = 0
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_embedding_model: str = "text-embedding-ada-002"
    openai_chat_model: str = "gpt-3.5-turbo"
    openai_judge_model: str = "gpt-4"
    llm_provider: str = "openai"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    vectorstore_backend: str = "milvus"
    milvus_uri: str | None = None
    milvus_token: str | None = None
    milvus_collection: str = "supportdocs_embeddings"
    milvus_index_name: str = "supportdocs_index"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    batch_size: int = 20
    embed_concurrency: int = 20
    failure_policy: str = "halt"
    retrieval_strategy: str = "approximate"
    top_k: int = 5
    candidate_pool: int = 50
    store_timeout: float = 5.0
    embed_timeout: float = 30.0
    write_timeout: float = 60.0
    llm_timeout: float = 60.0
    metrics_enabled: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from an environment mapping (os.environ by default)."""
        source = os.environ if env is None else env
        return cls(
            embedding_provider=source.get("EMBEDDING_PROVIDER", cls.embedding_provider),
            embedding_dimension=_get_int(source, "EMBEDDING_DIMENSION", cls.embedding_dimension),
            openai_api_key=source.get("OPENAI_API_KEY") or None,
            openai_base_url=source.get("OPENAI_BASE_URL", cls.openai_base_url),
            openai_embedding_model=source.get("OPENAI_EMBEDDING_MODEL", cls.openai_embedding_model),
            openai_chat_model=source.get("OPENAI_CHAT_MODEL", cls.openai_chat_model),
            openai_judge_model=source.get("OPENAI_JUDGE_MODEL", cls.openai_judge_model),
            llm_provider=source.get("RAG_LLM_PROVIDER", cls.llm_provider),
            ollama_base_url=source.get("OLLAMA_BASE_URL", cls.ollama_base_url),
            ollama_model=source.get("OLLAMA_MODEL", cls.ollama_model),
            vectorstore_backend=source.get("RAG_VECTORSTORE", cls.vectorstore_backend),
            milvus_uri=source.get("MILVUS_URI") or None,
            milvus_token=source.get("MILVUS_TOKEN") or None,
            milvus_collection=source.get("MILVUS_COLLECTION", cls.milvus_collection),
            milvus_index_name=source.get("MILVUS_INDEX_NAME", cls.milvus_index_name),
            chunk_size=_get_int(source, "RAG_CHUNK_SIZE", cls.chunk_size),
            chunk_overlap=_get_int(source, "RAG_CHUNK_OVERLAP", cls.chunk_overlap),
            batch_size=_get_int(source, "RAG_BATCH_SIZE", cls.batch_size),
            embed_concurrency=_get_int(source, "RAG_EMBED_CONCURRENCY", cls.embed_concurrency),
            failure_policy=source.get("RAG_FAILURE_POLICY", cls.failure_policy),
            retrieval_strategy=source.get("RAG_RETRIEVAL_STRATEGY", cls.retrieval_strategy),
            top_k=_get_int(source, "RAG_TOP_K", cls.top_k),
            candidate_pool=_get_int(source, "RAG_CANDIDATE_POOL", cls.candidate_pool),
            store_timeout=_get_float(source, "RAG_STORE_TIMEOUT", cls.store_timeout),
            embed_timeout=_get_float(source, "RAG_EMBED_TIMEOUT", cls.embed_timeout),
            write_timeout=_get_float(source, "RAG_WRITE_TIMEOUT", cls.write_timeout),
            llm_timeout=_get_float(source, "RAG_LLM_TIMEOUT", cls.llm_timeout),
            metrics_enabled=_get_bool(source, "RAG_METRICS_ENABLED", cls.metrics_enabled),
            log_level=source.get("LOG_LEVEL", cls.log_level),
        )

    def validate(self) -> Settings:
        """Fail fast on missing credentials for the configured backends."""
        needs_openai = (
            self.embedding_provider.strip().lower() == "openai"
            or self.llm_provider.strip().lower() == "openai"
        )
        if needs_openai and not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY not set in environment")
        if self.vectorstore_backend.strip().lower() == "milvus" and not self.milvus_uri:
            raise ConfigurationError("MILVUS_URI not set in environment")
        if self.top_k <= 0:
            raise ConfigurationError(f"RAG_TOP_K must be positive, got {self.top_k}")
        return self


def load_settings(base_dir: str | Path | None = None, validate: bool = True) -> Settings:
    """Load .env files (without overriding real env vars) and build Settings."""
    root = Path(base_dir) if base_dir is not None else Path.cwd()
    for name in ENV_FILES:
        env_path = root / name
        if env_path.is_file():
            load_dotenv(env_path, override=False)
    settings = Settings.from_env()
    return settings.validate() if validate else settings

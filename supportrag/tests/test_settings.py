from __future__ import annotations

from pathlib import Path

import pytest

from supportrag.app.dependencies import build_embedder, build_ingestion_pipeline, build_vectorstore
from supportrag.app.settings import Settings, load_settings
from supportrag.rag.batcher import FailurePolicy
from supportrag.rag.embeddings import EmbeddingConfigError, HashEmbedder
from supportrag.rag.errors import ConfigurationError
from supportrag.vectorstore.inmemory import InMemoryVectorStore


def test_defaults_match_reference_deployment() -> None:
    settings = Settings.from_env({})
    assert settings.chunk_size == 1000
    assert settings.chunk_overlap == 200
    assert settings.batch_size == 20
    assert settings.top_k == 5
    assert settings.candidate_pool == 50
    assert settings.milvus_index_name == "supportdocs_index"
    assert settings.openai_chat_model == "gpt-3.5-turbo"
    assert settings.openai_judge_model == "gpt-4"
    assert settings.failure_policy == "halt"


def test_from_env_parses_values() -> None:
    settings = Settings.from_env(
        {
            "RAG_CHUNK_SIZE": "500",
            "RAG_STORE_TIMEOUT": "2.5",
            "RAG_METRICS_ENABLED": "false",
            "RAG_RETRIEVAL_STRATEGY": "exact",
        }
    )
    assert settings.chunk_size == 500
    assert settings.store_timeout == 2.5
    assert settings.metrics_enabled is False
    assert settings.retrieval_strategy == "exact"


def test_from_env_rejects_malformed_numbers() -> None:
    with pytest.raises(ConfigurationError):
        Settings.from_env({"RAG_BATCH_SIZE": "twenty"})


def test_validate_requires_credentials() -> None:
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        Settings.from_env({"RAG_VECTORSTORE": "memory"}).validate()
    with pytest.raises(ConfigurationError, match="MILVUS_URI"):
        Settings.from_env({"OPENAI_API_KEY": "sk-test"}).validate()
    offline = Settings.from_env(
        {"EMBEDDING_PROVIDER": "hash", "RAG_LLM_PROVIDER": "ollama", "RAG_VECTORSTORE": "memory"}
    )
    assert offline.validate() is offline


def test_load_settings_reads_env_file_without_overriding(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("RAG_TOP_K", "9")
    # Recorded so teardown drops the value loaded from .env.
    monkeypatch.setenv("RAG_BATCH_SIZE", "1")
    monkeypatch.delenv("RAG_BATCH_SIZE")
    (tmp_path / ".env").write_text("RAG_TOP_K=7\nRAG_BATCH_SIZE=11\n", encoding="utf-8")

    settings = load_settings(base_dir=tmp_path, validate=False)

    assert settings.top_k == 9
    assert settings.batch_size == 11


def test_factories_build_offline_components() -> None:
    settings = Settings(
        embedding_provider="hash",
        embedding_dimension=32,
        vectorstore_backend="memory",
        llm_provider="ollama",
        failure_policy="skip",
    )
    embedder = build_embedder(settings)
    assert isinstance(embedder, HashEmbedder)
    assert embedder.dimension == 32
    assert isinstance(build_vectorstore(settings, embedder), InMemoryVectorStore)

    pipeline = build_ingestion_pipeline(settings)
    assert pipeline.batcher.policy is FailurePolicy.SKIP
    assert build_ingestion_pipeline(settings, policy="halt").batcher.policy is FailurePolicy.HALT


def test_unknown_embedding_provider() -> None:
    with pytest.raises(EmbeddingConfigError):
        build_embedder(Settings(embedding_provider="cohere"))

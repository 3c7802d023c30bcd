from __future__ import annotations

from fastapi import Request

from supportrag.app.settings import Settings
from supportrag.rag.answerer import AnswerSynthesizer
from supportrag.rag.batcher import EmbeddingBatcher, FailurePolicy
from supportrag.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingProvider,
    HashEmbedder,
    OpenAIEmbedder,
)
from supportrag.rag.evaluator import Evaluator
from supportrag.rag.llm import OllamaCompletion, OpenAICompletion, build_completion
from supportrag.rag.pipeline import IngestionPipeline, QueryPipeline
from supportrag.rag.retriever import Retriever, RetrievalStrategy
from supportrag.vectorstore.inmemory import InMemoryVectorStore
from supportrag.vectorstore.milvus import MilvusConfig, MilvusVectorStore


def build_embedder(settings: Settings) -> EmbeddingProvider:
    provider = settings.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbedder(dimension=settings.embedding_dimension or 256)
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=settings.openai_api_key or "",
            model=settings.openai_embedding_model,
            dimension=settings.embedding_dimension,
            timeout=settings.embed_timeout,
            base_url=settings.openai_base_url,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


def build_vectorstore(
    settings: Settings, embedder: EmbeddingProvider
) -> InMemoryVectorStore | MilvusVectorStore:
    backend = settings.vectorstore_backend.lower().strip()
    if backend == "milvus":
        config = MilvusConfig(
            uri=settings.milvus_uri or "",
            token=settings.milvus_token,
            collection=settings.milvus_collection,
            index_name=settings.milvus_index_name,
            dimension=embedder.dimension,
            timeout=settings.store_timeout,
        )
        return MilvusVectorStore(config=config)
    return InMemoryVectorStore()


def build_answer_completion(settings: Settings) -> OpenAICompletion | OllamaCompletion:
    return build_completion(
        settings.llm_provider,
        model=settings.openai_chat_model
        if settings.llm_provider.strip().lower() == "openai"
        else settings.ollama_model,
        api_key_openai=settings.openai_api_key,
        openai_base_url=settings.openai_base_url,
        ollama_base_url=settings.ollama_base_url,
        temperature=0.0,
        timeout=settings.llm_timeout,
    )


def build_judge_completion(settings: Settings) -> OpenAICompletion | OllamaCompletion:
    return build_completion(
        settings.llm_provider,
        model=settings.openai_judge_model
        if settings.llm_provider.strip().lower() == "openai"
        else settings.ollama_model,
        api_key_openai=settings.openai_api_key,
        openai_base_url=settings.openai_base_url,
        ollama_base_url=settings.ollama_base_url,
        temperature=0.0,
        timeout=settings.llm_timeout,
    )


def build_ingestion_pipeline(
    settings: Settings,
    embedder: EmbeddingProvider | None = None,
    store: InMemoryVectorStore | MilvusVectorStore | None = None,
    policy: FailurePolicy | str | None = None,
) -> IngestionPipeline:
    embedder = embedder or build_embedder(settings)
    store = store if store is not None else build_vectorstore(settings, embedder)
    batcher = EmbeddingBatcher(
        embedding_model=embedder.model,
        batch_size=settings.batch_size,
        policy=FailurePolicy.parse(policy or settings.failure_policy),
        max_concurrency=settings.embed_concurrency,
        embed_timeout=settings.embed_timeout,
        write_timeout=settings.write_timeout,
    )
    return IngestionPipeline(
        embedder=embedder,
        store=store,
        batcher=batcher,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        ping_timeout=settings.store_timeout,
    )


def build_query_pipeline(
    settings: Settings,
    embedder: EmbeddingProvider | None = None,
    store: InMemoryVectorStore | MilvusVectorStore | None = None,
    strategy: RetrievalStrategy | str | None = None,
) -> QueryPipeline:
    embedder = embedder or build_embedder(settings)
    store = store if store is not None else build_vectorstore(settings, embedder)
    retriever = Retriever(
        embedder=embedder,
        store=store,
        strategy=RetrievalStrategy.parse(strategy or settings.retrieval_strategy),
        candidate_pool=settings.candidate_pool,
        embed_timeout=settings.embed_timeout,
        store_timeout=settings.store_timeout,
    )
    return QueryPipeline(
        retriever=retriever,
        synthesizer=AnswerSynthesizer(build_answer_completion(settings)),
        evaluator=Evaluator(build_judge_completion(settings)),
        top_k=settings.top_k,
    )


def get_query_pipeline(request: Request) -> QueryPipeline:
    """Build the query pipeline once per app from its Settings."""
    pipeline = getattr(request.app.state, "query_pipeline", None)
    if pipeline is None:
        pipeline = build_query_pipeline(request.app.state.settings)
        request.app.state.query_pipeline = pipeline
    return pipeline

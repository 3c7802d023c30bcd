from __future__ import annotations

"""FastAPI application entrypoint for the support-article RAG service."""

import asyncio
import logging
import uuid

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from supportrag.app.dependencies import get_query_pipeline
from supportrag.app.metrics import metrics_middleware, metrics_response
from supportrag.app.schemas import (
    ContextItem,
    EvaluationModel,
    QueryRequest,
    QueryResponse,
    StoreHealthResponse,
    VerdictModel,
)
from supportrag.app.settings import Settings, load_settings
from supportrag.rag.errors import (
    ConfigurationError,
    ConnectivityError,
    EmbeddingFailure,
    SynthesisFailure,
)
from supportrag.rag.pipeline import QueryPipeline, QueryResult

logger = logging.getLogger(__name__)


def configure_logging(level_name: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    level = getattr(logging, level_name.strip().upper(), logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    root_logger.setLevel(level)


def _to_response(result: QueryResult, request_id: str) -> QueryResponse:
    context = [
        ContextItem(
            record_id=item.record.record_id,
            source_id=item.record.chunk.source_id,
            chunk_index=item.record.chunk.chunk_index,
            content=item.text,
            metadata=item.record.chunk.source_metadata,
            score=item.score,
        )
        for item in result.answer.context
    ]
    evaluation = None
    if result.evaluation is not None:
        evaluation = EvaluationModel(
            groundedness=VerdictModel(
                verdict=result.evaluation.groundedness.verdict,
                reasoning=result.evaluation.groundedness.reasoning,
            ),
            relevance=VerdictModel(
                verdict=result.evaluation.relevance.verdict,
                reasoning=result.evaluation.relevance.reasoning,
            ),
        )
    return QueryResponse(
        query=result.answer.query,
        answer=result.answer.text,
        context=context,
        evaluation=evaluation,
        evaluation_error=str(result.evaluation_error) if result.evaluation_error else None,
        request_id=request_id,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title="Support Docs RAG", version="0.1.0")
    app.state.settings = settings

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Attach or create a request ID for traceability."""
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def record_metrics(request: Request, call_next):
        return await metrics_middleware(request, call_next)

    @app.get("/metrics")
    async def metrics(request: Request):
        """Expose Prometheus-style metrics."""
        return metrics_response(request)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.exception_handler(ConnectivityError)
    async def connectivity_error(request: Request, exc: ConnectivityError) -> JSONResponse:
        logger.warning("store_unreachable", extra={"path": request.url.path})
        return JSONResponse(status_code=503, content={"detail": "Vector store unreachable"})

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error(
            "service_misconfigured",
            extra={"path": request.url.path, "error": str(exc)},
        )
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.get("/health/store", response_model=StoreHealthResponse)
    async def store_health(
        pipeline: QueryPipeline = Depends(get_query_pipeline),
    ) -> StoreHealthResponse:
        """Ping the vector store and report its record count."""
        store = pipeline.retriever.store
        try:
            await asyncio.wait_for(
                asyncio.to_thread(store.ping), timeout=settings.store_timeout
            )
            stats = await asyncio.to_thread(store.stats)
        except Exception as exc:
            logger.warning("store_health_failed", extra={"error": type(exc).__name__})
            raise HTTPException(status_code=503, detail="Vector store unreachable") from exc
        return StoreHealthResponse(
            status="ok",
            backend=str(stats.get("backend", settings.vectorstore_backend)),
            record_count=stats.get("record_count"),
        )

    @app.post("/query", response_model=QueryResponse)
    async def query(
        payload: QueryRequest,
        request: Request,
        pipeline: QueryPipeline = Depends(get_query_pipeline),
    ) -> QueryResponse:
        request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
        try:
            result = await pipeline.answer(
                payload.query, top_k=payload.top_k, evaluate=payload.evaluate
            )
        except ConfigurationError as exc:
            logger.error(
                "query_misconfigured",
                extra={"request_id": request_id, "error": str(exc)},
            )
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except (EmbeddingFailure, ConnectivityError, SynthesisFailure) as exc:
            logger.warning(
                "query_failed",
                extra={"request_id": request_id, "error": type(exc).__name__},
            )
            raise HTTPException(status_code=502, detail=type(exc).__name__) from exc
        return _to_response(result, request_id)

    return app

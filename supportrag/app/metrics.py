from __future__ import annotations

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
CHUNKS_STORED = Counter(
    "ingestion_chunks_stored_total",
    "Chunks written to the vector store",
)
BATCHES_FAILED = Counter(
    "ingestion_batches_failed_total",
    "Ingestion batches abandoned or partially written",
    ["reason"],
)
BATCH_LATENCY = Histogram(
    "ingestion_batch_duration_seconds",
    "Time to embed and write one batch",
)
QUERY_FAILURES = Counter(
    "query_failures_total",
    "Queries that failed during retrieval, synthesis or judging",
    ["stage"],
)


def _metrics_enabled(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    return settings is None or settings.metrics_enabled


def _path_label(request: Request) -> str:
    """Label by route template so path parameters do not explode cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def metrics_middleware(request: Request, call_next):
    """Count and time every request except scrapes of /metrics itself."""
    if not _metrics_enabled(request) or request.url.path == "/metrics":
        return await call_next(request)
    started = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        status = str(response.status_code) if response is not None else "500"
        path = _path_label(request)
        REQUEST_COUNT.labels(request.method, path, status).inc()
        REQUEST_LATENCY.labels(request.method, path).observe(time.perf_counter() - started)


def metrics_response(request: Request) -> Response:
    if not _metrics_enabled(request):
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

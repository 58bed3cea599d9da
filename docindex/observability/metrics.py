"""Prometheus metrics for the indexing pipeline.

Provides metrics instrumentation for:
- HTTP request latency and counts
- Embedding request latency and batch sizes
- Vector store operation latency
- Pipeline runs and records written
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware

# HTTP Request Metrics
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding request duration in seconds",
    ["model", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding requests",
    ["model", "status"],
)

EMBEDDING_BATCH_SIZE = Histogram(
    "embedding_batch_size",
    "Embedding batch size",
    ["model"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500],
)

# Vector Store Metrics
VECTORSTORE_OPERATION_DURATION = Histogram(
    "vectorstore_operation_duration_seconds",
    "Vector store operation duration",
    ["operation", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

RECORDS_UPSERTED_TOTAL = Counter(
    "records_upserted_total",
    "Total records upserted",
    ["collection"],
)

# Pipeline Metrics
PIPELINE_RUN_DURATION = Histogram(
    "pipeline_run_duration_seconds",
    "Ingestion pipeline run duration in seconds",
    ["outcome"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

PIPELINE_RUN_TOTAL = Counter(
    "pipeline_runs_total",
    "Total ingestion pipeline runs",
    ["outcome", "stage"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records latency and count of every HTTP request.

    Requests are labelled with the matched route template, so path
    parameters and unknown URLs cannot inflate label cardinality.
    """

    UNMATCHED = "unmatched"

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        labels = {
            "method": request.method,
            "endpoint": self._endpoint_label(request),
            "status_code": response.status_code,
        }

        HTTP_REQUEST_DURATION.labels(**labels).observe(time.perf_counter() - start)
        HTTP_REQUEST_TOTAL.labels(**labels).inc()
        return response

    def _endpoint_label(self, request: Request) -> str:
        route = request.scope.get("route")
        path = getattr(route, "path", None)
        return path if isinstance(path, str) else self.UNMATCHED


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_embedding_request(
    model: str,
    duration: float,
    batch_size: int,
    success: bool = True,
) -> None:
    """Track embedding request metrics.

    Args:
        model: Embedding model name.
        duration: Request duration in seconds.
        batch_size: Number of texts in the batch.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"

    EMBEDDING_REQUEST_DURATION.labels(model=model, status=status).observe(duration)
    EMBEDDING_REQUEST_TOTAL.labels(model=model, status=status).inc()
    EMBEDDING_BATCH_SIZE.labels(model=model).observe(batch_size)


def track_vectorstore_operation(
    operation: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track a single vector store call, retries included.

    Args:
        operation: Operation name (upsert, query, ...).
        duration: Duration in seconds.
        success: Whether the operation succeeded.
    """
    status = "success" if success else "error"
    VECTORSTORE_OPERATION_DURATION.labels(operation=operation, status=status).observe(
        duration
    )


def track_records_upserted(collection: str, count: int) -> None:
    """Count records written to a collection."""
    RECORDS_UPSERTED_TOTAL.labels(collection=collection).inc(count)


def track_pipeline_run(
    duration: float,
    stage: str,
    success: bool = True,
) -> None:
    """Track a finished pipeline run.

    Args:
        duration: Run duration in seconds.
        stage: Last stage reached (the failing stage for failed runs).
        success: Whether the run completed.
    """
    outcome = "success" if success else "error"
    PIPELINE_RUN_DURATION.labels(outcome=outcome).observe(duration)
    PIPELINE_RUN_TOTAL.labels(outcome=outcome, stage=stage).inc()

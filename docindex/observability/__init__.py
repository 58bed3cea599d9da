"""Observability module for metrics and monitoring."""

from docindex.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
    track_embedding_request,
    track_pipeline_run,
    track_records_upserted,
    track_vectorstore_operation,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "get_metrics_content_type",
    "track_embedding_request",
    "track_pipeline_run",
    "track_records_upserted",
    "track_vectorstore_operation",
]

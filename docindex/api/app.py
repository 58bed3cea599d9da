"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics,
health checks and the ingestion routes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from docindex import __version__
from docindex.api.routes import router
from docindex.config import get_settings
from docindex.exceptions import DocIndexError, ErrorCode
from docindex.ingestion.pipeline import IngestionPipeline
from docindex.logging_config import get_logger, setup_logging
from docindex.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the pipeline on startup and closes its clients on shutdown.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting docindex",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
        },
    )

    pipeline = IngestionPipeline.from_settings(settings)
    app.state.pipeline = pipeline

    yield

    logger.info("Shutting down docindex")
    app.state.pipeline = None
    await pipeline.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="docindex",
        description="Embedding-indexed document ingestion and retrieval",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.pipeline = None

    app.add_exception_handler(DocIndexError, docindex_exception_handler)
    app.add_middleware(MetricsMiddleware)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Metrics"])
    app.include_router(router)

    return app


async def docindex_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Convert DocIndexError exceptions to structured JSON responses."""
    if not isinstance(exc, DocIndexError):
        return JSONResponse(
            status_code=500,
            content={"error": {"code": "IDX-1000", "message": str(exc), "details": {}}},
        )

    logger.error(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=_get_status_code(exc.code),
        content=exc.to_dict(),
    )


def _get_status_code(error_code: ErrorCode) -> int:
    """Map error code to HTTP status code."""
    if error_code in (
        ErrorCode.VALIDATION_ERROR,
        ErrorCode.PAYLOAD_ENCODING_ERROR,
    ):
        return 400

    if error_code == ErrorCode.COLLECTION_NOT_FOUND:
        return 404

    if error_code in (ErrorCode.SCHEMA_MISMATCH, ErrorCode.COLLECTION_EXISTS):
        return 409

    if error_code in (
        ErrorCode.EMBEDDING_SERVICE_ERROR,
        ErrorCode.ALIGNMENT_ERROR,
        ErrorCode.VECTOR_STORE_ERROR,
        ErrorCode.INDEX_WRITE_ERROR,
        ErrorCode.INDEX_QUERY_ERROR,
    ):
        return 502

    if error_code == ErrorCode.PIPELINE_TIMEOUT:
        return 504

    return 500


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> dict[str, Any]:
    """Readiness probe.

    Reports whether the pipeline is configured and the vector store answers.

    Returns:
        Readiness status with component checks.
    """
    checks: dict[str, str] = {"config": "ok"}

    pipeline: IngestionPipeline | None = request.app.state.pipeline
    if pipeline is not None:
        try:
            await pipeline.vector_store.collection_exists(pipeline.schema.name)
            checks["vector_store"] = "ok"
        except DocIndexError as e:
            checks["vector_store"] = e.code.value

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def liveness_check() -> dict[str, str]:
    """Liveness probe.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()

"""API routes for ingestion and search."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from docindex.documents.models import Document
from docindex.ingestion.models import PipelineRun
from docindex.ingestion.pipeline import IngestionPipeline
from docindex.logging_config import get_logger
from docindex.vectorstore.models import Match

logger = get_logger(__name__)


router = APIRouter(prefix="/api/v1", tags=["Index"])


class DocumentIn(BaseModel):
    """A document to ingest."""

    text: str = Field(description="Document text")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Scalar metadata stored next to the text",
    )
    id: UUID | None = Field(default=None, description="Stable record identity")


class IngestRequest(BaseModel):
    """Request body for document ingestion."""

    documents: list[DocumentIn] = Field(min_length=1, description="Documents to ingest")


class IngestResponse(BaseModel):
    """Response from document ingestion."""

    run_id: str = Field(description="Pipeline run identifier")
    collection: str = Field(description="Target collection")
    collection_state: str | None = Field(description="created or already_exists")
    record_ids: list[str] = Field(description="Identities of the written records")
    records_written: int = Field(description="Number of records written")
    skipped: list[dict[str, Any]] = Field(description="Documents left out")
    self_check: list[Match] = Field(description="Matches of the self-check query")


class QueryRequest(BaseModel):
    """Request body for a similarity search."""

    text: str = Field(description="Query text")
    top_k: int = Field(default=5, ge=1, le=100, description="Number of matches")
    filters: dict[str, Any] | None = Field(default=None, description="Payload filters")
    score_threshold: float | None = Field(default=None, description="Minimum score")


class QueryResponse(BaseModel):
    """Response from a similarity search."""

    matches: list[Match] = Field(description="Ranked matches")


def get_pipeline(request: Request) -> IngestionPipeline:
    """Resolve the pipeline built at start-up."""
    pipeline: IngestionPipeline | None = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        logger.warning("Ingestion pipeline not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "Ingestion pipeline not configured",
                "message": "The pipeline requires an embedding engine and a vector store",
            },
        )
    return pipeline


@router.post("/ingest", response_model=IngestResponse)
async def ingest_endpoint(
    request: IngestRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestResponse:
    """Ingest documents and verify the first one is retrievable."""
    documents = [ingest_document_to_document(doc) for doc in request.documents]
    run = await pipeline.run(documents)
    return pipeline_run_to_ingest_response(run)


@router.post("/query", response_model=QueryResponse)
async def query_endpoint(
    request: QueryRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> QueryResponse:
    """Search the collection with a query text."""
    matches = await pipeline.search(
        request.text,
        top_k=request.top_k,
        filters=request.filters,
        score_threshold=request.score_threshold,
    )
    return QueryResponse(matches=matches)


def ingest_document_to_document(doc: DocumentIn) -> Document:
    """Convert an API document to the internal model."""
    return Document(text=doc.text, metadata=doc.metadata, id=doc.id)


def pipeline_run_to_ingest_response(run: PipelineRun) -> IngestResponse:
    """Convert a finished run to the API response."""
    return IngestResponse(
        run_id=run.run_id,
        collection=run.collection,
        collection_state=run.collection_state.value if run.collection_state else None,
        record_ids=run.record_ids,
        records_written=run.records_written,
        skipped=[s.model_dump() for s in run.skipped],
        self_check=run.matches,
    )

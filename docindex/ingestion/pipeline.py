"""Ingestion pipeline orchestrator."""

import asyncio
import time
from collections.abc import Sequence
from typing import Any
from uuid import uuid4

from docindex.config import IdentityPolicy, InvalidPayloadAction, Settings, get_settings
from docindex.documents.models import Document
from docindex.embeddings.service import EmbeddingService, create_embedding_service
from docindex.exceptions import (
    DocIndexError,
    EmbeddingError,
    ErrorCode,
    PayloadEncodingError,
    PipelineTimeoutError,
    ValidationError,
)
from docindex.ingestion.alignment import check_alignment
from docindex.ingestion.collection import CollectionManager
from docindex.ingestion.models import PipelineRun, PipelineStage, SkippedDocument
from docindex.ingestion.query import QueryExecutor
from docindex.ingestion.records import RecordBuilder
from docindex.ingestion.writer import IndexWriter
from docindex.logging_config import get_logger
from docindex.observability.metrics import track_pipeline_run
from docindex.vectorstore.models import (
    CollectionSchema,
    Match,
    SearchQuery,
    VectorRecord,
)
from docindex.vectorstore.service import QdrantVectorStore, VectorStore

logger = get_logger(__name__)


class IngestionPipeline:
    """Orchestrates one ingestion-and-query cycle.

    A run walks idle -> embedding -> aligning -> building_records ->
    ensuring_collection -> writing -> querying -> done. Any failure moves
    the run to failed and the typed error propagates to the caller with
    the failing stage in its details. Records already upserted stay in
    the collection; upserts are idempotent, so the whole run can be retried.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        schema: CollectionSchema,
        identity_policy: IdentityPolicy = IdentityPolicy.RANDOM,
        on_invalid_payload: InvalidPayloadAction = InvalidPayloadAction.ABORT,
        self_check_top_k: int = 1,
        run_timeout: float | None = None,
        validate_existing_schema: bool = True,
        upsert_batch_size: int = 256,
    ) -> None:
        """Initialize the pipeline.

        Args:
            embedding_service: Embedding engine.
            vector_store: Index service adapter.
            schema: Target collection and its vector schema.
            identity_policy: Identity policy for documents without an id.
            on_invalid_payload: Abort the run or skip documents whose
                metadata cannot be stored.
            self_check_top_k: Results requested when no query is given.
            run_timeout: Deadline in seconds for a whole run.
            validate_existing_schema: Compare the schema of an existing
                collection before writing.
            upsert_batch_size: Maximum records per upsert request.
        """
        if self_check_top_k < 1:
            raise ValueError("self_check_top_k must be positive")
        self._embedding_service = embedding_service
        self._vector_store = vector_store
        self._schema = schema
        self._on_invalid_payload = on_invalid_payload
        self._self_check_top_k = self_check_top_k
        self._run_timeout = run_timeout

        self._builder = RecordBuilder(identity_policy)
        self._collections = CollectionManager(vector_store, validate_existing_schema)
        self._writer = IndexWriter(vector_store, upsert_batch_size)
        self._executor = QueryExecutor(vector_store)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        embedding_service: EmbeddingService | None = None,
        vector_store: VectorStore | None = None,
    ) -> "IngestionPipeline":
        """Build a pipeline from configuration.

        Args:
            settings: Application settings. Uses environment if not provided.
            embedding_service: Engine override (defaults to the configured one).
            vector_store: Store override (defaults to Qdrant).

        Returns:
            Configured pipeline.
        """
        settings = settings or get_settings()
        schema = CollectionSchema(
            name=settings.qdrant.collection_name,
            dimension=settings.qdrant.vector_size,
            distance=settings.qdrant.distance,
        )
        return cls(
            embedding_service=embedding_service
            or create_embedding_service(settings.embedding),
            vector_store=vector_store or QdrantVectorStore(settings.qdrant),
            schema=schema,
            identity_policy=settings.pipeline.identity_policy,
            on_invalid_payload=settings.pipeline.on_invalid_payload,
            self_check_top_k=settings.pipeline.self_check_top_k,
            run_timeout=settings.pipeline.run_timeout,
            validate_existing_schema=settings.pipeline.validate_existing_schema,
            upsert_batch_size=settings.qdrant.upsert_batch_size,
        )

    @property
    def schema(self) -> CollectionSchema:
        """Target collection schema."""
        return self._schema

    @property
    def vector_store(self) -> VectorStore:
        """Index service adapter."""
        return self._vector_store

    async def close(self) -> None:
        """Close the engine and the store."""
        await self._embedding_service.close()
        await self._vector_store.close()

    async def run(
        self,
        documents: Sequence[Document],
        query: SearchQuery | None = None,
    ) -> PipelineRun:
        """Ingest documents, then query the collection.

        Args:
            documents: Documents to ingest.
            query: Final query. Defaults to a self-check with the first
                written record's own vector.

        Returns:
            The finished run, carrying the ranked matches.

        Raises:
            DocIndexError: The typed error of the failing stage, or
                PipelineTimeoutError when the deadline passed.
        """
        run = PipelineRun(run_id=uuid4().hex, collection=self._schema.name)
        start = time.perf_counter()

        logger.info(
            "Starting pipeline run",
            extra={
                "run_id": run.run_id,
                "collection": self._schema.name,
                "documents": len(documents),
            },
        )

        try:
            async with asyncio.timeout(self._run_timeout):
                await self._execute(run, list(documents), query)
        except DocIndexError as e:
            self._fail(run, e, start)
            raise
        except TimeoutError as e:
            error = PipelineTimeoutError(
                f"Pipeline run exceeded its deadline of {self._run_timeout}s",
                details={"timeout": self._run_timeout},
            )
            self._fail(run, error, start)
            raise error from e
        except Exception as e:
            self._fail(run, e, start)
            raise

        run.elapsed = time.perf_counter() - start
        track_pipeline_run(run.elapsed, run.stage.value)
        logger.info(
            "Pipeline run completed",
            extra={
                "run_id": run.run_id,
                "records_written": run.records_written,
                "skipped": len(run.skipped),
                "matches": len(run.matches),
            },
        )
        return run

    async def _execute(
        self,
        run: PipelineRun,
        documents: list[Document],
        query: SearchQuery | None,
    ) -> None:
        self._enter(run, PipelineStage.EMBEDDING)
        embeddings = await self._embed([doc.text for doc in documents]) if documents else []

        self._enter(run, PipelineStage.ALIGNING)
        check_alignment(documents, embeddings)

        self._enter(run, PipelineStage.BUILDING_RECORDS)
        records = self._build_records(run, documents, embeddings)

        self._enter(run, PipelineStage.ENSURING_COLLECTION)
        run.collection_state = await self._collections.ensure_collection(self._schema)

        self._enter(run, PipelineStage.WRITING)
        await self._writer.upsert(self._schema, records, on_batch=run.add_written)

        self._enter(run, PipelineStage.QUERYING)
        if query is None and records:
            query = SearchQuery(vector=records[0].vector, top_k=self._self_check_top_k)
        if query is not None:
            run.matches = await self._executor.query(self._schema.name, query)

        self._enter(run, PipelineStage.DONE)

    def _enter(self, run: PipelineRun, stage: PipelineStage) -> None:
        run.advance(stage)
        logger.debug(
            f"Pipeline stage: {stage.value}",
            extra={"run_id": run.run_id, "stage": stage.value},
        )

    def _fail(self, run: PipelineRun, error: Exception, start: float) -> None:
        if isinstance(error, DocIndexError):
            reason, code, retryable = error.message, error.code, error.retryable
            error.details.setdefault("stage", run.stage.value)
            error.details["run_id"] = run.run_id
            error.details["records_written"] = run.records_written
        else:
            reason, code, retryable = str(error), ErrorCode.INTERNAL_ERROR, False

        failed_at = run.fail(reason)
        run.elapsed = time.perf_counter() - start

        track_pipeline_run(run.elapsed, failed_at.value, success=False)
        logger.error(
            f"Pipeline run failed at {failed_at.value}: {reason}",
            extra={
                "run_id": run.run_id,
                "error_code": code.value,
                "retryable": retryable,
                "records_written": run.records_written,
            },
            exc_info=not isinstance(error, DocIndexError),
        )

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        """Call the engine, treating any failure as opaque."""
        try:
            return await self._embedding_service.embed_texts(texts)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(
                f"Embedding engine failed: {e}",
                details={"error": str(e), "batch_size": len(texts)},
            ) from e

    def _build_records(
        self,
        run: PipelineRun,
        documents: list[Document],
        embeddings: list[list[float]],
    ) -> list[VectorRecord]:
        records: list[VectorRecord] = []
        for position, (document, embedding) in enumerate(zip(documents, embeddings)):
            try:
                records.append(self._builder.build(document, embedding))
            except PayloadEncodingError as e:
                if self._on_invalid_payload == InvalidPayloadAction.ABORT:
                    e.details["position"] = position
                    raise
                run.skipped.append(
                    SkippedDocument(position=position, field=e.field, reason=e.message)
                )
                logger.warning(
                    f"Skipping document {position}: {e.message}",
                    extra={"run_id": run.run_id, "field": e.field},
                )

        run.record_ids = [record.id for record in records]
        return records

    async def search(
        self,
        text: str,
        top_k: int = 5,
        filters: dict[str, Any] | None = None,
        score_threshold: float | None = None,
    ) -> list[Match]:
        """Embed a query text and return the ranked matches.

        Args:
            text: Query text.
            top_k: Maximum number of matches.
            filters: Exact-match payload filters.
            score_threshold: Minimum score.

        Returns:
            Matches in the service's ranking order; empty for a blank query.

        Raises:
            ValidationError: If top_k is not positive.
        """
        if top_k < 1:
            raise ValidationError(
                "top_k must be a positive integer",
                details={"top_k": top_k},
            )
        if not text.strip():
            return []

        vector = await self._embed([text])
        check_alignment([Document(text=text)], vector)
        return await self._executor.query(
            self._schema.name,
            SearchQuery(
                vector=vector[0],
                top_k=top_k,
                filters=filters,
                score_threshold=score_threshold,
            ),
        )

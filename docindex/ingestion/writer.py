"""Bulk upsert of index records."""

from collections.abc import Callable, Sequence

from docindex.exceptions import SchemaMismatchError
from docindex.logging_config import get_logger
from docindex.observability.metrics import track_records_upserted
from docindex.vectorstore.models import CollectionSchema, VectorRecord
from docindex.vectorstore.service import VectorStore

logger = get_logger(__name__)


class IndexWriter:
    """Writes records to a collection as an idempotent upsert.

    Records are keyed by identity, so re-submitting a batch after a
    partial failure rewrites the same points instead of duplicating them.
    """

    def __init__(self, vector_store: VectorStore, batch_size: int = 256) -> None:
        """Initialize the writer.

        Args:
            vector_store: Index service adapter.
            batch_size: Maximum records per upsert request.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._vector_store = vector_store
        self._batch_size = batch_size

    def validate(self, schema: CollectionSchema, records: Sequence[VectorRecord]) -> None:
        """Check every vector has the collection dimension.

        Raises:
            SchemaMismatchError: Naming the first offending record.
        """
        for record in records:
            if len(record.vector) != schema.dimension:
                raise SchemaMismatchError(
                    f"Record {record.id} has dimension {len(record.vector)}, "
                    f"collection {schema.name} expects {schema.dimension}",
                    details={
                        "collection": schema.name,
                        "record_id": record.id,
                        "expected_dimension": schema.dimension,
                        "actual_dimension": len(record.vector),
                    },
                )

    async def upsert(
        self,
        schema: CollectionSchema,
        records: Sequence[VectorRecord],
        on_batch: Callable[[int], None] | None = None,
    ) -> int:
        """Validate and write records.

        Args:
            schema: Schema of the target collection.
            records: Records to write.
            on_batch: Called with the count of each acknowledged batch,
                so callers see partial progress if a later batch fails.

        Returns:
            Number of records written.

        Raises:
            SchemaMismatchError: If a vector has the wrong dimension.
            IndexWriteError: If the service fails after retries.
        """
        self.validate(schema, records)

        written = 0
        for start in range(0, len(records), self._batch_size):
            batch = list(records[start : start + self._batch_size])
            acknowledged = await self._vector_store.upsert(schema.name, batch)
            written += acknowledged
            track_records_upserted(schema.name, acknowledged)
            if on_batch is not None:
                on_batch(acknowledged)

        logger.debug(f"Wrote {written} records", extra={"collection": schema.name})
        return written

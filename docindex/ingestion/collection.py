"""Collection lifecycle management."""

from docindex.exceptions import ErrorCode, SchemaMismatchError, VectorStoreError
from docindex.logging_config import get_logger
from docindex.vectorstore.models import CollectionSchema, CollectionState
from docindex.vectorstore.service import VectorStore

logger = get_logger(__name__)


class CollectionManager:
    """Ensures the target collection exists with the expected schema.

    Creation is idempotent: a collection that already exists with a
    matching schema counts as success, including when another caller
    created it between our existence check and our create call.
    """

    def __init__(self, vector_store: VectorStore, validate_existing: bool = True) -> None:
        """Initialize the manager.

        Args:
            vector_store: Index service adapter.
            validate_existing: Compare the remote schema of an existing
                collection against the requested one.
        """
        self._vector_store = vector_store
        self._validate_existing = validate_existing

    async def ensure_collection(self, schema: CollectionSchema) -> CollectionState:
        """Create the collection unless it exists.

        Args:
            schema: Requested name, dimension and distance metric.

        Returns:
            CREATED if this call created it, ALREADY_EXISTS otherwise.

        Raises:
            SchemaMismatchError: If an existing collection has another
                dimension or metric.
            VectorStoreError: If the service fails.
        """
        if not await self._vector_store.collection_exists(schema.name):
            try:
                await self._vector_store.create_collection(schema)
                return CollectionState.CREATED
            except VectorStoreError as e:
                if e.code != ErrorCode.COLLECTION_EXISTS:
                    raise
                logger.info(
                    f"Collection {schema.name} was created concurrently",
                    extra={"collection": schema.name},
                )
        else:
            logger.info(f"Collection `{schema.name}` already exists")

        if self._validate_existing:
            await self._check_schema(schema)
        return CollectionState.ALREADY_EXISTS

    async def _check_schema(self, expected: CollectionSchema) -> None:
        actual = await self._vector_store.get_collection_schema(expected.name)
        if actual is None:
            raise VectorStoreError(
                f"Collection disappeared while being validated: {expected.name}",
                code=ErrorCode.COLLECTION_NOT_FOUND,
                details={"collection": expected.name},
            )

        if (actual.dimension, actual.distance) != (expected.dimension, expected.distance):
            raise SchemaMismatchError(
                f"Collection {expected.name} has dimension {actual.dimension} "
                f"({actual.distance.value}), expected {expected.dimension} "
                f"({expected.distance.value})",
                details={
                    "collection": expected.name,
                    "expected_dimension": expected.dimension,
                    "actual_dimension": actual.dimension,
                    "expected_distance": expected.distance.value,
                    "actual_distance": actual.distance.value,
                },
            )

"""Vector store interface and Qdrant implementation."""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointIdsList,
    PointStruct,
    VectorParams,
)
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from docindex.config import QdrantSettings, get_settings
from docindex.exceptions import (
    ErrorCode,
    IndexQueryError,
    IndexWriteError,
    SchemaMismatchError,
    VectorStoreError,
)
from docindex.logging_config import get_logger
from docindex.observability.metrics import track_vectorstore_operation
from docindex.vectorstore.models import (
    CollectionSchema,
    DistanceMetric,
    Match,
    SearchQuery,
    VectorRecord,
)

logger = get_logger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Whether a client error is worth retrying.

    Connection failures, timeouts and 5xx responses are transient;
    4xx responses mean the request itself is wrong.
    """
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is not None and (
            exc.status_code >= 500 or exc.status_code == 429
        )
    return isinstance(
        exc,
        (ResponseHandlingException, httpx.TransportError, ConnectionError, TimeoutError),
    )


def _status_code(exc: BaseException) -> int | None:
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code
    return None


def _is_dimension_error(exc: BaseException) -> bool:
    status = _status_code(exc)
    return status is not None and 400 <= status < 500 and "dimension" in str(exc).lower()


def _build_filter(filters: dict[str, Any] | None) -> Filter | None:
    if not filters:
        return None
    conditions = [
        FieldCondition(key=k, match=MatchValue(value=v)) for k, v in filters.items()
    ]
    return Filter(must=conditions)  # type: ignore[arg-type]


class VectorStore(ABC):
    """Abstract base class for vector stores.

    Defines the operations the pipeline needs from the index service.
    """

    @abstractmethod
    async def collection_exists(self, name: str) -> bool:
        """Check if a collection exists.

        Args:
            name: Collection name.

        Returns:
            True if collection exists.
        """
        ...

    @abstractmethod
    async def create_collection(self, schema: CollectionSchema) -> None:
        """Create a new collection.

        Args:
            schema: Name, dimension and metric of the collection.

        Raises:
            VectorStoreError: If creation fails; code COLLECTION_EXISTS when
                the service reports the collection already exists.
        """
        ...

    @abstractmethod
    async def get_collection_schema(self, name: str) -> CollectionSchema | None:
        """Fetch the vector schema of a collection.

        Args:
            name: Collection name.

        Returns:
            The schema, or None if the collection does not exist.
        """
        ...

    @abstractmethod
    async def delete_collection(self, name: str) -> None:
        """Delete a collection.

        Args:
            name: Collection name.

        Raises:
            VectorStoreError: If deletion fails.
        """
        ...

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        records: list[VectorRecord],
    ) -> int:
        """Insert or replace records keyed by identity.

        Args:
            collection: Collection name.
            records: Records to upsert.

        Returns:
            Number of records upserted.

        Raises:
            IndexWriteError: If the write fails.
            SchemaMismatchError: If the service rejects a vector.
        """
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        query: SearchQuery,
    ) -> list[Match]:
        """Search for similar vectors.

        Args:
            collection: Collection name.
            query: Query vector and options.

        Returns:
            Matches in the service's ranking order.

        Raises:
            IndexQueryError: If the query fails.
        """
        ...

    @abstractmethod
    async def fetch(
        self,
        collection: str,
        ids: list[str],
    ) -> list[VectorRecord]:
        """Fetch records by ID. Unknown IDs are omitted."""
        ...

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Count records in a collection."""
        ...

    @abstractmethod
    async def delete(
        self,
        collection: str,
        ids: list[str],
    ) -> int:
        """Delete records by ID.

        Args:
            collection: Collection name.
            ids: Record IDs to delete.

        Returns:
            Number of records deleted.

        Raises:
            VectorStoreError: If deletion fails.
        """
        ...

    async def close(self) -> None:
        """Release the connection to the service."""
        return None


class QdrantVectorStore(VectorStore):
    """Qdrant vector store implementation.

    Every call is bounded by the client timeout and retried with
    exponential backoff while the failure is transient.
    """

    def __init__(
        self,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize Qdrant vector store.

        Args:
            settings: Qdrant configuration.
            client: Existing client (for testing).
        """
        self._settings = settings or get_settings().qdrant
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            api_key = None
            if self._settings.api_key:
                api_key = self._settings.api_key.get_secret_value()

            self._client = AsyncQdrantClient(
                url=self._settings.url,
                api_key=api_key,
                timeout=self._settings.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    async def _call(
        self,
        operation: str,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        """Run a client call with bounded retries and record its latency."""
        start = time.perf_counter()
        try:
            async for attempt in AsyncRetrying(
                reraise=True,
                stop=stop_after_attempt(self._settings.max_retries),
                wait=wait_exponential(
                    multiplier=self._settings.retry_min_wait,
                    min=self._settings.retry_min_wait,
                    max=self._settings.retry_max_wait,
                ),
                retry=retry_if_exception(is_transient),
                before_sleep=before_sleep_log(logger, logging.WARNING),
            ):
                with attempt:
                    result = await func()
        except Exception:
            track_vectorstore_operation(operation, time.perf_counter() - start, success=False)
            raise
        track_vectorstore_operation(operation, time.perf_counter() - start)
        return result

    async def collection_exists(self, name: str) -> bool:
        """Check if collection exists."""
        client = await self._get_client()
        try:
            return await self._call(
                "collection_exists",
                lambda: client.collection_exists(collection_name=name),
            )
        except Exception as e:
            raise VectorStoreError(
                f"Failed to check collection: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": name, "error": str(e)},
                retryable=is_transient(e),
            ) from e

    async def create_collection(self, schema: CollectionSchema) -> None:
        """Create a new Qdrant collection."""
        client = await self._get_client()

        try:
            await self._call(
                "create_collection",
                lambda: client.create_collection(
                    collection_name=schema.name,
                    vectors_config=VectorParams(
                        size=schema.dimension,
                        distance=Distance(schema.distance.value),
                    ),
                ),
            )
        except Exception as e:
            if _status_code(e) == 409 or "already exists" in str(e).lower():
                raise VectorStoreError(
                    f"Collection already exists: {schema.name}",
                    code=ErrorCode.COLLECTION_EXISTS,
                    details={"collection": schema.name},
                ) from e
            raise VectorStoreError(
                f"Failed to create collection: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": schema.name, "error": str(e)},
                retryable=is_transient(e),
            ) from e

        logger.info(
            f"Created collection: {schema.name}",
            extra={"dimensions": schema.dimension, "distance": schema.distance.value},
        )

    async def get_collection_schema(self, name: str) -> CollectionSchema | None:
        """Read the vector parameters of an existing collection."""
        client = await self._get_client()

        try:
            info = await self._call(
                "get_collection",
                lambda: client.get_collection(collection_name=name),
            )
        except Exception as e:
            if _status_code(e) == 404:
                return None
            raise VectorStoreError(
                f"Failed to read collection: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": name, "error": str(e)},
                retryable=is_transient(e),
            ) from e

        vectors = info.config.params.vectors
        if not isinstance(vectors, VectorParams):
            raise SchemaMismatchError(
                f"Collection {name} uses named vectors, expected a single vector",
                details={"collection": name},
            )

        return CollectionSchema(
            name=name,
            dimension=vectors.size,
            distance=DistanceMetric(vectors.distance.value),
        )

    async def delete_collection(self, name: str) -> None:
        """Delete a Qdrant collection."""
        client = await self._get_client()

        try:
            deleted = await self._call(
                "delete_collection",
                lambda: client.delete_collection(collection_name=name),
            )
        except Exception as e:
            raise VectorStoreError(
                f"Failed to delete collection: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": name, "error": str(e)},
                retryable=is_transient(e),
            ) from e

        if deleted is False:
            raise VectorStoreError(
                f"Collection not found: {name}",
                code=ErrorCode.COLLECTION_NOT_FOUND,
                details={"collection": name},
            )
        logger.info(f"Deleted collection: {name}")

    async def upsert(
        self,
        collection: str,
        records: list[VectorRecord],
    ) -> int:
        """Upsert records into collection in one request."""
        if not records:
            return 0

        client = await self._get_client()
        points = [
            PointStruct(id=record.id, vector=record.vector, payload=record.payload)
            for record in records
        ]

        try:
            await self._call(
                "upsert",
                lambda: client.upsert(collection_name=collection, points=points, wait=True),
            )
        except Exception as e:
            details = {"collection": collection, "records": len(points), "error": str(e)}
            if _is_dimension_error(e):
                raise SchemaMismatchError(
                    f"Service rejected vectors for {collection}: {e}",
                    details=details,
                ) from e
            raise IndexWriteError(
                f"Failed to upsert records: {e}",
                details=details,
                retryable=is_transient(e),
            ) from e

        logger.debug(
            f"Upserted {len(points)} records",
            extra={"collection": collection},
        )
        return len(points)

    async def query(
        self,
        collection: str,
        query: SearchQuery,
    ) -> list[Match]:
        """Search for similar vectors."""
        client = await self._get_client()

        try:
            response = await self._call(
                "query",
                lambda: client.query_points(
                    collection_name=collection,
                    query=query.vector,
                    limit=query.top_k,
                    with_payload=query.include_payload,
                    query_filter=_build_filter(query.filters),
                    score_threshold=query.score_threshold,
                ),
            )
        except Exception as e:
            details = {"collection": collection, "error": str(e)}
            if _is_dimension_error(e):
                raise SchemaMismatchError(
                    f"Query vector does not fit {collection}: {e}",
                    details=details,
                ) from e
            if _status_code(e) == 404:
                raise VectorStoreError(
                    f"Collection not found: {collection}",
                    code=ErrorCode.COLLECTION_NOT_FOUND,
                    details=details,
                ) from e
            raise IndexQueryError(
                f"Failed to search: {e}",
                details=details,
                retryable=is_transient(e),
            ) from e

        return [
            Match(
                id=str(point.id),
                score=point.score if point.score is not None else 0.0,
                payload=dict(point.payload) if point.payload else {},
            )
            for point in response.points
        ]

    async def fetch(
        self,
        collection: str,
        ids: list[str],
    ) -> list[VectorRecord]:
        """Retrieve records with their vectors and payloads."""
        if not ids:
            return []

        client = await self._get_client()

        try:
            points = await self._call(
                "fetch",
                lambda: client.retrieve(
                    collection_name=collection,
                    ids=ids,
                    with_payload=True,
                    with_vectors=True,
                ),
            )
        except Exception as e:
            raise IndexQueryError(
                f"Failed to fetch records: {e}",
                details={"collection": collection, "error": str(e)},
                retryable=is_transient(e),
            ) from e

        return [
            VectorRecord(
                id=str(point.id),
                vector=point.vector if isinstance(point.vector, list) else [],
                payload=dict(point.payload) if point.payload else {},
            )
            for point in points
        ]

    async def count(self, collection: str) -> int:
        """Exact number of points in the collection."""
        client = await self._get_client()

        try:
            result = await self._call(
                "count",
                lambda: client.count(collection_name=collection, exact=True),
            )
        except Exception as e:
            raise IndexQueryError(
                f"Failed to count records: {e}",
                details={"collection": collection, "error": str(e)},
                retryable=is_transient(e),
            ) from e

        return result.count

    async def delete(
        self,
        collection: str,
        ids: list[str],
    ) -> int:
        """Delete records by ID."""
        if not ids:
            return 0

        client = await self._get_client()

        try:
            await self._call(
                "delete",
                lambda: client.delete(
                    collection_name=collection,
                    points_selector=PointIdsList(points=ids),  # type: ignore[arg-type]
                ),
            )
        except Exception as e:
            raise VectorStoreError(
                f"Failed to delete records: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": collection, "error": str(e)},
                retryable=is_transient(e),
            ) from e

        logger.debug(
            f"Deleted {len(ids)} records",
            extra={"collection": collection},
        )
        return len(ids)

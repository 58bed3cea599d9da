"""Tests for vector store module."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from qdrant_client.http.exceptions import UnexpectedResponse
from qdrant_client.models import Distance, VectorParams

from docindex.config import QdrantSettings
from docindex.exceptions import (
    ErrorCode,
    IndexQueryError,
    IndexWriteError,
    SchemaMismatchError,
    VectorStoreError,
)
from docindex.vectorstore.models import (
    CollectionSchema,
    DistanceMetric,
    Match,
    SearchQuery,
    VectorRecord,
)
from docindex.vectorstore.service import QdrantVectorStore, is_transient


def _unexpected(status_code: int, content: bytes = b"") -> UnexpectedResponse:
    return UnexpectedResponse(
        status_code=status_code,
        reason_phrase="error",
        content=content,
        headers=httpx.Headers(),
    )


class TestVectorRecord:
    """Tests for VectorRecord model."""

    def test_create_record(self) -> None:
        """Record can be created with required fields."""
        record = VectorRecord(id="test-id", vector=[0.1, 0.2, 0.3])
        assert record.id == "test-id"
        assert record.vector == [0.1, 0.2, 0.3]
        assert record.payload == {}

    def test_record_with_payload(self) -> None:
        """Record can have payload metadata."""
        record = VectorRecord(
            id="test-id",
            vector=[0.1, 0.2],
            payload={"document": "hello", "source": "doc.txt"},
        )
        assert record.payload["document"] == "hello"


class TestCollectionSchema:
    """Tests for CollectionSchema model."""

    def test_defaults_to_cosine(self) -> None:
        """Cosine is the default metric."""
        schema = CollectionSchema(name="docs", dimension=384)
        assert schema.distance == DistanceMetric.COSINE

    def test_dimension_must_be_positive(self) -> None:
        """Zero-dimensional collections are rejected."""
        with pytest.raises(ValueError):
            CollectionSchema(name="docs", dimension=0)

    def test_name_required(self) -> None:
        """Empty names are rejected."""
        with pytest.raises(ValueError):
            CollectionSchema(name="", dimension=384)


class TestSearchQuery:
    """Tests for SearchQuery model."""

    def test_defaults(self) -> None:
        """Queries include payloads by default."""
        query = SearchQuery(vector=[0.1])
        assert query.top_k == 10
        assert query.include_payload is True

    def test_top_k_must_be_positive(self) -> None:
        """top_k below one is rejected."""
        with pytest.raises(ValueError):
            SearchQuery(vector=[0.1], top_k=0)


class TestIsTransient:
    """Tests for retry classification."""

    def test_server_errors_are_transient(self) -> None:
        """5xx and 429 responses are retried."""
        assert is_transient(_unexpected(503))
        assert is_transient(_unexpected(500))
        assert is_transient(_unexpected(429))

    def test_client_errors_are_not(self) -> None:
        """4xx responses are not retried."""
        assert not is_transient(_unexpected(400))
        assert not is_transient(_unexpected(404))

    def test_network_failures_are_transient(self) -> None:
        """Connection problems and timeouts are retried."""
        assert is_transient(httpx.ConnectError("refused"))
        assert is_transient(ConnectionError())
        assert is_transient(TimeoutError())

    def test_other_errors_are_not(self) -> None:
        """Programming errors are never retried."""
        assert not is_transient(ValueError("bad"))


class TestQdrantVectorStore:
    """Tests for QdrantVectorStore."""

    def _create_mock_client(self) -> AsyncMock:
        """Create a mock Qdrant client."""
        client = AsyncMock()
        client.collection_exists = AsyncMock(return_value=False)
        client.create_collection = AsyncMock(return_value=True)
        client.delete_collection = AsyncMock(return_value=True)
        client.upsert = AsyncMock()
        mock_response = MagicMock()
        mock_response.points = []
        client.query_points = AsyncMock(return_value=mock_response)
        client.delete = AsyncMock()
        client.close = AsyncMock()
        return client

    def _store(self, client: AsyncMock, **overrides: object) -> QdrantVectorStore:
        settings = QdrantSettings(
            url="http://localhost:6333",
            retry_min_wait=0,
            retry_max_wait=0,
            **overrides,  # type: ignore[arg-type]
        )
        return QdrantVectorStore(settings=settings, client=client)

    @pytest.mark.asyncio
    async def test_create_collection(self) -> None:
        """Collection is created with the schema's vector parameters."""
        mock_client = self._create_mock_client()
        store = self._store(mock_client)

        await store.create_collection(CollectionSchema(name="rig-collection", dimension=384))

        call_kwargs = mock_client.create_collection.call_args.kwargs
        assert call_kwargs["collection_name"] == "rig-collection"
        assert call_kwargs["vectors_config"] == VectorParams(size=384, distance=Distance.COSINE)

    @pytest.mark.asyncio
    async def test_create_collection_already_exists(self) -> None:
        """A conflict from the service becomes COLLECTION_EXISTS."""
        mock_client = self._create_mock_client()
        mock_client.create_collection.side_effect = _unexpected(
            409, b'{"status":{"error":"Collection `test` already exists!"}}'
        )
        store = self._store(mock_client)

        with pytest.raises(VectorStoreError) as exc_info:
            await store.create_collection(CollectionSchema(name="test", dimension=384))

        assert exc_info.value.code == ErrorCode.COLLECTION_EXISTS
        assert mock_client.create_collection.call_count == 1

    @pytest.mark.asyncio
    async def test_get_collection_schema(self) -> None:
        """Remote vector parameters are read back as a schema."""
        mock_client = self._create_mock_client()
        info = MagicMock()
        info.config.params.vectors = VectorParams(size=384, distance=Distance.DOT)
        mock_client.get_collection = AsyncMock(return_value=info)
        store = self._store(mock_client)

        schema = await store.get_collection_schema("docs")

        assert schema == CollectionSchema(name="docs", dimension=384, distance=DistanceMetric.DOT)

    @pytest.mark.asyncio
    async def test_get_collection_schema_missing(self) -> None:
        """A 404 means the collection does not exist."""
        mock_client = self._create_mock_client()
        mock_client.get_collection = AsyncMock(side_effect=_unexpected(404))
        store = self._store(mock_client)

        assert await store.get_collection_schema("missing") is None

    @pytest.mark.asyncio
    async def test_get_collection_schema_named_vectors(self) -> None:
        """Named vector collections cannot be used."""
        mock_client = self._create_mock_client()
        info = MagicMock()
        info.config.params.vectors = {"text": VectorParams(size=384, distance=Distance.COSINE)}
        mock_client.get_collection = AsyncMock(return_value=info)
        store = self._store(mock_client)

        with pytest.raises(SchemaMismatchError):
            await store.get_collection_schema("docs")

    @pytest.mark.asyncio
    async def test_delete_collection(self) -> None:
        """Collection can be deleted."""
        mock_client = self._create_mock_client()
        store = self._store(mock_client)

        await store.delete_collection("test")

        mock_client.delete_collection.assert_called_once_with(collection_name="test")

    @pytest.mark.asyncio
    async def test_delete_collection_not_found(self) -> None:
        """Deleting non-existent collection raises error."""
        mock_client = self._create_mock_client()
        mock_client.delete_collection = AsyncMock(return_value=False)
        store = self._store(mock_client)

        with pytest.raises(VectorStoreError) as exc_info:
            await store.delete_collection("test")

        assert exc_info.value.code == ErrorCode.COLLECTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_collection_exists(self) -> None:
        """Can check if collection exists."""
        mock_client = self._create_mock_client()
        mock_client.collection_exists = AsyncMock(return_value=True)
        store = self._store(mock_client)

        assert await store.collection_exists("test") is True
        mock_client.collection_exists.assert_called_once_with(collection_name="test")

    @pytest.mark.asyncio
    async def test_upsert_records(self) -> None:
        """Records are sent as points and acknowledged."""
        mock_client = self._create_mock_client()
        store = self._store(mock_client)

        records = [
            VectorRecord(id="1", vector=[0.1, 0.2], payload={"document": "hello"}),
            VectorRecord(id="2", vector=[0.3, 0.4], payload={"document": "world"}),
        ]

        count = await store.upsert("test", records)

        assert count == 2
        call_kwargs = mock_client.upsert.call_args.kwargs
        assert call_kwargs["collection_name"] == "test"
        assert call_kwargs["wait"] is True
        assert [p.payload for p in call_kwargs["points"]] == [
            {"document": "hello"},
            {"document": "world"},
        ]

    @pytest.mark.asyncio
    async def test_upsert_empty_list(self) -> None:
        """Upserting empty list returns 0."""
        mock_client = self._create_mock_client()
        store = self._store(mock_client)

        assert await store.upsert("test", []) == 0
        mock_client.upsert.assert_not_called()

    @pytest.mark.asyncio
    async def test_upsert_retries_transient_failure(self) -> None:
        """A 503 is retried and the second attempt succeeds."""
        mock_client = self._create_mock_client()
        mock_client.upsert = AsyncMock(side_effect=[_unexpected(503), MagicMock()])
        store = self._store(mock_client)

        count = await store.upsert("test", [VectorRecord(id="1", vector=[0.1])])

        assert count == 1
        assert mock_client.upsert.call_count == 2

    @pytest.mark.asyncio
    async def test_upsert_gives_up_after_max_retries(self) -> None:
        """Persistent transient failures surface as a retryable write error."""
        mock_client = self._create_mock_client()
        mock_client.upsert = AsyncMock(side_effect=_unexpected(503))
        store = self._store(mock_client, max_retries=2)

        with pytest.raises(IndexWriteError) as exc_info:
            await store.upsert("test", [VectorRecord(id="1", vector=[0.1])])

        assert exc_info.value.retryable is True
        assert mock_client.upsert.call_count == 2

    @pytest.mark.asyncio
    async def test_upsert_client_error_not_retried(self) -> None:
        """A 400 is raised immediately and marked non-retryable."""
        mock_client = self._create_mock_client()
        mock_client.upsert = AsyncMock(side_effect=_unexpected(400, b"bad point id"))
        store = self._store(mock_client)

        with pytest.raises(IndexWriteError) as exc_info:
            await store.upsert("test", [VectorRecord(id="1", vector=[0.1])])

        assert exc_info.value.retryable is False
        assert mock_client.upsert.call_count == 1

    @pytest.mark.asyncio
    async def test_upsert_dimension_rejected(self) -> None:
        """A dimension complaint from the service is a schema mismatch."""
        mock_client = self._create_mock_client()
        mock_client.upsert = AsyncMock(
            side_effect=_unexpected(
                400, b"Wrong input: Vector dimension error: expected dim: 384, got 512"
            )
        )
        store = self._store(mock_client)

        with pytest.raises(SchemaMismatchError):
            await store.upsert("test", [VectorRecord(id="1", vector=[0.1] * 512)])

    @pytest.mark.asyncio
    async def test_query(self) -> None:
        """Query returns matches in the service's order."""
        mock_client = self._create_mock_client()
        first = MagicMock(id="a", score=0.95, payload={"document": "hello"})
        second = MagicMock(id="b", score=0.5, payload=None)
        mock_response = MagicMock()
        mock_response.points = [first, second]
        mock_client.query_points = AsyncMock(return_value=mock_response)
        store = self._store(mock_client)

        matches = await store.query("test", SearchQuery(vector=[0.1, 0.2], top_k=2))

        assert matches == [
            Match(id="a", score=0.95, payload={"document": "hello"}),
            Match(id="b", score=0.5, payload={}),
        ]
        call_kwargs = mock_client.query_points.call_args.kwargs
        assert call_kwargs["limit"] == 2
        assert call_kwargs["with_payload"] is True
        assert call_kwargs["query_filter"] is None

    @pytest.mark.asyncio
    async def test_query_with_filters(self) -> None:
        """Filters become exact-match conditions."""
        mock_client = self._create_mock_client()
        store = self._store(mock_client)

        await store.query("test", SearchQuery(vector=[0.1], filters={"source": "wiki"}))

        query_filter = mock_client.query_points.call_args.kwargs["query_filter"]
        assert query_filter.must[0].key == "source"
        assert query_filter.must[0].match.value == "wiki"

    @pytest.mark.asyncio
    async def test_query_missing_collection(self) -> None:
        """Querying an unknown collection raises COLLECTION_NOT_FOUND."""
        mock_client = self._create_mock_client()
        mock_client.query_points = AsyncMock(side_effect=_unexpected(404))
        store = self._store(mock_client)

        with pytest.raises(VectorStoreError) as exc_info:
            await store.query("missing", SearchQuery(vector=[0.1]))

        assert exc_info.value.code == ErrorCode.COLLECTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_query_service_failure(self) -> None:
        """Persistent service failures raise IndexQueryError."""
        mock_client = self._create_mock_client()
        mock_client.query_points = AsyncMock(side_effect=httpx.ConnectError("refused"))
        store = self._store(mock_client, max_retries=2)

        with pytest.raises(IndexQueryError) as exc_info:
            await store.query("test", SearchQuery(vector=[0.1]))

        assert exc_info.value.retryable is True
        assert mock_client.query_points.call_count == 2

    @pytest.mark.asyncio
    async def test_fetch(self) -> None:
        """Fetch returns vectors and payloads."""
        mock_client = self._create_mock_client()
        point = MagicMock(id="1", vector=[0.1, 0.2], payload={"document": "hello"})
        mock_client.retrieve = AsyncMock(return_value=[point])
        store = self._store(mock_client)

        records = await store.fetch("test", ["1", "2"])

        assert records == [
            VectorRecord(id="1", vector=[0.1, 0.2], payload={"document": "hello"})
        ]

    @pytest.mark.asyncio
    async def test_count(self) -> None:
        """Count uses an exact count."""
        mock_client = self._create_mock_client()
        mock_client.count = AsyncMock(return_value=MagicMock(count=3))
        store = self._store(mock_client)

        assert await store.count("test") == 3
        mock_client.count.assert_called_once_with(collection_name="test", exact=True)

    @pytest.mark.asyncio
    async def test_delete_records(self) -> None:
        """Records can be deleted."""
        mock_client = self._create_mock_client()
        store = self._store(mock_client)

        count = await store.delete("test", ["1", "2", "3"])

        assert count == 3
        mock_client.delete.assert_called_once()

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        """Store closes owned client."""
        mock_client = self._create_mock_client()
        store = self._store(mock_client)
        store._owns_client = True

        await store.close()

        mock_client.close.assert_called_once()

"""Pytest configuration and shared fixtures."""

import hashlib
import math
from collections.abc import AsyncGenerator, Generator, Sequence

import pytest
from httpx import ASGITransport, AsyncClient

from docindex.api.app import app
from docindex.embeddings.service import EmbeddingService
from docindex.exceptions import ErrorCode, SchemaMismatchError, VectorStoreError
from docindex.ingestion.pipeline import IngestionPipeline
from docindex.vectorstore.models import (
    CollectionSchema,
    DistanceMetric,
    Match,
    SearchQuery,
    VectorRecord,
)
from docindex.vectorstore.service import VectorStore


class HashingEmbeddingService(EmbeddingService):
    """Deterministic embedding engine: equal texts give equal vectors."""

    def __init__(self, dimensions: int = 384, drop: int = 0) -> None:
        self._dimensions = dimensions
        self._drop = drop
        self.calls: list[list[str]] = []

    @property
    def model_name(self) -> str:
        return "hashing-test-model"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors = [self._vector(text) for text in texts]
        # Simulates an engine that breaks its one-vector-per-text contract
        return vectors[: len(vectors) - self._drop] if self._drop else vectors

    def _vector(self, text: str) -> list[float]:
        values = []
        for i in range(self._dimensions):
            digest = hashlib.sha256(f"{text}:{i}".encode()).digest()
            values.append(int.from_bytes(digest[:8], "big") / 2**64 - 0.5)
        norm = math.sqrt(sum(v * v for v in values))
        return [v / norm for v in values]


class InMemoryVectorStore(VectorStore):
    """Vector store keeping collections in dictionaries.

    Behaves like the index service where the pipeline depends on it:
    upsert replaces by id, vectors of the wrong dimension are rejected,
    and matches come back ranked by the collection metric.
    """

    def __init__(self) -> None:
        self.schemas: dict[str, CollectionSchema] = {}
        self.points: dict[str, dict[str, VectorRecord]] = {}
        self.create_calls = 0
        self.upsert_calls = 0
        self.closed = False

    async def collection_exists(self, name: str) -> bool:
        return name in self.schemas

    async def create_collection(self, schema: CollectionSchema) -> None:
        self.create_calls += 1
        if schema.name in self.schemas:
            raise VectorStoreError(
                f"Collection already exists: {schema.name}",
                code=ErrorCode.COLLECTION_EXISTS,
            )
        self.schemas[schema.name] = schema
        self.points[schema.name] = {}

    async def get_collection_schema(self, name: str) -> CollectionSchema | None:
        return self.schemas.get(name)

    async def delete_collection(self, name: str) -> None:
        self.schemas.pop(name)
        self.points.pop(name)

    async def upsert(self, collection: str, records: list[VectorRecord]) -> int:
        self.upsert_calls += 1
        schema = self._schema(collection)
        for record in records:
            if len(record.vector) != schema.dimension:
                raise SchemaMismatchError("Wrong input: Vector dimension error")
        for record in records:
            self.points[collection][record.id] = record.model_copy(deep=True)
        return len(records)

    async def query(self, collection: str, query: SearchQuery) -> list[Match]:
        schema = self._schema(collection)
        scored = [
            (self._score(schema.distance, query.vector, record.vector), record)
            for record in self.points[collection].values()
        ]
        descending = schema.distance in (DistanceMetric.COSINE, DistanceMetric.DOT)
        scored.sort(key=lambda item: item[0], reverse=descending)
        return [
            Match(
                id=record.id,
                score=score,
                payload=dict(record.payload) if query.include_payload else {},
            )
            for score, record in scored[: query.top_k]
        ]

    async def fetch(self, collection: str, ids: list[str]) -> list[VectorRecord]:
        points = self.points[collection]
        return [points[i] for i in ids if i in points]

    async def count(self, collection: str) -> int:
        return len(self.points[collection])

    async def delete(self, collection: str, ids: list[str]) -> int:
        points = self.points[collection]
        return sum(1 for i in ids if points.pop(i, None) is not None)

    async def close(self) -> None:
        self.closed = True

    def _schema(self, collection: str) -> CollectionSchema:
        if collection not in self.schemas:
            raise VectorStoreError(
                f"Collection not found: {collection}",
                code=ErrorCode.COLLECTION_NOT_FOUND,
            )
        return self.schemas[collection]

    @staticmethod
    def _score(metric: DistanceMetric, a: list[float], b: list[float]) -> float:
        if metric == DistanceMetric.EUCLID:
            return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))
        if metric == DistanceMetric.MANHATTAN:
            return sum(abs(x - y) for x, y in zip(a, b))
        dot = sum(x * y for x, y in zip(a, b))
        if metric == DistanceMetric.DOT:
            return dot
        norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
        return dot / norm if norm else 0.0


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def embedding_service() -> HashingEmbeddingService:
    """Deterministic 384-dimensional embedding engine."""
    return HashingEmbeddingService()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    """Empty in-memory vector store."""
    return InMemoryVectorStore()


@pytest.fixture
def schema() -> CollectionSchema:
    """Schema of the reference collection."""
    return CollectionSchema(name="rig-collection", dimension=384, distance=DistanceMetric.COSINE)


@pytest.fixture
def embedding_factory() -> type[HashingEmbeddingService]:
    """Factory for engines with custom dimensions or broken alignment."""
    return HashingEmbeddingService


@pytest.fixture
def pipeline(
    embedding_service: HashingEmbeddingService,
    vector_store: InMemoryVectorStore,
    schema: CollectionSchema,
) -> IngestionPipeline:
    """Pipeline wired to the deterministic engine and in-memory store."""
    return IngestionPipeline(embedding_service, vector_store, schema)


@pytest.fixture
def pipeline_app(pipeline: IngestionPipeline) -> Generator[IngestionPipeline, None, None]:
    """Attach the test pipeline to the application for the duration of a test."""
    app.state.pipeline = pipeline
    yield pipeline
    app.state.pipeline = None

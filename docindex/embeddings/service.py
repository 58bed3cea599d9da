"""Embedding engine interface and implementations."""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx

from docindex.config import EmbeddingProvider, EmbeddingSettings, get_settings
from docindex.exceptions import ConfigurationError, EmbeddingError, ErrorCode
from docindex.logging_config import get_logger
from docindex.observability.metrics import track_embedding_request

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = get_logger(__name__)

# Known model dimensions
MODEL_DIMENSIONS = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "all-MiniLM-L6-v2": 384,
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}


class EmbeddingService(ABC):
    """Abstract base class for embedding engines.

    Implementations map an ordered sequence of texts to an ordered
    sequence of vectors, one per text, all of the same dimension.
    """

    @abstractmethod
    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Args:
            texts: Texts to embed, in order.

        Returns:
            One vector per text, in input order.

        Raises:
            EmbeddingError: If embedding fails.
        """
        ...

    async def embed(self, text: str) -> list[float]:
        """Generate the embedding of a single text."""
        vectors = await self.embed_texts([text])
        if len(vectors) != 1:
            raise EmbeddingError(
                f"Expected one embedding, got {len(vectors)}",
                details={"returned": len(vectors)},
            )
        return vectors[0]

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name used for embeddings."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Get the embedding dimensions."""
        ...

    async def close(self) -> None:
        """Release resources held by the engine."""
        return None


class HTTPEmbeddingService(EmbeddingService):
    """Embedding service using HTTP API.

    Compatible with OpenAI-style embedding APIs and
    text-embeddings-inference (TEI) servers.
    """

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP embedding service.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().embedding
        self._client = client
        self._owns_client = client is None
        self._dimensions: int | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        if self._settings.dimensions is not None:
            return self._settings.dimensions
        if self._dimensions is not None:
            return self._dimensions
        if self._settings.model in MODEL_DIMENSIONS:
            return MODEL_DIMENSIONS[self._settings.model]
        raise ConfigurationError(
            f"Unknown dimensions for embedding model: {self._settings.model}",
            details={"model": self._settings.model, "hint": "set EMBEDDING_DIMENSIONS"},
        )

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts, batch by batch.

        Args:
            texts: Texts to embed.

        Returns:
            One vector per text, in input order.

        Raises:
            EmbeddingError: If embedding fails.
        """
        if not texts:
            return []

        client = await self._get_client()
        url = f"{self._settings.base_url.rstrip('/')}/embeddings"
        batch_size = self._settings.batch_size

        vectors: list[list[float]] = []
        for i in range(0, len(texts), batch_size):
            batch = list(texts[i : i + batch_size])
            start = time.perf_counter()
            try:
                vectors.extend(await self._embed_batch_request(client, url, batch))
            except EmbeddingError:
                track_embedding_request(
                    self.model_name, time.perf_counter() - start, len(batch), success=False
                )
                raise
            track_embedding_request(self.model_name, time.perf_counter() - start, len(batch))

        return vectors

    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        url: str,
        texts: list[str],
    ) -> list[list[float]]:
        """Make embedding request for a batch.

        Args:
            client: HTTP client.
            url: Embedding endpoint URL.
            texts: Batch of texts.

        Returns:
            Vectors in input order.

        Raises:
            EmbeddingError: If request fails.
        """
        payload = {
            "input": texts,
            "model": self._settings.model,
        }

        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Embedding request failed: {e.response.status_code}",
                extra={"url": url, "status": e.response.status_code},
            )
            raise EmbeddingError(
                f"Embedding service returned {e.response.status_code}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error(
                f"Embedding request error: {e}",
                extra={"url": url},
            )
            raise EmbeddingError(
                f"Failed to connect to embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"url": url},
            ) from e

        try:
            data: list[dict[str, Any]] = response.json()["data"]
            # OpenAI-style responses carry the input position; do not trust list order.
            if all("index" in item for item in data):
                data = sorted(data, key=lambda item: item["index"])

            vectors = [[float(x) for x in item["embedding"]] for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"error": str(e)},
            ) from e

        if self._dimensions is None and vectors:
            self._dimensions = len(vectors[0])

        return vectors


class SentenceTransformerEmbeddingService(EmbeddingService):
    """Embedding engine running a sentence-transformers model in-process.

    Encoding is CPU/accelerator bound, so it runs in a worker thread and
    never blocks the event loop. The model is loaded on first use.
    """

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        model: "SentenceTransformer | None" = None,
    ) -> None:
        """Initialize the local embedding engine.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            model: Preloaded model (for testing).
        """
        self._settings = settings or get_settings().embedding
        self._model = model

    def _get_model(self) -> "SentenceTransformer":
        """Load the model on first use."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.debug(f"Loading SentenceTransformer model: '{self.model_name}'")
            try:
                self._model = SentenceTransformer(self.model_name)
            except Exception as e:
                raise EmbeddingError(
                    f"Failed to load embedding model '{self.model_name}': {e}",
                    details={"model": self.model_name},
                ) from e
            logger.info(f"SentenceTransformer model '{self.model_name}' loaded")
        return self._model

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions, loading the model for unknown names."""
        if self._settings.dimensions is not None:
            return self._settings.dimensions
        if self._settings.model in MODEL_DIMENSIONS:
            return MODEL_DIMENSIONS[self._settings.model]
        size = self._get_model().get_sentence_embedding_dimension()
        if size is None:
            raise ConfigurationError(
                f"Model does not report its dimension: {self.model_name}",
                details={"model": self.model_name, "hint": "set EMBEDDING_DIMENSIONS"},
            )
        return int(size)

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Encode texts in a worker thread."""
        if not texts:
            return []

        start = time.perf_counter()
        try:
            vectors = await asyncio.to_thread(self._encode, list(texts))
        except EmbeddingError:
            track_embedding_request(
                self.model_name, time.perf_counter() - start, len(texts), success=False
            )
            raise
        track_embedding_request(self.model_name, time.perf_counter() - start, len(texts))
        return vectors

    def _encode(self, texts: list[str]) -> list[list[float]]:
        model = self._get_model()
        try:
            encoded = model.encode(
                texts,
                batch_size=self._settings.batch_size,
                show_progress_bar=self._settings.show_progress,
                convert_to_numpy=True,
            )
        except Exception as e:
            logger.error(f"Embedding model failed: {e}", extra={"model": self.model_name})
            raise EmbeddingError(
                f"Embedding model failed: {e}",
                details={"model": self.model_name, "batch_size": len(texts)},
            ) from e
        return [[float(x) for x in row] for row in encoded.tolist()]


def create_embedding_service(settings: EmbeddingSettings | None = None) -> EmbeddingService:
    """Build the embedding engine selected by configuration."""
    settings = settings or get_settings().embedding
    if settings.provider == EmbeddingProvider.HTTP:
        return HTTPEmbeddingService(settings=settings)
    return SentenceTransformerEmbeddingService(settings=settings)

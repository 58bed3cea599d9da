"""Embedding engine module."""

from docindex.embeddings.service import (
    EmbeddingService,
    HTTPEmbeddingService,
    SentenceTransformerEmbeddingService,
    create_embedding_service,
)

__all__ = [
    "EmbeddingService",
    "HTTPEmbeddingService",
    "SentenceTransformerEmbeddingService",
    "create_embedding_service",
]

"""Vector store module."""

from docindex.vectorstore.models import (
    CollectionSchema,
    CollectionState,
    DistanceMetric,
    Match,
    SearchQuery,
    VectorRecord,
)
from docindex.vectorstore.service import QdrantVectorStore, VectorStore

__all__ = [
    "CollectionSchema",
    "CollectionState",
    "DistanceMetric",
    "Match",
    "QdrantVectorStore",
    "SearchQuery",
    "VectorRecord",
    "VectorStore",
]

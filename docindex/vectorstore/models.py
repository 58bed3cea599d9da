"""Vector store data models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from docindex.config import DistanceMetric

__all__ = [
    "CollectionSchema",
    "CollectionState",
    "DistanceMetric",
    "Match",
    "SearchQuery",
    "VectorRecord",
]


class CollectionState(str, Enum):
    """Outcome of ensuring a collection exists."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class CollectionSchema(BaseModel):
    """Fixed vector schema of a collection.

    Attributes:
        name: Collection name.
        dimension: Length of every stored vector.
        distance: Metric used to rank vectors.
    """

    name: str = Field(min_length=1, description="Collection name")
    dimension: int = Field(ge=1, description="Vector dimension")
    distance: DistanceMetric = Field(
        default=DistanceMetric.COSINE,
        description="Distance metric",
    )


class VectorRecord(BaseModel):
    """A record to store in the vector database.

    Attributes:
        id: Unique identifier for the record.
        vector: The embedding vector.
        payload: Additional metadata to store with the vector.
    """

    id: str = Field(description="Unique record identifier")
    vector: list[float] = Field(description="Embedding vector")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Metadata payload",
    )


class SearchQuery(BaseModel):
    """A similarity query.

    Attributes:
        vector: Query vector.
        top_k: Maximum number of matches.
        include_payload: Return stored payloads with matches.
        filters: Exact-match payload filters.
        score_threshold: Drop matches the service scores below this value.
    """

    vector: list[float] = Field(description="Query vector")
    top_k: int = Field(default=10, ge=1, description="Maximum matches to return")
    include_payload: bool = Field(default=True, description="Return payloads")
    filters: dict[str, Any] | None = Field(default=None, description="Payload filters")
    score_threshold: float | None = Field(default=None, description="Minimum score")


class Match(BaseModel):
    """Result from a vector similarity search.

    Attributes:
        id: Record identifier.
        score: Similarity score in the collection metric.
        payload: Stored metadata.
    """

    id: str = Field(description="Record identifier")
    score: float = Field(description="Similarity score")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Record metadata",
    )

"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class EmbeddingProvider(str, Enum):
    """Where embeddings are computed."""

    LOCAL = "local"
    HTTP = "http"


class IdentityPolicy(str, Enum):
    """How record identities are derived."""

    RANDOM = "random"
    CONTENT = "content"


class DistanceMetric(str, Enum):
    """Distance metrics supported by the index service."""

    COSINE = "Cosine"
    DOT = "Dot"
    EUCLID = "Euclid"
    MANHATTAN = "Manhattan"


class InvalidPayloadAction(str, Enum):
    """What to do with a document whose metadata cannot be stored."""

    ABORT = "abort"
    SKIP = "skip"


class EmbeddingSettings(BaseSettings):
    """Embedding engine configuration.

    The local provider runs a sentence-transformers model in-process,
    the HTTP provider talks to an OpenAI-compatible or TEI server.
    """

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    provider: EmbeddingProvider = Field(
        default=EmbeddingProvider.LOCAL,
        description="Embedding provider (local model or HTTP service)",
    )
    base_url: str = Field(
        default="http://localhost:8080",
        description="Embedding service base URL (HTTP provider)",
    )
    model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Embedding model name",
    )
    batch_size: int = Field(
        default=32,
        ge=1,
        description="Batch size for embedding requests",
    )
    timeout: float = Field(
        default=60.0,
        description="Request timeout in seconds (HTTP provider)",
    )
    show_progress: bool = Field(
        default=False,
        description="Show a progress bar while encoding (local provider)",
    )
    dimensions: int | None = Field(
        default=None,
        ge=1,
        description="Override for the embedding dimension of unknown models",
    )


class QdrantSettings(BaseSettings):
    """Qdrant vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    collection_name: str = Field(
        default="rig-collection",
        description="Default collection name",
    )
    vector_size: int = Field(
        default=384,
        ge=1,
        description="Vector dimension of the default collection",
    )
    distance: DistanceMetric = Field(
        default=DistanceMetric.COSINE,
        description="Distance metric of the default collection",
    )
    timeout: int = Field(
        default=10,
        ge=1,
        description="Per-request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts for transient failures (including the first)",
    )
    retry_min_wait: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum backoff between retries in seconds",
    )
    retry_max_wait: float = Field(
        default=8.0,
        ge=0.0,
        description="Maximum backoff between retries in seconds",
    )
    upsert_batch_size: int = Field(
        default=256,
        ge=1,
        description="Maximum points per upsert request",
    )


class PipelineSettings(BaseSettings):
    """Ingestion pipeline behaviour."""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    identity_policy: IdentityPolicy = Field(
        default=IdentityPolicy.RANDOM,
        description="Record identity policy (random or content hash)",
    )
    on_invalid_payload: InvalidPayloadAction = Field(
        default=InvalidPayloadAction.ABORT,
        description="Abort the run or skip documents with unsupported metadata",
    )
    self_check_top_k: int = Field(
        default=1,
        ge=1,
        description="Results requested by the post-ingestion self-check query",
    )
    run_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Deadline in seconds for a whole run (None disables it)",
    )
    validate_existing_schema: bool = Field(
        default=True,
        description="Compare the schema of an existing collection before writing",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()

"""Document data models."""

import hashlib
from typing import Any
from uuid import UUID, uuid5

from pydantic import BaseModel, ConfigDict, Field

# Namespace for content-derived record identities.
CONTENT_ID_NAMESPACE = UUID("5b0f3c52-2f4e-4c55-9a53-3f1c6b8a7d21")


class Document(BaseModel):
    """An immutable text record, the unit of ingestion.

    Attributes:
        text: The text content of the document.
        metadata: Extra fields stored next to the text in the payload.
        id: Caller-supplied stable identity, if any.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Text content of the document")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional metadata fields",
    )
    id: UUID | None = Field(
        default=None,
        description="Stable record identity supplied by the caller",
    )

    @classmethod
    def from_text(cls, text: str, **metadata: Any) -> "Document":
        """Create a document from text content.

        Args:
            text: The text content.
            **metadata: Additional metadata.

        Returns:
            New Document instance.
        """
        return cls(text=text, metadata=metadata)

    def content_id(self) -> UUID:
        """Derive a deterministic identity from the normalised text.

        Whitespace runs collapse to a single space and the ends are trimmed,
        so texts differing only in spacing share an identity.
        """
        normalized = " ".join(self.text.split())
        digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
        return uuid5(CONTENT_ID_NAMESPACE, digest)

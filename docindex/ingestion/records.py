"""Conversion of (document, embedding) pairs into index records."""

import math
from collections.abc import Sequence
from typing import Any
from uuid import uuid4

from docindex.config import IdentityPolicy
from docindex.documents.models import Document
from docindex.exceptions import PayloadEncodingError
from docindex.ingestion.alignment import check_alignment
from docindex.vectorstore.models import VectorRecord

# Payload key holding the document text.
DOCUMENT_KEY = "document"

_SCALAR_TYPES = (str, int, float, bool)


def encode_payload(document: Document) -> dict[str, Any]:
    """Build the payload of a document.

    The text goes under ``document``; every metadata field keeps its own key.

    Raises:
        PayloadEncodingError: If a metadata field is named ``document`` or
            its value is not a string, number, boolean or None.
    """
    payload: dict[str, Any] = {DOCUMENT_KEY: document.text}

    for field, value in document.metadata.items():
        if field == DOCUMENT_KEY:
            raise PayloadEncodingError(
                f"Metadata field '{field}' collides with the document text key",
                field=field,
            )
        if value is not None and not isinstance(value, _SCALAR_TYPES):
            raise PayloadEncodingError(
                f"Metadata field '{field}' has unsupported type {type(value).__name__}",
                field=field,
                details={"type": type(value).__name__},
            )
        if isinstance(value, float) and not math.isfinite(value):
            raise PayloadEncodingError(
                f"Metadata field '{field}' is not a finite number",
                field=field,
            )
        payload[field] = value

    return payload


class RecordBuilder:
    """Builds index records from aligned documents and embeddings.

    Building has no side effects, so it is safe to retry or to run
    concurrently on independent pairs.
    """

    def __init__(self, identity_policy: IdentityPolicy = IdentityPolicy.RANDOM) -> None:
        """Initialize the builder.

        Args:
            identity_policy: How identities are derived for documents without
                a caller-supplied ``id``.
        """
        self.identity_policy = identity_policy

    def record_id(self, document: Document) -> str:
        """Identity of the record built from a document."""
        if document.id is not None:
            return str(document.id)
        if self.identity_policy == IdentityPolicy.CONTENT:
            return str(document.content_id())
        return str(uuid4())

    def build(self, document: Document, embedding: Sequence[float]) -> VectorRecord:
        """Convert one (document, embedding) pair into a record.

        Raises:
            PayloadEncodingError: If the metadata cannot be stored.
        """
        return VectorRecord(
            id=self.record_id(document),
            vector=[float(x) for x in embedding],
            payload=encode_payload(document),
        )

    def build_many(
        self,
        documents: Sequence[Document],
        embeddings: Sequence[Sequence[float]],
    ) -> list[VectorRecord]:
        """Build one record per pair, in document order.

        Raises:
            AlignmentError: If the sequences differ in length.
            PayloadEncodingError: On the first unsupported metadata value.
        """
        check_alignment(documents, embeddings)
        return [self.build(doc, emb) for doc, emb in zip(documents, embeddings)]

"""Document models."""

from docindex.documents.models import Document

__all__ = [
    "Document",
]

"""Document/embedding alignment check."""

from collections.abc import Sequence

from docindex.documents.models import Document
from docindex.exceptions import AlignmentError


def check_alignment(
    documents: Sequence[Document],
    embeddings: Sequence[Sequence[float]],
) -> None:
    """Verify the engine returned exactly one vector per document.

    The engine's contract is to preserve input order, so equal lengths are
    the only thing left to check. A mismatch is a contract breach: nothing
    is truncated or padded.

    Raises:
        AlignmentError: If the lengths differ.
    """
    if len(documents) != len(embeddings):
        raise AlignmentError(documents=len(documents), embeddings=len(embeddings))

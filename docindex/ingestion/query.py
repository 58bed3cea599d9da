"""Similarity query execution."""

from docindex.exceptions import ValidationError
from docindex.logging_config import get_logger
from docindex.vectorstore.models import Match, SearchQuery
from docindex.vectorstore.service import VectorStore

logger = get_logger(__name__)


class QueryExecutor:
    """Runs similarity queries against a collection.

    Ranking belongs to the index service: matches come back in the
    order it returns them, without local re-sorting or re-scoring.
    """

    def __init__(self, vector_store: VectorStore) -> None:
        self._vector_store = vector_store

    async def query(self, collection: str, query: SearchQuery) -> list[Match]:
        """Return the ranked matches for a query vector.

        Asking for more results than the collection holds returns all of them.

        Raises:
            ValidationError: If the query vector is empty or top_k is not positive.
            IndexQueryError: If the service fails after retries.
        """
        if not query.vector:
            raise ValidationError("Query vector must not be empty")
        if query.top_k < 1:
            raise ValidationError(
                "top_k must be a positive integer",
                details={"top_k": query.top_k},
            )

        matches = await self._vector_store.query(collection, query)

        logger.debug(
            f"Query returned {len(matches)} matches",
            extra={
                "collection": collection,
                "top_k": query.top_k,
                "top_score": matches[0].score if matches else None,
            },
        )
        return matches

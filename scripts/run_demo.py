#!/usr/bin/env python
"""Ingest a few documents and query them back.

Usage:
    python -m scripts.run_demo --collection rig-collection --top-k 1

Embeds the documents, upserts them into the collection (creating it if
needed) and runs a self-check query with the first document's own
embedding. Qdrant and embedding settings come from the environment.
"""

import argparse
import asyncio
import json
import sys

from docindex.config import get_settings
from docindex.documents.models import Document
from docindex.exceptions import DocIndexError
from docindex.ingestion.pipeline import IngestionPipeline
from docindex.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

DEFAULT_DOCUMENTS = ["Some text", "Mofo ", "wwW"]


async def run_demo(
    texts: list[str],
    collection: str | None,
    top_k: int,
    reset: bool,
) -> int:
    """Run one ingestion-and-query cycle and print the matches.

    Args:
        texts: Document texts to ingest.
        collection: Collection override.
        top_k: Matches requested by the self-check query.
        reset: Drop the collection first.

    Returns:
        Process exit code.
    """
    setup_logging()

    settings = get_settings()
    qdrant = settings.qdrant.model_copy(
        update={"collection_name": collection or settings.qdrant.collection_name}
    )
    pipeline_settings = settings.pipeline.model_copy(update={"self_check_top_k": top_k})
    settings = settings.model_copy(update={"qdrant": qdrant, "pipeline": pipeline_settings})

    pipeline = IngestionPipeline.from_settings(settings)
    try:
        if reset and await pipeline.vector_store.collection_exists(pipeline.schema.name):
            await pipeline.vector_store.delete_collection(pipeline.schema.name)

        run = await pipeline.run([Document(text=text) for text in texts])
    except DocIndexError as e:
        logger.error(f"Demo failed: {e.message}")
        print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
        return 1
    finally:
        await pipeline.close()

    print(f"Embeddings length: {len(run.record_ids)}")
    print(f"Collection `{run.collection}`: {run.collection_state.value if run.collection_state else '-'}")
    print(json.dumps([match.model_dump() for match in run.matches], indent=2))
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Ingest documents and query them back")
    parser.add_argument(
        "texts",
        nargs="*",
        default=DEFAULT_DOCUMENTS,
        help="Document texts (defaults to a small sample)",
    )
    parser.add_argument(
        "--collection",
        default=None,
        help="Collection name (default from QDRANT_COLLECTION_NAME)",
    )
    parser.add_argument(
        "--top-k",
        type=int,
        default=1,
        help="Matches returned by the self-check query",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete the collection before ingesting",
    )

    args = parser.parse_args()
    if args.top_k < 1:
        parser.error("--top-k must be positive")

    sys.exit(asyncio.run(run_demo(args.texts, args.collection, args.top_k, args.reset)))


if __name__ == "__main__":
    main()

"""Embedding-indexed ingestion pipeline."""

from docindex.ingestion.alignment import check_alignment
from docindex.ingestion.collection import CollectionManager
from docindex.ingestion.models import PipelineRun, PipelineStage, SkippedDocument
from docindex.ingestion.pipeline import IngestionPipeline
from docindex.ingestion.query import QueryExecutor
from docindex.ingestion.records import DOCUMENT_KEY, RecordBuilder, encode_payload
from docindex.ingestion.writer import IndexWriter

__all__ = [
    "DOCUMENT_KEY",
    "CollectionManager",
    "IndexWriter",
    "IngestionPipeline",
    "PipelineRun",
    "PipelineStage",
    "QueryExecutor",
    "RecordBuilder",
    "SkippedDocument",
    "check_alignment",
    "encode_payload",
]

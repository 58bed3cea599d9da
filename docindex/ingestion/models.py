"""Ingestion pipeline data models."""

from enum import Enum

from pydantic import BaseModel, Field

from docindex.vectorstore.models import CollectionState, Match


class PipelineStage(str, Enum):
    """Stages of one ingestion-and-query run."""

    IDLE = "idle"
    EMBEDDING = "embedding"
    ALIGNING = "aligning"
    BUILDING_RECORDS = "building_records"
    ENSURING_COLLECTION = "ensuring_collection"
    WRITING = "writing"
    QUERYING = "querying"
    DONE = "done"
    FAILED = "failed"


_ORDER = [
    PipelineStage.IDLE,
    PipelineStage.EMBEDDING,
    PipelineStage.ALIGNING,
    PipelineStage.BUILDING_RECORDS,
    PipelineStage.ENSURING_COLLECTION,
    PipelineStage.WRITING,
    PipelineStage.QUERYING,
    PipelineStage.DONE,
]

# Each working stage moves to the next one or to FAILED; DONE and FAILED are final.
TRANSITIONS: dict[PipelineStage, frozenset[PipelineStage]] = {
    stage: frozenset({following, PipelineStage.FAILED})
    for stage, following in zip(_ORDER, _ORDER[1:])
}
TRANSITIONS[PipelineStage.DONE] = frozenset()
TRANSITIONS[PipelineStage.FAILED] = frozenset()


class SkippedDocument(BaseModel):
    """A document left out of a run because its metadata could not be stored.

    Attributes:
        position: Index of the document in the input batch.
        field: Offending metadata field.
        reason: Error message.
    """

    position: int = Field(description="Index in the input batch")
    field: str = Field(description="Offending metadata field")
    reason: str = Field(description="Why the document was skipped")


class PipelineRun(BaseModel):
    """State and outcome of one pipeline run.

    Attributes:
        run_id: Identifier used in logs and error details.
        collection: Target collection.
        stage: Current stage.
        history: Every stage entered, in order.
        collection_state: Whether the collection was created or found.
        record_ids: Identities of the records built, in document order.
        records_written: Records acknowledged by the index service.
        skipped: Documents dropped for unsupported metadata.
        matches: Ranked matches of the final query.
        error: Failure message, when the run failed.
        elapsed: Seconds spent in the run.
    """

    run_id: str = Field(description="Run identifier")
    collection: str = Field(description="Target collection")
    stage: PipelineStage = Field(default=PipelineStage.IDLE)
    history: list[PipelineStage] = Field(
        default_factory=lambda: [PipelineStage.IDLE],
    )
    collection_state: CollectionState | None = None
    record_ids: list[str] = Field(default_factory=list)
    records_written: int = 0
    skipped: list[SkippedDocument] = Field(default_factory=list)
    matches: list[Match] = Field(default_factory=list)
    error: str | None = None
    elapsed: float = 0.0

    def advance(self, stage: PipelineStage) -> None:
        """Move to the next stage, rejecting transitions the table forbids."""
        if stage not in TRANSITIONS[self.stage]:
            raise RuntimeError(
                f"Illegal pipeline transition: {self.stage.value} -> {stage.value}"
            )
        self.stage = stage
        self.history.append(stage)

    def add_written(self, count: int) -> None:
        """Count records the index service acknowledged."""
        self.records_written += count

    def fail(self, reason: str) -> PipelineStage:
        """Move to FAILED and return the stage that failed."""
        failed_at = self.stage
        self.advance(PipelineStage.FAILED)
        self.error = reason
        return failed_at

    @property
    def succeeded(self) -> bool:
        """Whether the run reached DONE."""
        return self.stage == PipelineStage.DONE

"""Run state, metrics and result models for the pipeline orchestrator."""

from datetime import date, datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from jobs_etl.models.enums import PipelineMode, PipelineStage, PipelineStatus
from jobs_etl.models.job import JobDetails, ProcessedJob

T = TypeVar("T")
F = TypeVar("F")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineError(BaseModel):
    """A single recorded item, batch or phase failure."""

    model_config = ConfigDict(frozen=True)

    stage: PipelineStage
    error: str
    job_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)


class PhaseTotals(BaseModel):
    """Per-phase totals reported in a result."""

    total: int = 0
    successful: int = 0
    failed: int = 0


class StorageTotals(PhaseTotals):
    """Storage totals, including the live migration counter."""

    migrated_to_live: int = 0


class PipelineMetrics(BaseModel):
    """Metrics accumulated over a single run."""

    # Counters
    jobs_scraped: int = 0
    jobs_processed: int = 0
    jobs_stored: int = 0
    failed_scrapes: int = 0
    failed_processes: int = 0
    failed_storage: int = 0
    skipped_scrapes: int = 0
    skipped_processes: int = 0

    # Timing
    start_time: datetime = Field(default_factory=utcnow)
    end_time: datetime | None = None
    total_duration: int | None = Field(
        default=None,
        description="Run duration in milliseconds, set once end_time is stamped",
    )

    # Error audit trail
    errors: list[PipelineError] = Field(default_factory=list)

    # Phase totals (filled in when the result is assembled)
    scraping: PhaseTotals | None = None
    processing: PhaseTotals | None = None
    storage: StorageTotals | None = None

    def finalize(self) -> None:
        """Stamp end_time and derive total_duration."""
        self.end_time = utcnow()
        elapsed = (self.end_time - self.start_time).total_seconds() * 1000
        self.total_duration = max(0, int(elapsed))


class PipelineOptions(BaseModel):
    """Caller-supplied run configuration."""

    pipeline_mode: PipelineMode = PipelineMode.ALL
    max_records: int | None = Field(
        default=None,
        description="Cap on records per phase; 0 or None means unlimited",
    )
    skip_processing: bool = False
    skip_storage: bool = False
    migrate_to_live: bool = False

    # Listing filters
    start_date: date | None = None
    end_date: date | None = None
    agencies: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)

    # Pre-scraped jobs for process_only mode
    jobs: list[JobDetails] | None = None


class PipelineState(BaseModel):
    """Mutable state of the current run, owned by the orchestrator."""

    status: PipelineStatus = PipelineStatus.IDLE
    current_stage: PipelineStage = PipelineStage.SCRAPING
    current_batch: int = 0
    total_batches: int = 0
    options: PipelineOptions = Field(default_factory=PipelineOptions)
    metrics: PipelineMetrics = Field(default_factory=PipelineMetrics)
    last_error: PipelineError | None = None

    def to_status_dict(self) -> dict[str, Any]:
        """Convert to status response dictionary."""
        return {
            "status": self.status.value,
            "current_stage": self.current_stage.value,
            "current_batch": self.current_batch,
            "total_batches": self.total_batches,
            "max_records": self.options.max_records,
            "pipeline_mode": self.options.pipeline_mode.value,
            "metrics": self.metrics.model_dump(mode="json", exclude={"errors"}),
            "error_count": len(self.metrics.errors),
            "last_error": self.last_error.model_dump(mode="json") if self.last_error else None,
        }


class BatchResult(BaseModel, Generic[T, F]):
    """Outcome of a phase: successful and failed items."""

    success: list[T] = Field(default_factory=list)
    failed: list[F] = Field(default_factory=list)


class FailedJobs(BaseModel):
    """Failed items grouped by phase."""

    scraping: list[JobDetails] = Field(default_factory=list)
    processing: list[JobDetails] = Field(default_factory=list)
    storage: list[ProcessedJob] = Field(default_factory=list)


class PipelineJobs(BaseModel):
    """Items produced by a run, grouped by phase."""

    scraped: list[JobDetails] = Field(default_factory=list)
    processed: list[ProcessedJob] = Field(default_factory=list)
    stored: list[ProcessedJob] = Field(default_factory=list)
    failed: FailedJobs = Field(default_factory=FailedJobs)


class PipelineResult(BaseModel):
    """Final outcome of run_pipeline."""

    status: PipelineStatus
    metrics: PipelineMetrics
    jobs: PipelineJobs = Field(default_factory=PipelineJobs)

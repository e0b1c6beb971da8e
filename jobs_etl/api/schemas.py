"""API request/response schemas."""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from jobs_etl.models.enums import PipelineMode, PipelineStatus
from jobs_etl.models.job import JobDetails
from jobs_etl.models.pipeline import PipelineOptions


class PipelineRunRequest(BaseModel):
    """Request to start a pipeline run."""

    pipeline_mode: PipelineMode = Field(
        default=PipelineMode.ALL,
        description="Pipeline mode: 'scrape_only', 'process_only' or 'all'",
    )
    max_records: int | None = Field(
        default=None,
        description="Cap on records per phase (0 or unset for all). MAX_RECORDS overrides it.",
    )
    skip_processing: bool = Field(default=False, description="Skip the processing phase")
    skip_storage: bool = Field(default=False, description="Skip the storage phase")
    migrate_to_live: bool = Field(
        default=False,
        description="Copy stored jobs from staging to the live tables",
    )
    start_date: date | None = Field(default=None, description="Earliest posted date")
    end_date: date | None = Field(default=None, description="Latest posted date")
    agencies: list[str] = Field(default_factory=list, description="Only these agencies")
    locations: list[str] = Field(default_factory=list, description="Only these locations")
    jobs: list[JobDetails] | None = Field(
        default=None,
        description="Pre-scraped jobs for process_only mode",
    )

    def to_options(self) -> PipelineOptions:
        return PipelineOptions(**self.model_dump())


class PipelineControlResponse(BaseModel):
    """Response for run/pause/resume/stop."""

    accepted: bool
    status: PipelineStatus
    message: str = ""


class PipelineStatusResponse(BaseModel):
    """Current pipeline status."""

    status: PipelineStatus
    current_stage: str
    current_batch: int
    total_batches: int
    max_records: int | None = None
    pipeline_mode: PipelineMode
    metrics: dict[str, Any]
    error_count: int = 0
    last_error: dict[str, Any] | None = None
    running: bool = False
    has_result: bool = False
    run_error: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str
    pipeline_status: PipelineStatus

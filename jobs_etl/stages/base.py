"""Collaborator contracts consumed by the pipeline orchestrator.

The orchestrator drives three stages:

- SourceStage: produces listing summaries and fetches full details.
- TransformStage: classifies and embeds batches of job details.
- SinkStage: persists processed jobs and answers skip-check queries.

Collaborators only ever receive batches of items; they never see the
orchestrator's run state.
"""

from abc import ABC, abstractmethod

from jobs_etl.models.job import (
    JobDetails,
    JobListing,
    JobStatusRecord,
    ProcessedJob,
    StorageJob,
)


class SourceStage(ABC):
    """Produces job listings and their details."""

    name: str = "source"

    @abstractmethod
    async def get_job_listings(self, max_records: int = 0) -> list[JobListing]:
        """Fetch listing summaries, at most ``max_records`` (0 = all)."""

    @abstractmethod
    async def get_job_details(self, listing: JobListing) -> JobDetails:
        """Fetch the full advert for a listing. May raise."""

    @abstractmethod
    async def cleanup(self) -> None:
        """Release per-batch resources. Must be safe to call repeatedly."""


class TransformStage(ABC):
    """Classifies and embeds job details."""

    name: str = "transform"

    async def initialize(self) -> None:
        """Prepare the stage before the first batch."""

    @abstractmethod
    async def process_batch(self, jobs: list[JobDetails]) -> list[ProcessedJob | None]:
        """Process a batch.

        Returns a list positionally aligned with ``jobs``; ``None`` marks
        an item that failed.
        """

    async def cleanup(self) -> None:
        """Release resources."""


class SinkStage(ABC):
    """Persists processed jobs and tracks per-job status."""

    name: str = "sink"

    async def initialize(self) -> None:
        """Prepare connections before the run."""

    @abstractmethod
    async def should_skip_scraping(self, job_id: str) -> bool:
        """True when the job's details are already durably scraped."""

    @abstractmethod
    async def should_skip_processing(self, job_id: str) -> bool:
        """True when the job is already durably processed."""

    @abstractmethod
    async def check_job_status(self, job_id: str) -> JobStatusRecord:
        """Current durable status of a job."""

    @abstractmethod
    async def store_batch(self, jobs: list[StorageJob]) -> None:
        """Persist a batch (idempotent upsert by job id). May raise."""

    async def migrate_batch_to_live(self, jobs: list[StorageJob]) -> int:
        """Copy stored jobs to the live tables, returning how many moved."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support live migration")

    async def cleanup(self) -> None:
        """Release resources."""

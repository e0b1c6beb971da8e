"""Pipeline orchestrator - drives the scrape, process and store phases.

A run moves through the phases selected by ``PipelineOptions.pipeline_mode``:

- scrape_only: listings -> details
- process_only: pre-scraped details -> classify/embed -> store
- all: listings -> details -> classify/embed -> store

Every phase works in batches. Item failures are recorded and the run
moves on; only a failure that escapes a phase aborts the run. Pause and
stop requests are observed at batch boundaries, so an in-flight batch
always runs to completion.
"""

import asyncio
from dataclasses import dataclass
from itertools import zip_longest
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import structlog

from jobs_etl.config import Settings, get_settings
from jobs_etl.models.enums import PipelineMode, PipelineStage, PipelineStatus
from jobs_etl.models.job import JobDetails, JobListing, ProcessedJob
from jobs_etl.models.pipeline import (
    BatchResult,
    PhaseTotals,
    PipelineError,
    PipelineJobs,
    PipelineMetrics,
    PipelineOptions,
    PipelineResult,
    PipelineState,
    StorageTotals,
)
from jobs_etl.pipeline.filters import filter_listings
from jobs_etl.pipeline.results import redact_jobs, to_storage_job
from jobs_etl.pipeline.validation import validate_options
from jobs_etl.stages.base import SinkStage, SourceStage, TransformStage

logger = structlog.get_logger()

ItemT = TypeVar("ItemT", JobListing, JobDetails)


class PipelineAlreadyRunningError(RuntimeError):
    """run_pipeline was called while another run is active."""


@dataclass
class OrchestratorConfig:
    """Orchestrator tuning, resolved once from settings."""

    batch_size: int = 10
    max_records_override: int | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorConfig":
        return cls(
            batch_size=settings.batch_size,
            max_records_override=settings.max_records,
        )


def chunk(items: Sequence[Any], size: int) -> list[list[Any]]:
    """Split items into consecutive batches of at most ``size``."""
    size = max(1, size)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class PipelineOrchestrator:
    """Coordinates the spider, processor and storage stages for one run at a time."""

    def __init__(
        self,
        config: OrchestratorConfig,
        spider: SourceStage,
        processor: TransformStage,
        storage: SinkStage,
    ):
        self.config = config
        self.spider = spider
        self.processor = processor
        self.storage = storage

        self.state = PipelineState()
        self._active = False
        self._stop_requested = False
        self._processor_ready = False
        # Set while running; cleared by pause()
        self._resume_event = asyncio.Event()
        self._resume_event.set()

    # =========================================================================
    # Control surface
    # =========================================================================

    def pause(self) -> bool:
        """Request a pause at the next batch boundary."""
        if self.state.status != PipelineStatus.RUNNING:
            logger.warning("pause_ignored", status=self.state.status.value)
            return False

        self._resume_event.clear()
        self.state.status = PipelineStatus.PAUSED
        logger.info(
            "pipeline_paused",
            stage=self.state.current_stage.value,
            batch=self.state.current_batch,
        )
        return True

    def resume(self) -> bool:
        """Resume a paused run."""
        if self.state.status != PipelineStatus.PAUSED:
            logger.warning("resume_ignored", status=self.state.status.value)
            return False

        self.state.status = PipelineStatus.RUNNING
        self._resume_event.set()
        logger.info("pipeline_resumed", stage=self.state.current_stage.value)
        return True

    def stop(self) -> bool:
        """Request a stop; no new batch starts after the current one."""
        if self.state.status not in (PipelineStatus.RUNNING, PipelineStatus.PAUSED):
            logger.warning("stop_ignored", status=self.state.status.value)
            return False

        self._stop_requested = True
        self.state.status = PipelineStatus.STOPPED
        # Release a paused run so it can observe the stop
        self._resume_event.set()
        logger.info(
            "pipeline_stop_requested",
            stage=self.state.current_stage.value,
            batch=self.state.current_batch,
        )
        return True

    def get_status(self) -> PipelineStatus:
        return self.state.status

    def get_metrics(self) -> PipelineMetrics:
        """Snapshot of the current run's metrics."""
        return self.state.metrics.model_copy(deep=True)

    def get_state(self) -> PipelineState:
        """Snapshot of the current run's state."""
        return self.state.model_copy(deep=True)

    @property
    def is_active(self) -> bool:
        return self._active

    # =========================================================================
    # Run
    # =========================================================================

    async def run_pipeline(self, options: PipelineOptions | None = None) -> PipelineResult:
        """Run the pipeline once.

        Args:
            options: Run options (defaults to mode ``all``, no cap)

        Returns:
            Result with redacted embedding vectors

        Raises:
            PipelineValidationError: invalid options, before any stage runs
            PipelineAlreadyRunningError: another run is active
            Exception: any failure that escapes a phase, after cleanup
        """
        if self._active:
            raise PipelineAlreadyRunningError("A pipeline run is already in progress")

        validate_options(options)

        self._active = True
        try:
            await self.initialize_pipeline(options)
            return await self._execute()
        except Exception as e:
            self.state.status = PipelineStatus.FAILED
            self.add_error(self.state.current_stage, e)
            self.state.metrics.finalize()
            logger.error(
                "pipeline_failed",
                stage=self.state.current_stage.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.cleanup()
            raise
        finally:
            self._active = False

    async def initialize_pipeline(self, options: PipelineOptions | None = None) -> None:
        """Reset run state and prepare the storage stage."""
        options = options.model_copy() if options else PipelineOptions()

        override = self.config.max_records_override
        if override is not None:
            max_records = max(override, 0)
            source = "environment"
        else:
            max_records = options.max_records or 0
            source = "options"

        self.state = PipelineState(
            status=PipelineStatus.RUNNING,
            options=options.model_copy(update={"max_records": max_records}),
            metrics=PipelineMetrics(),
        )
        self._stop_requested = False
        self._processor_ready = False
        self._resume_event = asyncio.Event()
        self._resume_event.set()

        logger.info(
            "pipeline_initialized",
            mode=options.pipeline_mode.value,
            max_records=max_records,
            max_records_enabled=max_records > 0,
            max_records_source=source,
            batch_size=self.config.batch_size,
        )

        await self.storage.initialize()

    async def _execute(self) -> PipelineResult:
        options = self.state.options
        mode = options.pipeline_mode
        jobs = PipelineJobs()
        migrated = 0

        if mode == PipelineMode.PROCESS_ONLY:
            scraped = list(options.jobs or [])
            if not scraped:
                logger.warning("process_only_without_jobs")
                return await self._finish(jobs, migrated)
        else:
            scrape = await self.scrape_jobs(options)
            jobs.scraped = scrape.success
            jobs.failed.scraping = scrape.failed
            scraped = scrape.success

        if mode != PipelineMode.SCRAPE_ONLY and not options.skip_processing:
            processed = await self.process_jobs(scraped, options)
            jobs.processed = processed.success
            jobs.failed.processing = processed.failed

            if not options.skip_storage:
                stored = await self.store_jobs(processed.success, options)
                jobs.stored = stored.success
                jobs.failed.storage = stored.failed

                if options.migrate_to_live and self._stop_requested:
                    logger.info("live_migration_skipped", reason="stopped", count=len(stored.success))
                elif options.migrate_to_live:
                    migrated = await self.migrate_to_live(stored.success)

        return await self._finish(jobs, migrated)

    async def _finish(self, jobs: PipelineJobs, migrated: int) -> PipelineResult:
        status = PipelineStatus.STOPPED if self._stop_requested else PipelineStatus.COMPLETED
        self.state.status = status

        await self.cleanup()

        metrics = self.state.metrics
        metrics.scraping = PhaseTotals(
            total=len(jobs.scraped) + len(jobs.failed.scraping),
            successful=len(jobs.scraped),
            failed=len(jobs.failed.scraping),
        )
        metrics.processing = PhaseTotals(
            total=len(jobs.processed) + len(jobs.failed.processing),
            successful=len(jobs.processed),
            failed=len(jobs.failed.processing),
        )
        metrics.storage = StorageTotals(
            total=len(jobs.stored) + len(jobs.failed.storage),
            successful=len(jobs.stored),
            failed=len(jobs.failed.storage),
            migrated_to_live=migrated,
        )
        metrics.finalize()

        logger.info(
            "pipeline_completed",
            status=status.value,
            duration_ms=metrics.total_duration,
            scraped=metrics.jobs_scraped,
            processed=metrics.jobs_processed,
            stored=metrics.jobs_stored,
            error_count=len(metrics.errors),
        )

        return PipelineResult(
            status=status,
            metrics=metrics.model_copy(deep=True),
            jobs=redact_jobs(jobs),
        )

    # =========================================================================
    # Phases
    # =========================================================================

    async def scrape_jobs(self, options: PipelineOptions) -> BatchResult[JobDetails, JobDetails]:
        """Fetch listings, then details for every listing not already scraped."""
        self._enter_stage(PipelineStage.SCRAPING)
        result = BatchResult[JobDetails, JobDetails]()
        max_records = options.max_records or 0

        listings = await self.spider.get_job_listings(max_records)
        if max_records > 0:
            listings = listings[:max_records]
        listings = filter_listings(listings, options)

        batch_size = (
            min(max_records, self.config.batch_size) if max_records > 0 else self.config.batch_size
        )
        batches = chunk(listings, batch_size)
        self.state.total_batches = len(batches)

        logger.info(
            "scrape_started",
            listings=len(listings),
            batches=len(batches),
            batch_size=batch_size,
            max_records=max_records,
        )

        for index, batch in enumerate(batches, start=1):
            if not await self._at_batch_boundary():
                logger.info("scrape_stopped", batch=index, total_batches=len(batches))
                break
            self.state.current_batch = index

            pending = await self._drop_skipped(
                batch, self.storage.should_skip_scraping, PipelineStage.SCRAPING
            )
            if not pending:
                logger.info("scrape_batch_skipped", batch=index, size=len(batch))
                continue

            try:
                outcomes = await asyncio.gather(
                    *(self.spider.get_job_details(listing) for listing in pending),
                    return_exceptions=True,
                )
            finally:
                await self.spider.cleanup()

            for listing, outcome in zip(pending, outcomes):
                if isinstance(outcome, Exception):
                    result.failed.append(JobDetails.failed_from(listing, str(outcome)))
                    self.state.metrics.failed_scrapes += 1
                    self.add_error(PipelineStage.SCRAPING, outcome, listing.id)
                    logger.warning("job_scrape_failed", job_id=listing.id, error=str(outcome))
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    result.success.append(outcome)
                    self.state.metrics.jobs_scraped += 1

            logger.info(
                "scrape_batch_completed",
                batch=index,
                total_batches=len(batches),
                successful=len(result.success),
                failed=len(result.failed),
            )

        logger.info(
            "scrape_finished",
            successful=len(result.success),
            failed=len(result.failed),
            skipped=self.state.metrics.skipped_scrapes,
        )
        return result

    async def process_jobs(
        self,
        jobs: list[JobDetails],
        options: PipelineOptions,
    ) -> BatchResult[ProcessedJob, JobDetails]:
        """Classify and embed jobs not already processed."""
        self._enter_stage(PipelineStage.PROCESSING)
        result = BatchResult[ProcessedJob, JobDetails]()
        max_records = options.max_records or 0

        limited = jobs[:max_records] if max_records > 0 else list(jobs)
        batches = chunk(limited, self.config.batch_size)
        self.state.total_batches = len(batches)

        logger.info(
            "process_started",
            jobs=len(limited),
            batches=len(batches),
            max_records=max_records,
        )

        for index, batch in enumerate(batches, start=1):
            if not await self._at_batch_boundary():
                logger.info("process_stopped", batch=index, total_batches=len(batches))
                break
            self.state.current_batch = index

            pending = await self._drop_skipped(
                batch, self.storage.should_skip_processing, PipelineStage.PROCESSING
            )
            if not pending:
                logger.info("process_batch_skipped", batch=index, size=len(batch))
                continue

            await self._ensure_processor()
            outcomes = await self.processor.process_batch(pending)

            for job, processed in zip_longest(pending, outcomes):
                if processed is not None:
                    result.success.append(processed)
                    self.state.metrics.jobs_processed += 1
                elif job is not None:
                    result.failed.append(job)
                    self.state.metrics.failed_processes += 1
                    self.add_error(PipelineStage.PROCESSING, "Processing failed", job.id)

            logger.info(
                "process_batch_completed",
                batch=index,
                total_batches=len(batches),
                successful=len(result.success),
                failed=len(result.failed),
            )

        if max_records > 0 and len(result.success) > max_records:
            logger.warning(
                "process_output_truncated",
                returned=len(result.success),
                max_records=max_records,
            )
            result.success = result.success[:max_records]

        return result

    async def store_jobs(
        self,
        jobs: list[ProcessedJob],
        options: PipelineOptions,
    ) -> BatchResult[ProcessedJob, ProcessedJob]:
        """Persist processed jobs batch by batch.

        Storage upserts are idempotent, so there is no skip check. A batch
        that fails to persist is recorded as one error and the next batch
        still runs.
        """
        self._enter_stage(PipelineStage.STORAGE)
        result = BatchResult[ProcessedJob, ProcessedJob]()
        max_records = options.max_records or 0

        limited = jobs[:max_records] if max_records > 0 else list(jobs)
        batches = chunk(limited, self.config.batch_size)
        self.state.total_batches = len(batches)

        logger.info("store_started", jobs=len(limited), batches=len(batches))

        for index, batch in enumerate(batches, start=1):
            if not await self._at_batch_boundary():
                logger.info("store_stopped", batch=index, total_batches=len(batches))
                break
            self.state.current_batch = index

            try:
                await self.storage.store_batch([to_storage_job(job) for job in batch])
            except Exception as e:
                result.failed.extend(batch)
                self.state.metrics.failed_storage += len(batch)
                self.add_error(PipelineStage.STORAGE, e)
                logger.error("store_batch_failed", batch=index, count=len(batch), error=str(e))
                continue

            result.success.extend(batch)
            self.state.metrics.jobs_stored += len(batch)
            logger.info("store_batch_completed", batch=index, count=len(batch))

        return result

    async def migrate_to_live(self, jobs: list[ProcessedJob]) -> int:
        """Copy stored jobs to the live tables.

        A failure is recorded but never marks the staged jobs as failed.
        """
        if not jobs:
            return 0

        logger.info("live_migration_started", count=len(jobs))
        try:
            migrated = await self.storage.migrate_batch_to_live(
                [to_storage_job(job) for job in jobs]
            )
        except Exception as e:
            self.add_error(PipelineStage.STORAGE, e)
            logger.error("live_migration_failed", count=len(jobs), error=str(e))
            return 0

        logger.info("live_migration_completed", migrated=migrated)
        return migrated

    # =========================================================================
    # Helpers
    # =========================================================================

    def _enter_stage(self, stage: PipelineStage) -> None:
        self.state.current_stage = stage
        self.state.current_batch = 0
        self.state.total_batches = 0

    async def _at_batch_boundary(self) -> bool:
        """Observe stop and pause requests. False means the phase must end."""
        if self._stop_requested:
            return False

        if not self._resume_event.is_set():
            logger.info("pipeline_waiting_for_resume", stage=self.state.current_stage.value)
            await self._resume_event.wait()

        return not self._stop_requested

    async def _drop_skipped(
        self,
        batch: list[ItemT],
        should_skip: Callable[[str], Awaitable[bool]],
        stage: PipelineStage,
    ) -> list[ItemT]:
        """Ask the storage stage which items are already done, keep the rest.

        Every check settles before the first failure is re-raised.
        """
        flags = await asyncio.gather(
            *(should_skip(item.id) for item in batch),
            return_exceptions=True,
        )
        for flag in flags:
            if isinstance(flag, BaseException):
                raise flag

        pending = [item for item, skip in zip(batch, flags) if not skip]

        skipped = len(batch) - len(pending)
        if skipped:
            if stage == PipelineStage.SCRAPING:
                self.state.metrics.skipped_scrapes += skipped
            else:
                self.state.metrics.skipped_processes += skipped
            logger.info(
                "jobs_skipped",
                stage=stage.value,
                count=skipped,
                job_ids=[item.id for item, skip in zip(batch, flags) if skip],
            )
        return pending

    async def _ensure_processor(self) -> None:
        if not self._processor_ready:
            await self.processor.initialize()
            self._processor_ready = True

    async def cleanup(self) -> None:
        """Release every stage's resources.

        Each stage is attempted even when an earlier one fails.
        """
        for stage in (self.spider, self.processor, self.storage):
            try:
                await stage.cleanup()
            except Exception as e:
                logger.error("stage_cleanup_failed", stage=stage.name, error=str(e))

    def add_error(
        self,
        stage: PipelineStage,
        error: Any,
        job_id: str | None = None,
    ) -> PipelineError | None:
        """Record an error in the run's metrics. Never raises."""
        try:
            if isinstance(error, str):
                message = error
            else:
                message = str(error) or type(error).__name__
            pipeline_error = PipelineError(stage=stage, error=message, job_id=job_id)
        except Exception:
            pipeline_error = PipelineError(stage=stage, error=type(error).__name__, job_id=job_id)

        self.state.metrics.errors.append(pipeline_error)
        self.state.last_error = pipeline_error
        return pipeline_error


def build_orchestrator(settings: Settings | None = None) -> PipelineOrchestrator:
    """Wire the orchestrator to the HTTP spider, OpenAI processor and Postgres storage."""
    from jobs_etl.clients.openai_client import OpenAIClient
    from jobs_etl.clients.postgres_client import PostgresClient
    from jobs_etl.stages.processor import ProcessorService
    from jobs_etl.stages.spider import HttpSpider
    from jobs_etl.stages.storage import PostgresStorage

    settings = settings or get_settings()

    storage = PostgresStorage(PostgresClient(settings), settings)
    processor = ProcessorService(OpenAIClient(settings), storage, settings)
    spider = HttpSpider(settings)

    return PipelineOrchestrator(
        OrchestratorConfig.from_settings(settings),
        spider=spider,
        processor=processor,
        storage=storage,
    )


async def run_pipeline(
    options: PipelineOptions | None = None,
    settings: Settings | None = None,
) -> PipelineResult:
    """Convenience function to build an orchestrator and run it once."""
    orchestrator = build_orchestrator(settings)
    return await orchestrator.run_pipeline(options)

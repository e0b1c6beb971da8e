"""Job manager - runs the orchestrator in the background for the API."""

import asyncio
from typing import Any

import structlog

from jobs_etl.models.pipeline import PipelineOptions, PipelineResult
from jobs_etl.pipeline.orchestrator import PipelineAlreadyRunningError, PipelineOrchestrator
from jobs_etl.pipeline.validation import validate_options

logger = structlog.get_logger()


class JobManager:
    """Manages the lifecycle of pipeline runs.

    Handles:
    - Option validation before a run is scheduled
    - Background execution (one run at a time)
    - Pause/resume/stop passthrough
    - The last result or error for status queries
    """

    def __init__(self, orchestrator: PipelineOrchestrator):
        self.orchestrator = orchestrator
        self._task: asyncio.Task | None = None
        self.last_result: PipelineResult | None = None
        self.last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, options: PipelineOptions | None = None) -> None:
        """Schedule a run in the background.

        Raises:
            PipelineValidationError: invalid options
            PipelineAlreadyRunningError: a run is active
        """
        validate_options(options)
        if self.is_running or self.orchestrator.is_active:
            raise PipelineAlreadyRunningError("A pipeline run is already in progress")

        self.last_error = None
        self._task = asyncio.create_task(self._run(options))
        logger.info(
            "pipeline_run_scheduled",
            mode=(options or PipelineOptions()).pipeline_mode.value,
        )

    async def _run(self, options: PipelineOptions | None) -> None:
        try:
            self.last_result = await self.orchestrator.run_pipeline(options)
        except Exception as e:
            self.last_error = str(e) or type(e).__name__
            logger.error("background_run_failed", error=self.last_error)

    async def wait(self) -> PipelineResult | None:
        """Wait for the current run, if any, and return the last result."""
        if self._task is not None:
            await self._task
        return self.last_result

    def pause(self) -> bool:
        return self.orchestrator.pause()

    def resume(self) -> bool:
        return self.orchestrator.resume()

    def stop(self) -> bool:
        return self.orchestrator.stop()

    def status(self) -> dict[str, Any]:
        """Current run status for the API."""
        status = self.orchestrator.get_state().to_status_dict()
        status["running"] = self.is_running
        status["has_result"] = self.last_result is not None
        status["run_error"] = self.last_error
        return status

    async def shutdown(self) -> None:
        """Stop any active run and wait for it to wind down."""
        if self.is_running:
            self.orchestrator.stop()
            await self.wait()

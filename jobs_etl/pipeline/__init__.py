"""Pipeline orchestration."""

from jobs_etl.pipeline.job_manager import JobManager
from jobs_etl.pipeline.orchestrator import (
    OrchestratorConfig,
    PipelineAlreadyRunningError,
    PipelineOrchestrator,
    build_orchestrator,
    run_pipeline,
)
from jobs_etl.pipeline.validation import PipelineValidationError, validate_options

__all__ = [
    "JobManager",
    "OrchestratorConfig",
    "PipelineAlreadyRunningError",
    "PipelineOrchestrator",
    "PipelineValidationError",
    "build_orchestrator",
    "run_pipeline",
    "validate_options",
]

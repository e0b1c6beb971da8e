"""API routes for controlling the jobs pipeline."""

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request, status

from jobs_etl import __version__
from jobs_etl.api.schemas import (
    HealthResponse,
    PipelineControlResponse,
    PipelineRunRequest,
    PipelineStatusResponse,
)
from jobs_etl.config import get_settings
from jobs_etl.pipeline.job_manager import JobManager
from jobs_etl.pipeline.orchestrator import PipelineAlreadyRunningError
from jobs_etl.pipeline.validation import PipelineValidationError

logger = structlog.get_logger()
router = APIRouter()


def get_job_manager(request: Request) -> JobManager:
    manager = getattr(request.app.state, "job_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline is not initialized",
        )
    return manager


def _control_response(manager: JobManager, accepted: bool, action: str) -> PipelineControlResponse:
    current = manager.orchestrator.get_status()
    if not accepted:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot {action} pipeline in status '{current.value}'",
        )
    return PipelineControlResponse(accepted=True, status=current, message=f"{action} requested")


# =============================================================================
# Pipeline control
# =============================================================================


@router.post(
    "/pipeline/run",
    response_model=PipelineControlResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def run_pipeline(body: PipelineRunRequest, request: Request) -> PipelineControlResponse:
    """Start a pipeline run in the background."""
    manager = get_job_manager(request)

    try:
        await manager.start(body.to_options())
    except PipelineValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except PipelineAlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return PipelineControlResponse(
        accepted=True,
        status=manager.orchestrator.get_status(),
        message="Pipeline run started",
    )


@router.post("/pipeline/pause", response_model=PipelineControlResponse)
async def pause_pipeline(request: Request) -> PipelineControlResponse:
    """Pause the active run at the next batch boundary."""
    manager = get_job_manager(request)
    return _control_response(manager, manager.pause(), "pause")


@router.post("/pipeline/resume", response_model=PipelineControlResponse)
async def resume_pipeline(request: Request) -> PipelineControlResponse:
    """Resume a paused run."""
    manager = get_job_manager(request)
    return _control_response(manager, manager.resume(), "resume")


@router.post("/pipeline/stop", response_model=PipelineControlResponse)
async def stop_pipeline(request: Request) -> PipelineControlResponse:
    """Stop the active run after the in-flight batch."""
    manager = get_job_manager(request)
    return _control_response(manager, manager.stop(), "stop")


# =============================================================================
# Status
# =============================================================================


@router.get("/pipeline/status", response_model=PipelineStatusResponse)
async def pipeline_status(request: Request) -> dict[str, Any]:
    """Status, stage, batch progress and metrics of the current run."""
    return get_job_manager(request).status()


@router.get("/pipeline/result")
async def pipeline_result(request: Request) -> dict[str, Any]:
    """Result of the last finished run (embedding vectors redacted)."""
    manager = get_job_manager(request)
    if manager.last_result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No pipeline result available",
        )
    return manager.last_result.model_dump(mode="json")


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Service health."""
    settings = get_settings()
    manager = get_job_manager(request)
    return HealthResponse(
        status="healthy",
        service=settings.service_name,
        version=__version__,
        pipeline_status=manager.orchestrator.get_status(),
    )

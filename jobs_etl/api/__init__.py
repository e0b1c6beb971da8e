"""API routes for the jobs ETL service."""

from jobs_etl.api.routes import router
from jobs_etl.api.schemas import (
    HealthResponse,
    PipelineControlResponse,
    PipelineRunRequest,
    PipelineStatusResponse,
)

__all__ = [
    "router",
    "PipelineRunRequest",
    "PipelineControlResponse",
    "PipelineStatusResponse",
    "HealthResponse",
]

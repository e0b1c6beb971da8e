"""Data models for the pipeline."""

from jobs_etl.models.enums import (
    PipelineMode,
    PipelineStatus,
    PipelineStage,
    CapabilityLevel,
    EmbeddingType,
    JobRecordStatus,
)
from jobs_etl.models.job import (
    JobListing,
    JobDetails,
    ContactDetails,
    JobDocument,
    Embedding,
    FrameworkCapability,
    ProcessedCapability,
    CapabilityAnalysis,
    TaxonomyAnalysis,
    JobEmbeddings,
    ProcessingMetadata,
    ProcessedJob,
    EmbeddingRecord,
    StorageJob,
    JobStatusRecord,
)
from jobs_etl.models.pipeline import (
    PipelineError,
    PhaseTotals,
    StorageTotals,
    PipelineMetrics,
    PipelineOptions,
    PipelineState,
    BatchResult,
    FailedJobs,
    PipelineJobs,
    PipelineResult,
)

__all__ = [
    # Enums
    "PipelineMode",
    "PipelineStatus",
    "PipelineStage",
    "CapabilityLevel",
    "EmbeddingType",
    "JobRecordStatus",
    # Jobs
    "JobListing",
    "JobDetails",
    "ContactDetails",
    "JobDocument",
    "Embedding",
    "FrameworkCapability",
    "ProcessedCapability",
    "CapabilityAnalysis",
    "TaxonomyAnalysis",
    "JobEmbeddings",
    "ProcessingMetadata",
    "ProcessedJob",
    "EmbeddingRecord",
    "StorageJob",
    "JobStatusRecord",
    # Pipeline
    "PipelineError",
    "PhaseTotals",
    "StorageTotals",
    "PipelineMetrics",
    "PipelineOptions",
    "PipelineState",
    "BatchResult",
    "FailedJobs",
    "PipelineJobs",
    "PipelineResult",
]

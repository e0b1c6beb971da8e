"""Enumerations for the jobs pipeline."""

from enum import Enum


class PipelineMode(str, Enum):
    """Pipeline execution mode."""

    SCRAPE_ONLY = "scrape_only"
    """Scrape listings and details, nothing else."""

    PROCESS_ONLY = "process_only"
    """Process (and store) pre-scraped jobs; never scrapes."""

    ALL = "all"
    """Scrape -> Process -> Store."""


class PipelineStatus(str, Enum):
    """Pipeline run status."""

    IDLE = "idle"
    """No run has started yet."""

    RUNNING = "running"
    """A run is executing."""

    PAUSED = "paused"
    """Run is waiting at a batch boundary for resume()."""

    STOPPED = "stopped"
    """Stop was requested; no new batch starts."""

    FAILED = "failed"
    """Run terminated with an exception."""

    COMPLETED = "completed"
    """Run finished naturally."""


class PipelineStage(str, Enum):
    """Phase of a pipeline run."""

    SCRAPING = "scraping"
    PROCESSING = "processing"
    STORAGE = "storage"


class CapabilityLevel(str, Enum):
    """Capability proficiency levels of the capability framework."""

    FOUNDATIONAL = "foundational"
    INTERMEDIATE = "intermediate"
    ADEPT = "adept"
    ADVANCED = "advanced"
    HIGHLY_ADVANCED = "highly advanced"


class EmbeddingType(str, Enum):
    """Kind of text an embedding record was generated from."""

    JOB = "job"
    CAPABILITY = "capability"
    SKILL = "skill"


class JobRecordStatus(str, Enum):
    """Durable per-job status kept by the storage stage."""

    NEW = "new"
    """No row yet, or a status this version does not write."""

    STORED = "stored"
    """Scraped, processed and upserted; later runs skip the job."""

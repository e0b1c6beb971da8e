"""Job record models: listing -> details -> processed -> storage shape."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from jobs_etl.models.enums import CapabilityLevel, EmbeddingType, JobRecordStatus


class JobListing(BaseModel):
    """Listing summary as shown on a search results page."""

    id: str = Field(..., description="Job reference number")
    title: str
    agency: str = "NSW Government"
    location: str = "NSW"
    salary: str = "Not specified"
    closing_date: str = ""
    posted_date: str = ""
    url: str = ""
    job_reference: str = ""


class ContactDetails(BaseModel):
    """Contact person for a job advert."""

    name: str = ""
    phone: str = ""
    email: str = ""


class JobDocument(BaseModel):
    """Role description document attached to a job advert."""

    url: str
    title: str | None = None
    type: str = "unknown"
    content: str | None = Field(default=None, description="Extracted plain text")
    structure: list[str] = Field(
        default_factory=list,
        description="Page texts (PDF) or paragraphs (DOCX)",
    )


class JobDetails(JobListing):
    """Full job advert, fetched per listing."""

    job_type: str = ""
    description: str = ""
    responsibilities: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    about_us: str = ""
    contact_details: ContactDetails = Field(default_factory=ContactDetails)
    documents: list[JobDocument] = Field(default_factory=list)

    # Set only on records that failed to scrape
    error: str | None = None

    @classmethod
    def failed_from(cls, listing: JobListing, error: str) -> "JobDetails":
        """Build a failed-scrape record: listing fields, empty details, error."""
        return cls(**listing.model_dump(include=set(JobListing.model_fields)), error=error)


class Embedding(BaseModel):
    """An embedding vector with the text it was generated from.

    ``vector`` is a string only after redaction.
    """

    vector: list[float] | str = Field(default_factory=list)
    text: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class FrameworkCapability(BaseModel):
    """A capability from the capability framework, with its embedding once computed."""

    id: str
    name: str
    description: str = ""
    group_name: str = ""
    embedding: list[float] | None = None


class ProcessedCapability(BaseModel):
    """A framework capability matched to a job."""

    id: str
    name: str
    level: CapabilityLevel = CapabilityLevel.INTERMEDIATE
    description: str = ""
    relevance: float = 0.0


class CapabilityAnalysis(BaseModel):
    """LLM capability analysis result."""

    capabilities: list[ProcessedCapability] = Field(default_factory=list)
    occupational_group: str | None = None
    focus_area: str | None = None


class TaxonomyAnalysis(BaseModel):
    """LLM taxonomy analysis result."""

    technical_skills: list[str] = Field(default_factory=list)
    soft_skills: list[str] = Field(default_factory=list)
    taxonomy_groups: list[str] = Field(default_factory=list)


class JobEmbeddings(BaseModel):
    """Embeddings attached to a processed job."""

    job: Embedding
    capabilities: list[Embedding | None] = Field(default_factory=list)
    skills: list[Embedding] = Field(default_factory=list)

    def all_embeddings(self) -> list[Embedding]:
        """Every non-missing embedding of the job."""
        return [self.job, *(e for e in self.capabilities if e is not None), *self.skills]


class ProcessingMetadata(BaseModel):
    """Provenance of a processed job."""

    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = "1.0.0"
    status: str = "completed"


class ProcessedJob(BaseModel):
    """Classified and embedded job."""

    job_details: JobDetails
    capabilities: CapabilityAnalysis = Field(default_factory=CapabilityAnalysis)
    taxonomy: TaxonomyAnalysis = Field(default_factory=TaxonomyAnalysis)
    embeddings: JobEmbeddings
    metadata: ProcessingMetadata = Field(default_factory=ProcessingMetadata)

    @property
    def id(self) -> str:
        return self.job_details.id


class EmbeddingRecord(BaseModel):
    """Flattened embedding row as persisted by the storage stage."""

    external_id: str
    job_id: str
    type: EmbeddingType
    index: int = 0
    text: str = ""
    vector: list[float] | str = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class StorageJob(BaseModel):
    """Storage shape of a processed job."""

    job_id: str
    job: JobDetails
    capabilities: list[ProcessedCapability] = Field(default_factory=list)
    occupational_group: str | None = None
    focus_area: str | None = None
    technical_skills: list[str] = Field(default_factory=list)
    soft_skills: list[str] = Field(default_factory=list)
    taxonomy_groups: list[str] = Field(default_factory=list)
    embeddings: list[EmbeddingRecord] = Field(default_factory=list)
    processed_at: datetime
    version: str


class JobStatusRecord(BaseModel):
    """Durable status of a single job in storage."""

    job_id: str
    status: JobRecordStatus = JobRecordStatus.NEW
    updated_at: datetime | None = None

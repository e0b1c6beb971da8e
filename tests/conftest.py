"""Shared fixtures: in-memory spider, processor and storage stages."""

import asyncio
import io
from typing import Callable

import docx
import pytest

from jobs_etl.config import Settings
from jobs_etl.models.job import (
    CapabilityAnalysis,
    Embedding,
    JobDetails,
    JobEmbeddings,
    JobListing,
    JobStatusRecord,
    ProcessedCapability,
    ProcessedJob,
    StorageJob,
    TaxonomyAnalysis,
)
from jobs_etl.pipeline.orchestrator import OrchestratorConfig, PipelineOrchestrator
from jobs_etl.stages.base import SinkStage, SourceStage, TransformStage

VECTOR = [0.1, 0.2, 0.3]


def make_listing(i: int, **overrides) -> JobListing:
    fields = {
        "id": f"job-{i}",
        "title": f"Policy Officer {i}",
        "agency": "Department of Education",
        "location": "Sydney",
        "posted_date": "12 Feb 2024",
        "closing_date": "26 Feb 2024",
        "url": f"https://jobs.example/job-{i}",
        "job_reference": f"job-{i}",
    }
    fields.update(overrides)
    return JobListing(**fields)


def make_details(i: int, **overrides) -> JobDetails:
    listing = make_listing(i)
    fields = listing.model_dump()
    fields.update(description=f"Description of job {i}", job_type="Full-Time")
    fields.update(overrides)
    return JobDetails(**fields)


def make_processed(job: JobDetails) -> ProcessedJob:
    return ProcessedJob(
        job_details=job,
        capabilities=CapabilityAnalysis(
            capabilities=[
                ProcessedCapability(id="cap-1", name="Act with Integrity", relevance=0.8),
                ProcessedCapability(id="cap-9", name="Unknown", relevance=0.2),
            ],
            occupational_group="Policy",
            focus_area="Education",
        ),
        taxonomy=TaxonomyAnalysis(technical_skills=["Policy analysis"], soft_skills=["Writing"]),
        embeddings=JobEmbeddings(
            job=Embedding(vector=list(VECTOR), text=job.description),
            capabilities=[Embedding(vector=list(VECTOR), text="integrity"), None],
            skills=[
                Embedding(vector=list(VECTOR), text="Policy analysis"),
                Embedding(vector=list(VECTOR), text="Writing"),
            ],
        ),
    )


def make_pdf(text: str) -> bytes:
    """Single-page PDF showing ``text`` in Helvetica."""
    stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = io.BytesIO()
    out.write(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(out.tell())
        out.write(b"%d 0 obj\n" % number + body + b"\nendobj\n")

    xref = out.tell()
    out.write(b"xref\n0 %d\n" % (len(objects) + 1))
    out.write(b"0000000000 65535 f \n")
    for offset in offsets:
        out.write(b"%010d 00000 n \n" % offset)
    out.write(b"trailer\n<< /Size %d /Root 1 0 R >>\n" % (len(objects) + 1))
    out.write(b"startxref\n%d\n%%%%EOF\n" % xref)
    return out.getvalue()


def make_docx(*paragraphs: str) -> bytes:
    document = docx.Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


class FakeSpider(SourceStage):
    name = "spider"

    def __init__(self, listings: list[JobListing], fail_ids: set[str] | None = None):
        self.listings = listings
        self.fail_ids = fail_ids or set()
        self.listings_error: Exception | None = None
        self.requested_max_records: list[int] = []
        self.detail_calls: list[str] = []
        self.cleanup_calls = 0
        self.on_detail: Callable[[JobListing], None] | None = None

    async def get_job_listings(self, max_records: int = 0) -> list[JobListing]:
        self.requested_max_records.append(max_records)
        if self.listings_error:
            raise self.listings_error
        # Ignores max_records on purpose; the orchestrator caps again
        return list(self.listings)

    async def get_job_details(self, listing: JobListing) -> JobDetails:
        self.detail_calls.append(listing.id)
        if self.on_detail:
            self.on_detail(listing)
        await asyncio.sleep(0)
        if listing.id in self.fail_ids:
            raise RuntimeError(f"timeout fetching {listing.id}")
        fields = listing.model_dump()
        fields.update(description=f"Description of {listing.id}")
        return JobDetails(**fields)

    async def cleanup(self) -> None:
        self.cleanup_calls += 1


class FakeProcessor(TransformStage):
    name = "processor"

    def __init__(self, fail_ids: set[str] | None = None):
        self.fail_ids = fail_ids or set()
        self.initialize_calls = 0
        self.batches: list[list[str]] = []
        self.cleanup_calls = 0
        self.cleanup_error: Exception | None = None

    async def initialize(self) -> None:
        self.initialize_calls += 1

    async def process_batch(self, jobs: list[JobDetails]) -> list[ProcessedJob | None]:
        self.batches.append([job.id for job in jobs])
        await asyncio.sleep(0)
        return [None if job.id in self.fail_ids else make_processed(job) for job in jobs]

    async def cleanup(self) -> None:
        self.cleanup_calls += 1
        if self.cleanup_error:
            raise self.cleanup_error


class FakeStorage(SinkStage):
    name = "storage"

    def __init__(self):
        self.scraped_ids: set[str] = set()
        self.processed_ids: set[str] = set()
        self.fail_batch_numbers: set[int] = set()
        self.store_calls = 0
        self.stored: list[StorageJob] = []
        self.migrated: list[StorageJob] = []
        self.supports_migration = True
        self.initialize_calls = 0
        self.cleanup_calls = 0
        self.status_errors: set[str] = set()
        self.completed_status_checks: list[str] = []
        self.on_store: Callable[[], None] | None = None

    async def initialize(self) -> None:
        self.initialize_calls += 1

    async def should_skip_scraping(self, job_id: str) -> bool:
        if job_id in self.status_errors:
            raise ConnectionError(f"status lookup failed for {job_id}")
        # Yield twice so a failing sibling finishes first
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.completed_status_checks.append(job_id)
        return job_id in self.scraped_ids or job_id in self.processed_ids

    async def should_skip_processing(self, job_id: str) -> bool:
        return job_id in self.processed_ids

    async def check_job_status(self, job_id: str) -> JobStatusRecord:
        return JobStatusRecord(job_id=job_id)

    async def store_batch(self, jobs: list[StorageJob]) -> None:
        self.store_calls += 1
        if self.on_store:
            self.on_store()
        if self.store_calls in self.fail_batch_numbers:
            raise ConnectionError("database unavailable")
        self.stored.extend(jobs)

    async def migrate_batch_to_live(self, jobs: list[StorageJob]) -> int:
        if not self.supports_migration:
            return await super().migrate_batch_to_live(jobs)
        self.migrated.extend(jobs)
        return len(jobs)

    async def cleanup(self) -> None:
        self.cleanup_calls += 1


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        batch_size=10,
        max_records=None,
        retry_attempts=0,
        retry_delay=0.0,
        openai_api_key="test-key",
        openai_base_url="https://llm.example/v1",
        jobs_source_url="https://jobs.example/search",
        institution_id="inst-1",
    )


@pytest.fixture
def spider() -> FakeSpider:
    return FakeSpider([make_listing(i) for i in range(1, 26)])


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def orchestrator(spider, processor, storage) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        OrchestratorConfig(batch_size=10),
        spider=spider,
        processor=processor,
        storage=storage,
    )

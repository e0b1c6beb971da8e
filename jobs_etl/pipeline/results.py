"""Result shaping: storage reshape and embedding redaction."""

from jobs_etl.models.enums import EmbeddingType
from jobs_etl.models.job import Embedding, EmbeddingRecord, ProcessedJob, StorageJob
from jobs_etl.models.pipeline import PipelineJobs

VECTOR_PLACEHOLDER = "[vector data hidden]"


def _embedding_record(
    job_id: str,
    embedding: Embedding,
    type_: EmbeddingType,
    external_id: str,
    index: int = 0,
) -> EmbeddingRecord:
    return EmbeddingRecord(
        external_id=external_id,
        job_id=job_id,
        type=type_,
        index=index,
        text=embedding.text,
        vector=embedding.vector,
        metadata=embedding.metadata,
    )


def to_storage_job(job: ProcessedJob) -> StorageJob:
    """Flatten a processed job into the storage stage's shape.

    Job, capability and skill embeddings become one list of
    EmbeddingRecord rows keyed by external id. Missing capability
    embeddings are dropped.
    """
    job_id = job.job_details.id

    records = [
        _embedding_record(job_id, job.embeddings.job, EmbeddingType.JOB, f"emb_job_{job_id}"),
    ]
    for i, embedding in enumerate(job.embeddings.capabilities):
        if embedding is None:
            continue
        records.append(
            _embedding_record(
                job_id, embedding, EmbeddingType.CAPABILITY, f"emb_cap_{job_id}_{i}", i
            )
        )
    for i, embedding in enumerate(job.embeddings.skills):
        records.append(
            _embedding_record(
                job_id, embedding, EmbeddingType.SKILL, f"emb_skill_{job_id}_{i}", i
            )
        )

    return StorageJob(
        job_id=job_id,
        job=job.job_details,
        capabilities=job.capabilities.capabilities,
        occupational_group=job.capabilities.occupational_group,
        focus_area=job.capabilities.focus_area,
        technical_skills=job.taxonomy.technical_skills,
        soft_skills=job.taxonomy.soft_skills,
        taxonomy_groups=job.taxonomy.taxonomy_groups,
        embeddings=records,
        processed_at=job.metadata.processed_at,
        version=job.metadata.version,
    )


def redact_processed_job(job: ProcessedJob) -> ProcessedJob:
    """Return a copy of ``job`` with every embedding vector replaced."""
    redacted = job.model_copy(deep=True)
    for embedding in redacted.embeddings.all_embeddings():
        embedding.vector = VECTOR_PLACEHOLDER
    return redacted


def redact_jobs(jobs: PipelineJobs) -> PipelineJobs:
    """Redact embeddings of processed, stored and failed-storage jobs."""
    return PipelineJobs(
        scraped=jobs.scraped,
        processed=[redact_processed_job(j) for j in jobs.processed],
        stored=[redact_processed_job(j) for j in jobs.stored],
        failed=jobs.failed.model_copy(
            update={"storage": [redact_processed_job(j) for j in jobs.failed.storage]}
        ),
    )

"""PostgreSQL storage stage.

Processed jobs land in the staging schema first; ``migrate_batch_to_live``
copies them into the live schema. Every table is keyed by
``(institution_id, source_id, external_id)`` so repeated stores are
idempotent upserts.
"""

import json
import re
from typing import Any

import structlog

from jobs_etl.clients.postgres_client import PostgresClient
from jobs_etl.config import get_settings
from jobs_etl.models.enums import JobRecordStatus
from jobs_etl.models.job import FrameworkCapability, JobStatusRecord, StorageJob
from jobs_etl.stages.base import SinkStage

logger = structlog.get_logger()

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

KEY_COLUMNS = ("institution_id", "source_id", "external_id")

JOB_COLUMNS = KEY_COLUMNS + (
    "title",
    "agency",
    "location",
    "salary",
    "closing_date",
    "posted_date",
    "url",
    "job_reference",
    "job_type",
    "raw_data",
    "capabilities",
    "occupational_group",
    "focus_area",
    "technical_skills",
    "soft_skills",
    "taxonomy_groups",
    "status",
    "processed_at",
    "version",
)
JSON_JOB_COLUMNS = {"raw_data", "capabilities", "technical_skills", "soft_skills", "taxonomy_groups"}

EMBEDDING_COLUMNS = KEY_COLUMNS + (
    "job_id",
    "type",
    "idx",
    "text",
    "vector",
    "metadata",
    "processed_at",
)
JSON_EMBEDDING_COLUMNS = {"metadata"}

SCHEMA_SQL = """
CREATE SCHEMA IF NOT EXISTS {schema};

CREATE TABLE IF NOT EXISTS {schema}.jobs (
    institution_id TEXT NOT NULL,
    source_id TEXT NOT NULL,
    external_id TEXT NOT NULL,
    title TEXT NOT NULL,
    agency TEXT,
    location TEXT,
    salary TEXT,
    closing_date TEXT,
    posted_date TEXT,
    url TEXT,
    job_reference TEXT,
    job_type TEXT,
    raw_data JSONB,
    capabilities JSONB,
    occupational_group TEXT,
    focus_area TEXT,
    technical_skills JSONB,
    soft_skills JSONB,
    taxonomy_groups JSONB,
    status TEXT NOT NULL DEFAULT 'new',
    processed_at TIMESTAMPTZ,
    version TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (institution_id, source_id, external_id)
);

CREATE TABLE IF NOT EXISTS {schema}.embeddings (
    institution_id TEXT NOT NULL,
    source_id TEXT NOT NULL,
    external_id TEXT NOT NULL,
    job_id TEXT NOT NULL,
    type TEXT NOT NULL,
    idx INTEGER NOT NULL DEFAULT 0,
    text TEXT,
    vector DOUBLE PRECISION[],
    metadata JSONB,
    processed_at TIMESTAMPTZ,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (institution_id, source_id, external_id)
);

CREATE TABLE IF NOT EXISTS {schema}.capabilities (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    group_name TEXT,
    embedding DOUBLE PRECISION[],
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


def _checked_identifier(name: str) -> str:
    if not IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid schema name: {name!r}")
    return name


def build_upsert_sql(table: str, columns: tuple[str, ...], json_columns: set[str]) -> str:
    """INSERT ... ON CONFLICT DO UPDATE over every non-key column."""
    placeholders = [
        f"${idx}::jsonb" if column in json_columns else f"${idx}"
        for idx, column in enumerate(columns, start=1)
    ]
    update_set = [f"{c} = EXCLUDED.{c}" for c in columns if c not in KEY_COLUMNS]
    update_set.append("updated_at = NOW()")

    return f"""
        INSERT INTO {table} ({", ".join(columns)}, updated_at)
        VALUES ({", ".join(placeholders)}, NOW())
        ON CONFLICT ({", ".join(KEY_COLUMNS)}) DO UPDATE SET
            {", ".join(update_set)}
    """


def build_copy_sql(
    source: str,
    target: str,
    columns: tuple[str, ...],
    match_column: str,
) -> str:
    """Copy rows between schemas, matching ``match_column`` against $3."""
    update_set = [f"{c} = EXCLUDED.{c}" for c in columns if c not in KEY_COLUMNS]
    update_set.append("updated_at = NOW()")

    return f"""
        INSERT INTO {target} ({", ".join(columns)}, updated_at)
        SELECT {", ".join(columns)}, NOW() FROM {source}
        WHERE institution_id = $1 AND source_id = $2 AND {match_column} = ANY($3::text[])
        ON CONFLICT ({", ".join(KEY_COLUMNS)}) DO UPDATE SET
            {", ".join(update_set)}
    """


def _affected_rows(status: str) -> int:
    """Row count from an asyncpg command status such as 'INSERT 0 3'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class PostgresStorage(SinkStage):
    """Stores processed jobs and their embeddings in PostgreSQL."""

    name = "storage"

    def __init__(self, client: PostgresClient, settings=None):
        self.client = client
        self.settings = settings or get_settings()
        self.staging = _checked_identifier(self.settings.staging_schema)
        self.live = _checked_identifier(self.settings.live_schema)

    def _key(self, job_id: str) -> tuple[str, str, str]:
        return (self.settings.institution_id, self.settings.source_id, job_id)

    async def initialize(self) -> None:
        """Connect and create the staging and live tables when missing."""
        await self.client.connect()
        for schema in (self.staging, self.live):
            await self.client.execute(SCHEMA_SQL.format(schema=schema))
        logger.info("storage_initialized", staging=self.staging, live=self.live)

    async def check_job_status(self, job_id: str) -> JobStatusRecord:
        row = await self.client.fetchrow(
            f"""
            SELECT status, updated_at FROM {self.staging}.jobs
            WHERE institution_id = $1 AND source_id = $2 AND external_id = $3
            """,
            *self._key(job_id),
        )
        if row is None:
            return JobStatusRecord(job_id=job_id)

        try:
            status = JobRecordStatus(row["status"])
        except ValueError:
            logger.warning("unknown_job_status", job_id=job_id, status=row["status"])
            status = JobRecordStatus.NEW
        return JobStatusRecord(job_id=job_id, status=status, updated_at=row["updated_at"])

    async def should_skip_scraping(self, job_id: str) -> bool:
        record = await self.check_job_status(job_id)
        return record.status == JobRecordStatus.STORED

    async def should_skip_processing(self, job_id: str) -> bool:
        record = await self.check_job_status(job_id)
        return record.status == JobRecordStatus.STORED

    def _job_row(self, job: StorageJob) -> tuple[Any, ...]:
        details = job.job
        values = {
            "title": details.title,
            "agency": details.agency,
            "location": details.location,
            "salary": details.salary,
            "closing_date": details.closing_date,
            "posted_date": details.posted_date,
            "url": details.url,
            "job_reference": details.job_reference,
            "job_type": details.job_type,
            "raw_data": details.model_dump_json(),
            "capabilities": json.dumps([c.model_dump(mode="json") for c in job.capabilities]),
            "occupational_group": job.occupational_group,
            "focus_area": job.focus_area,
            "technical_skills": json.dumps(job.technical_skills),
            "soft_skills": json.dumps(job.soft_skills),
            "taxonomy_groups": json.dumps(job.taxonomy_groups),
            "status": JobRecordStatus.STORED.value,
            "processed_at": job.processed_at,
            "version": job.version,
        }
        return (*self._key(job.job_id), *(values[c] for c in JOB_COLUMNS[len(KEY_COLUMNS):]))

    def _embedding_rows(self, job: StorageJob) -> list[tuple[Any, ...]]:
        rows = []
        for record in job.embeddings:
            if not isinstance(record.vector, list):
                raise ValueError(f"Embedding {record.external_id} has no vector data")
            rows.append(
                (
                    self.settings.institution_id,
                    self.settings.source_id,
                    record.external_id,
                    record.job_id,
                    record.type.value,
                    record.index,
                    record.text,
                    record.vector,
                    json.dumps(record.metadata),
                    job.processed_at,
                )
            )
        return rows

    async def store_batch(self, jobs: list[StorageJob]) -> None:
        """Upsert jobs and embeddings in one transaction, marking jobs stored."""
        if not jobs:
            return

        job_sql = build_upsert_sql(f"{self.staging}.jobs", JOB_COLUMNS, JSON_JOB_COLUMNS)
        embedding_sql = build_upsert_sql(
            f"{self.staging}.embeddings", EMBEDDING_COLUMNS, JSON_EMBEDDING_COLUMNS
        )

        job_rows = [self._job_row(job) for job in jobs]
        embedding_rows = [row for job in jobs for row in self._embedding_rows(job)]

        async with self.client.transaction() as conn:
            await conn.executemany(job_sql, job_rows)
            if embedding_rows:
                await conn.executemany(embedding_sql, embedding_rows)

        logger.info("storage_batch_stored", jobs=len(jobs), embeddings=len(embedding_rows))

    async def migrate_batch_to_live(self, jobs: list[StorageJob]) -> int:
        """Copy stored jobs and their embeddings from staging to live."""
        if not jobs:
            return 0

        job_ids = [job.job_id for job in jobs]
        params = (self.settings.institution_id, self.settings.source_id, job_ids)

        async with self.client.transaction() as conn:
            status = await conn.execute(
                build_copy_sql(
                    f"{self.staging}.jobs", f"{self.live}.jobs", JOB_COLUMNS, "external_id"
                ),
                *params,
            )
            await conn.execute(
                build_copy_sql(
                    f"{self.staging}.embeddings",
                    f"{self.live}.embeddings",
                    EMBEDDING_COLUMNS,
                    "job_id",
                ),
                *params,
            )

        migrated = _affected_rows(status)
        logger.info("jobs_migrated_to_live", requested=len(job_ids), migrated=migrated)
        return migrated

    async def get_framework_capabilities(self) -> list[FrameworkCapability]:
        """Capability framework rows from the staging schema."""
        rows = await self.client.fetch(
            f"SELECT id, name, description, group_name, embedding FROM {self.staging}.capabilities"
            " ORDER BY id"
        )
        return [
            FrameworkCapability(
                id=row["id"],
                name=row["name"],
                description=row["description"] or "",
                group_name=row["group_name"] or "",
                embedding=list(row["embedding"]) if row["embedding"] else None,
            )
            for row in rows
        ]

    async def store_capability_embeddings(self, capabilities: list[FrameworkCapability]) -> None:
        """Persist freshly computed framework capability embeddings."""
        rows = [(cap.id, cap.embedding) for cap in capabilities if cap.embedding]
        if not rows:
            return

        async with self.client.transaction() as conn:
            await conn.executemany(
                f"UPDATE {self.staging}.capabilities SET embedding = $2, updated_at = NOW()"
                " WHERE id = $1",
                rows,
            )
        logger.info("capability_embeddings_stored", count=len(rows))

    async def cleanup(self) -> None:
        await self.client.close()

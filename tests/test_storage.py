import asyncio
from contextlib import asynccontextmanager

import pytest

from conftest import make_details, make_processed
from jobs_etl.models.enums import JobRecordStatus
from jobs_etl.pipeline.results import to_storage_job
from jobs_etl.stages.storage import (
    JOB_COLUMNS,
    PostgresStorage,
    _affected_rows,
    build_copy_sql,
    build_upsert_sql,
)


class RecordingConnection:
    def __init__(self):
        self.executemany_calls = []
        self.execute_calls = []

    async def executemany(self, query, rows):
        self.executemany_calls.append((query, list(rows)))

    async def execute(self, query, *args):
        self.execute_calls.append((query, args))
        return "INSERT 0 2"


class FakePostgresClient:
    def __init__(self, statuses=None):
        self.statuses = statuses or {}
        self.conn = RecordingConnection()
        self.closed = False

    async def fetchrow(self, query, institution_id, source_id, job_id):
        if job_id not in self.statuses:
            return None
        return {"status": self.statuses[job_id], "updated_at": None}

    async def fetch(self, query):
        return [
            {"id": "cap-1", "name": "Act with Integrity", "description": None, "group_name": None, "embedding": None},
            {"id": "cap-2", "name": "Deliver Results", "description": "d", "group_name": "Results", "embedding": [1.0]},
        ]

    @asynccontextmanager
    async def transaction(self):
        yield self.conn

    async def close(self):
        self.closed = True


def test_upsert_sql_casts_json_columns_and_updates_non_keys():
    sql = build_upsert_sql("staging.jobs", JOB_COLUMNS, {"raw_data"})

    assert "INSERT INTO staging.jobs" in sql
    assert "$13::jsonb" in sql
    assert "ON CONFLICT (institution_id, source_id, external_id) DO UPDATE" in sql
    assert "title = EXCLUDED.title" in sql
    assert "external_id = EXCLUDED.external_id" not in sql


def test_copy_sql_selects_from_staging():
    sql = build_copy_sql("staging.jobs", "public.jobs", JOB_COLUMNS, "external_id")

    assert "INSERT INTO public.jobs" in sql
    assert "FROM staging.jobs" in sql
    assert "external_id = ANY($3::text[])" in sql


@pytest.mark.parametrize("status, rows", [("INSERT 0 3", 3), ("UPDATE 1", 1), ("", 0), (None, 0)])
def test_affected_rows(status, rows):
    assert _affected_rows(status) == rows


def test_rejects_unsafe_schema_names(settings):
    settings = settings.model_copy(update={"staging_schema": "staging; DROP TABLE jobs"})

    with pytest.raises(ValueError):
        PostgresStorage(FakePostgresClient(), settings)


def test_skip_checks_follow_job_status(settings):
    client = FakePostgresClient({"job-1": "stored", "job-2": "scraped", "job-3": "bogus"})
    storage = PostgresStorage(client, settings)

    async def scenario():
        return (
            await storage.should_skip_scraping("job-1"),
            await storage.should_skip_processing("job-1"),
            await storage.should_skip_scraping("job-2"),
            await storage.should_skip_processing("job-2"),
            await storage.check_job_status("job-3"),
            await storage.check_job_status("job-4"),
        )

    scrape_1, process_1, scrape_2, process_2, bogus, missing = asyncio.run(scenario())

    assert (scrape_1, process_1) == (True, True)
    # Only stored rows count as done; other values read back as new
    assert (scrape_2, process_2) == (False, False)
    assert bogus.status == JobRecordStatus.NEW
    assert missing.status == JobRecordStatus.NEW


def test_store_batch_upserts_jobs_and_embeddings(settings):
    client = FakePostgresClient()
    storage = PostgresStorage(client, settings)
    jobs = [to_storage_job(make_processed(make_details(i))) for i in (1, 2)]

    asyncio.run(storage.store_batch(jobs))

    (job_sql, job_rows), (embedding_sql, embedding_rows) = client.conn.executemany_calls
    assert "staging.jobs" in job_sql
    assert [row[:3] for row in job_rows] == [("inst-1", "nswgov", "job-1"), ("inst-1", "nswgov", "job-2")]
    assert job_rows[0][JOB_COLUMNS.index("status")] == "stored"
    assert "staging.embeddings" in embedding_sql
    assert len(embedding_rows) == 8
    assert embedding_rows[0][2] == "emb_job_job-1"


def test_store_batch_rejects_redacted_vectors(settings):
    storage = PostgresStorage(FakePostgresClient(), settings)
    job = to_storage_job(make_processed(make_details(1)))
    job.embeddings[0].vector = "[vector data hidden]"

    with pytest.raises(ValueError):
        asyncio.run(storage.store_batch([job]))


def test_migrate_batch_to_live_reports_migrated_rows(settings):
    client = FakePostgresClient()
    storage = PostgresStorage(client, settings)
    jobs = [to_storage_job(make_processed(make_details(i))) for i in (1, 2)]

    migrated = asyncio.run(storage.migrate_batch_to_live(jobs))

    assert migrated == 2
    jobs_call, embeddings_call = client.conn.execute_calls
    assert "INSERT INTO public.jobs" in jobs_call[0]
    assert jobs_call[1] == ("inst-1", "nswgov", ["job-1", "job-2"])
    assert "job_id = ANY" in embeddings_call[0]


def test_framework_capabilities_round_trip(settings):
    client = FakePostgresClient()
    storage = PostgresStorage(client, settings)

    capabilities = asyncio.run(storage.get_framework_capabilities())

    assert [(c.id, c.description, c.embedding) for c in capabilities] == [
        ("cap-1", "", None),
        ("cap-2", "d", [1.0]),
    ]

    capabilities[0].embedding = [0.5]
    asyncio.run(storage.store_capability_embeddings(capabilities))

    query, rows = client.conn.executemany_calls[-1]
    assert "UPDATE staging.capabilities" in query
    assert rows == [("cap-1", [0.5]), ("cap-2", [1.0])]

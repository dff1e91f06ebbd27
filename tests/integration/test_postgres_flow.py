"""Integration tests against a real Postgres (via testcontainers).

Opt in with ANALYSIS_JOBS_RUN_INTEGRATION=1; Docker must be available.
"""

import asyncio
import os
from uuid import uuid4

import asyncpg
import pytest
import pytest_asyncio

from analysis_jobs.config import AnalysisJobsConfig
from analysis_jobs.ddl import ANALYSIS_JOBS_TABLE_DDL
from analysis_jobs.errors import DuplicateActiveJobError
from analysis_jobs.models import ExecutionResult, JobStatus
from analysis_jobs.registry import ExecutorRegistry
from analysis_jobs.service import AnalysisJobService, STALE_PROCESSING_JOB
from analysis_jobs.store import PostgresJobStore
from analysis_jobs.worker import process_due_jobs

pytestmark = pytest.mark.skipif(
    os.getenv("ANALYSIS_JOBS_RUN_INTEGRATION") != "1",
    reason="set ANALYSIS_JOBS_RUN_INTEGRATION=1 to run Postgres integration tests",
)


@pytest.fixture(scope="module")
def postgres_url():
    """Provide a PostgreSQL test container."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:15") as postgres:
        yield postgres.get_connection_url().replace("+psycopg2", "")


@pytest_asyncio.fixture
async def db_pool(postgres_url):
    """Create a database pool with a fresh schema."""
    pool = await asyncpg.create_pool(postgres_url, min_size=2, max_size=10)

    async with pool.acquire() as conn:
        await conn.execute("DROP TABLE IF EXISTS analysis_jobs")
        await conn.execute(ANALYSIS_JOBS_TABLE_DDL)

    yield pool

    await pool.close()


@pytest.fixture
def service(db_pool, clock):
    return AnalysisJobService(AnalysisJobsConfig(), PostgresJobStore(db_pool), clock=clock)


@pytest.mark.asyncio
async def test_enqueue_claim_finalize(service, clock, sample_ids):
    result = await service.enqueue(
        kind="clarity_check", payload={"source": "document_update"}, **sample_ids
    )
    again = await service.enqueue(kind="clarity_check", **sample_ids)
    assert again.job_id == result.job_id

    clock.advance(seconds=5)
    claim = await service.claim(result.job_id)
    assert claim.claimed

    status = await service.finalize(
        result.job_id, claim.run_id, result_summary="ok", result_ref={"issues": []}
    )
    assert status == JobStatus.SUCCEEDED

    job = await service.get_job(result.job_id)
    assert job.status == JobStatus.SUCCEEDED
    assert job.result_ref == {"issues": []}
    assert job.version == 3


@pytest.mark.asyncio
async def test_partial_unique_index_rejects_second_active_job(service, sample_ids):
    result = await service.enqueue(kind="policy_check", **sample_ids)
    job = await service.get_job(result.job_id)

    duplicate = job.copy()
    duplicate.id = uuid4()
    with pytest.raises(DuplicateActiveJobError):
        await service.store.insert_job(duplicate)


@pytest.mark.asyncio
async def test_concurrent_enqueues_and_claims(service, sample_ids):
    results = await asyncio.gather(
        *(service.enqueue(kind="coherence_lint", debounce_ms=0, **sample_ids) for _ in range(8))
    )
    assert len({result.job_id for result in results}) == 1

    claims = await asyncio.gather(*(service.claim(results[0].job_id) for _ in range(4)))
    assert sum(claim.claimed for claim in claims) == 1


@pytest.mark.asyncio
async def test_worker_pass_and_reclaim(service, clock, sample_ids):
    registry = ExecutorRegistry()

    @registry.handler("digest_document")
    async def digest(ctx, payload):
        return ExecutionResult(summary="digest ready")

    done = await service.enqueue(kind="digest_document", debounce_ms=0, **sample_ids)
    counts = await process_due_jobs(service, registry)
    assert counts["succeeded"] == 1
    assert (await service.get_job(done.job_id)).result_summary == "digest ready"

    orphan = await service.enqueue(kind="detect_entities", debounce_ms=0, **sample_ids)
    assert (await service.claim(orphan.job_id)).claimed

    clock.advance(seconds=301)
    assert await service.reclaim_stale() == 1
    job = await service.get_job(orphan.job_id)
    assert job.status == JobStatus.PENDING
    assert job.last_error == STALE_PROCESSING_JOB

    clock.advance(seconds=15 * 24 * 3600)
    assert await service.cleanup() == 1


@pytest.mark.asyncio
async def test_embedding_deletes(service):
    await service.enqueue_embedding_job(project_id="p1", target_type="entity", target_id="e1")
    await service.enqueue_embedding_job(project_id="p1", target_type="memory", target_id="m1")

    assert await service.delete_embedding_jobs_for_target("p1", "entity", "e1") == 1
    assert await service.delete_embedding_jobs_for_project("p1") == 1
    assert await service.list_due() == []

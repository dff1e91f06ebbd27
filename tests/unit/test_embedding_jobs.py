"""Unit tests for embedding reindex jobs."""

import pytest

from analysis_jobs.errors import InvalidJobError
from analysis_jobs.models import JobKind, JobStatus


@pytest.mark.asyncio
async def test_enqueue_embedding_job_defaults(service, store, clock):
    result = await service.enqueue_embedding_job(
        project_id="p1", target_type="document", target_id="d1"
    )

    job = await store.get_job(result.job_id)
    assert job.kind == JobKind.EMBEDDING_GENERATION
    assert job.user_id == "system"
    assert job.document_id == "d1"
    assert job.dedupe_key == "embedding_generation:document:d1"
    assert job.scheduled_for == clock.at_ms(15000)
    assert job.payload.target_type == "document"
    assert job.payload.target_id == "d1"


@pytest.mark.asyncio
async def test_entity_target_has_no_document(service, store):
    result = await service.enqueue_embedding_job(
        project_id="p1", target_type="entity", target_id="e1", user_id="u1"
    )

    job = await store.get_job(result.job_id)
    assert job.user_id == "u1"
    assert job.document_id is None
    assert job.dedupe_key == "embedding_generation:entity:e1"


@pytest.mark.asyncio
async def test_embedding_jobs_debounce_per_target(service, store):
    first = await service.enqueue_embedding_job(
        project_id="p1", target_type="memory", target_id="m1"
    )
    again = await service.enqueue_embedding_job(
        project_id="p1", target_type="memory", target_id="m1"
    )
    other = await service.enqueue_embedding_job(
        project_id="p1", target_type="memory", target_id="m2"
    )

    assert first.job_id == again.job_id
    assert other.job_id != first.job_id
    assert len(store) == 2


@pytest.mark.asyncio
async def test_unknown_target_type_is_rejected(service, store):
    with pytest.raises(InvalidJobError):
        await service.enqueue_embedding_job(project_id="p1", target_type="chapter", target_id="x")

    with pytest.raises(InvalidJobError):
        await service.delete_embedding_jobs_for_target("p1", "chapter", "x")

    assert len(store) == 0


@pytest.mark.asyncio
async def test_delete_embedding_jobs_for_target(service, store, clock):
    """Test that every embedding job for the target goes, whatever its status."""
    done = await service.enqueue_embedding_job(
        project_id="p1", target_type="entity", target_id="e1", debounce_ms=0
    )
    claim = await service.claim(done.job_id)
    await service.finalize(done.job_id, claim.run_id)
    pending = await service.enqueue_embedding_job(
        project_id="p1", target_type="entity", target_id="e1"
    )
    other_target = await service.enqueue_embedding_job(
        project_id="p1", target_type="entity", target_id="e2"
    )

    assert await service.delete_embedding_jobs_for_target("p2", "entity", "e1") == 0

    removed = await service.delete_embedding_jobs_for_target("p1", "entity", "e1")

    assert removed == 2
    assert await store.get_job(done.job_id) is None
    assert await store.get_job(pending.job_id) is None
    assert await store.get_job(other_target.job_id) is not None


@pytest.mark.asyncio
async def test_delete_embedding_jobs_for_project(service, store):
    await service.enqueue_embedding_job(project_id="p1", target_type="entity", target_id="e1")
    await service.enqueue_embedding_job(project_id="p1", target_type="memory", target_id="m1")
    analysis = await service.enqueue(
        project_id="p1", user_id="u1", document_id="d1", kind="clarity_check"
    )
    elsewhere = await service.enqueue_embedding_job(
        project_id="p2", target_type="entity", target_id="e9"
    )

    assert await service.delete_embedding_jobs_for_project("p1") == 2

    assert (await store.get_job(analysis.job_id)).status == JobStatus.PENDING
    assert await store.get_job(elsewhere.job_id) is not None
    assert await service.delete_embedding_jobs_for_project("p1") == 0

"""Unit tests for due-job listing and claiming."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from analysis_jobs.models import JobStatus
from analysis_jobs.service import MAX_ATTEMPTS_EXCEEDED


@pytest.mark.asyncio
async def test_list_due_skips_jobs_still_debouncing(service, clock, sample_ids):
    await service.enqueue(kind="clarity_check", debounce_ms=3000, **sample_ids)

    assert await service.list_due() == []

    clock.set_ms(3000)
    due = await service.list_due()
    assert len(due) == 1


@pytest.mark.asyncio
async def test_list_due_orders_by_scheduled_for(service, clock):
    ids = {"project_id": "p", "user_id": "u", "kind": "clarity_check"}
    late = await service.enqueue(document_id="d1", debounce_ms=2000, **ids)
    early = await service.enqueue(document_id="d2", debounce_ms=500, **ids)
    middle = await service.enqueue(document_id="d3", debounce_ms=1000, **ids)

    clock.advance(seconds=10)
    due = await service.list_due()

    assert [job.id for job in due] == [early.job_id, middle.job_id, late.job_id]


@pytest.mark.asyncio
async def test_list_due_limit_is_clamped(service, clock):
    for i in range(60):
        await service.enqueue(
            project_id="p", user_id="u", document_id=f"d{i}", kind="policy_check", debounce_ms=0
        )

    assert len(await service.list_due()) == 10
    assert len(await service.list_due(limit=3)) == 3
    assert len(await service.list_due(limit=0)) == 1
    assert len(await service.list_due(limit=500)) == 50


@pytest.mark.asyncio
async def test_list_due_excludes_non_pending(service, clock, sample_ids):
    result = await service.enqueue(kind="clarity_check", debounce_ms=0, **sample_ids)
    await service.claim(result.job_id)

    assert await service.list_due() == []


@pytest.mark.asyncio
async def test_claim_sets_lease(service, store, clock, sample_ids):
    """Test that a claim moves the job to processing under a fresh lease."""
    result = await service.enqueue(kind="clarity_check", **sample_ids)
    clock.set_ms(3000)

    claim = await service.claim(result.job_id)

    assert claim.claimed is True
    assert claim.run_id
    job = await store.get_job(result.job_id)
    assert job.status == JobStatus.PROCESSING
    assert job.attempts == 1
    assert job.processing_run_id == claim.run_id
    assert job.processing_started_at == clock.now
    assert job.lease_expires_at == clock.now + timedelta(seconds=300)
    assert job.last_error is None


@pytest.mark.asyncio
async def test_claim_before_due_is_refused(service, store, sample_ids):
    result = await service.enqueue(kind="clarity_check", **sample_ids)

    claim = await service.claim(result.job_id)

    assert claim.claimed is False
    assert claim.run_id is None
    assert (await store.get_job(result.job_id)).status == JobStatus.PENDING


@pytest.mark.asyncio
async def test_claim_missing_job(service):
    claim = await service.claim(uuid4())
    assert claim.claimed is False


@pytest.mark.asyncio
async def test_second_claim_is_refused(service, store, clock, sample_ids):
    result = await service.enqueue(kind="clarity_check", debounce_ms=0, **sample_ids)

    first = await service.claim(result.job_id)
    second = await service.claim(result.job_id)

    assert first.claimed is True
    assert second.claimed is False
    job = await store.get_job(result.job_id)
    assert job.attempts == 1
    assert job.processing_run_id == first.run_id


@pytest.mark.asyncio
async def test_concurrent_claims_have_one_winner(yielding_service, yielding_store, sample_ids):
    """Test that racing claimers never both take the lease."""
    result = await yielding_service.enqueue(kind="clarity_check", debounce_ms=0, **sample_ids)

    claims = await asyncio.gather(*(yielding_service.claim(result.job_id) for _ in range(4)))

    winners = [claim for claim in claims if claim.claimed]
    assert len(winners) == 1
    job = await yielding_store.get_job(result.job_id)
    assert job.attempts == 1
    assert job.processing_run_id == winners[0].run_id


@pytest.mark.asyncio
async def test_claim_at_attempt_ceiling_fails_job(service, store, clock, sample_ids):
    """Test that a pending job with no attempts left is failed rather than run."""
    result = await service.enqueue(kind="clarity_check", debounce_ms=0, **sample_ids)
    job = await store.get_job(result.job_id)
    await store.update_job(job.id, job.version, {"attempts": 5})

    claim = await service.claim(result.job_id)

    assert claim.claimed is False
    job = await store.get_job(result.job_id)
    assert job.status == JobStatus.FAILED
    assert job.last_error == MAX_ATTEMPTS_EXCEEDED
    assert job.processing_run_id is None

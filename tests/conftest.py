"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from analysis_jobs.config import AnalysisJobsConfig
from analysis_jobs.memory_store import InMemoryJobStore
from analysis_jobs.service import AnalysisJobService

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock injected into the service."""

    def __init__(self, start: datetime = START):
        self.start = start
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, milliseconds: float = 0) -> datetime:
        self.now += timedelta(seconds=seconds, milliseconds=milliseconds)
        return self.now

    def set_ms(self, offset_ms: int) -> datetime:
        """Jump to start + offset_ms."""
        self.now = self.start + timedelta(milliseconds=offset_ms)
        return self.now

    def at_ms(self, offset_ms: int) -> datetime:
        return self.start + timedelta(milliseconds=offset_ms)


class YieldingJobStore(InMemoryJobStore):
    """Memory store that yields to the event loop after every read.

    Lets concurrent coroutines interleave between their read and their write,
    the way separate worker processes do against a real database.
    """

    async def get_job(self, job_id):
        job = await super().get_job(job_id)
        await asyncio.sleep(0)
        return job

    async def find_active_job(self, dedupe_key):
        job = await super().find_active_job(dedupe_key)
        await asyncio.sleep(0)
        return job


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return AnalysisJobsConfig()


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def service(config, store, clock):
    return AnalysisJobService(config, store, clock=clock)


@pytest.fixture
def yielding_store():
    return YieldingJobStore()


@pytest.fixture
def yielding_service(config, yielding_store, clock):
    return AnalysisJobService(config, yielding_store, clock=clock)


@pytest.fixture
def no_jitter(monkeypatch):
    """Pin the backoff jitter factor to 1.0."""
    monkeypatch.setattr("analysis_jobs.backoff.random.uniform", lambda low, high: 1.0)


@pytest.fixture
def sample_ids():
    return {"project_id": "project-1", "user_id": "user-1", "document_id": "doc-1"}

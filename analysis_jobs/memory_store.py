"""In-process job store.

Same contract as the Postgres store, kept in a dict. Useful for tests and for
running a single worker locally without a database.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from analysis_jobs.errors import DuplicateActiveJobError
from analysis_jobs.models import AnalysisJob, JobKind, JobStatus
from analysis_jobs.store import UPDATABLE_COLUMNS, JobStore


class InMemoryJobStore(JobStore):
    """Dict-backed job store guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._jobs: Dict[UUID, AnalysisJob] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._jobs)

    async def insert_job(self, job: AnalysisJob) -> None:
        async with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            if job.dedupe_key and job.is_active and self._active_for(job.dedupe_key):
                raise DuplicateActiveJobError(job.dedupe_key)
            self._jobs[job.id] = job.copy()

    async def get_job(self, job_id: UUID) -> Optional[AnalysisJob]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.copy() if job else None

    async def find_active_job(self, dedupe_key: str) -> Optional[AnalysisJob]:
        async with self._lock:
            job = self._active_for(dedupe_key)
            return job.copy() if job else None

    async def update_job(
        self, job_id: UUID, expected_version: int, changes: Dict[str, Any]
    ) -> bool:
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")

        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.version != expected_version:
                return False
            for column, value in changes.items():
                setattr(job, column, value)
            job.version += 1
            return True

    async def delete_job(self, job_id: UUID, expected_version: Optional[int] = None) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            if expected_version is not None and job.version != expected_version:
                return False
            del self._jobs[job_id]
            return True

    async def delete_jobs(self, job_ids: List[UUID]) -> int:
        async with self._lock:
            removed = 0
            for job_id in job_ids:
                if self._jobs.pop(job_id, None) is not None:
                    removed += 1
            return removed

    async def list_due_jobs(self, now: datetime, limit: int) -> List[AnalysisJob]:
        async with self._lock:
            due = [
                job
                for job in self._jobs.values()
                if job.status == JobStatus.PENDING and job.scheduled_for <= now
            ]
            due.sort(key=lambda job: job.scheduled_for)
            return [job.copy() for job in due[:limit]]

    async def list_expired_leases(self, now: datetime, limit: int) -> List[AnalysisJob]:
        async with self._lock:
            expired = [
                job
                for job in self._jobs.values()
                if job.status == JobStatus.PROCESSING
                and (job.lease_expires_at is None or job.lease_expires_at <= now)
            ]
            # Unset leases first, then oldest expiry
            expired.sort(
                key=lambda job: (job.lease_expires_at is not None, job.lease_expires_at or now)
            )
            return [job.copy() for job in expired[:limit]]

    async def list_terminal_jobs_before(
        self, status: JobStatus, cutoff: datetime, limit: int
    ) -> List[AnalysisJob]:
        async with self._lock:
            old = [
                job
                for job in self._jobs.values()
                if job.status == status and job.updated_at < cutoff
            ]
            old.sort(key=lambda job: job.updated_at)
            return [job.copy() for job in old[:limit]]

    async def list_jobs_by_dedupe_key(self, dedupe_key: str) -> List[AnalysisJob]:
        async with self._lock:
            return [job.copy() for job in self._jobs.values() if job.dedupe_key == dedupe_key]

    async def list_jobs_by_project_kind(
        self, project_id: str, kind: JobKind
    ) -> List[AnalysisJob]:
        async with self._lock:
            return [
                job.copy()
                for job in self._jobs.values()
                if job.project_id == project_id and job.kind == kind
            ]

    def _active_for(self, dedupe_key: str) -> Optional[AnalysisJob]:
        for job in self._jobs.values():
            if job.dedupe_key == dedupe_key and job.is_active:
                return job
        return None

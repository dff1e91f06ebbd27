"""Store layer for analysis jobs."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

import asyncpg
from pydantic import BaseModel

from analysis_jobs.ddl import ACTIVE_DEDUPE_INDEX_NAME
from analysis_jobs.errors import DuplicateActiveJobError, InvalidJobError
from analysis_jobs.models import AnalysisJob, JobKind, JobStatus
from analysis_jobs.payloads import dump_payload, parse_payload

logger = logging.getLogger(__name__)

# Columns a conditional update may touch. id, kind, version and created_at are
# never rewritten.
UPDATABLE_COLUMNS = frozenset(
    {
        "project_id",
        "user_id",
        "document_id",
        "status",
        "attempts",
        "last_error",
        "scheduled_for",
        "content_hash",
        "dedupe_key",
        "processing_run_id",
        "processing_started_at",
        "lease_expires_at",
        "payload",
        "result_summary",
        "result_ref",
        "dirty",
        "updated_at",
    }
)


class JobStore(ABC):
    """
    Document-store contract the queue is written against.

    Every write to an existing row is a compare-and-swap on ``version``: it
    applies only when the caller's snapshot is still current, and bumps the
    version on success. That single-record atomicity is all the coordination
    the queue needs between concurrent workers.
    """

    @abstractmethod
    async def insert_job(self, job: AnalysisJob) -> None:
        """
        Insert a new job.

        Raises:
            DuplicateActiveJobError: If an active job already owns job.dedupe_key
        """

    @abstractmethod
    async def get_job(self, job_id: UUID) -> Optional[AnalysisJob]:
        """Point read; None when the job does not exist."""

    @abstractmethod
    async def find_active_job(self, dedupe_key: str) -> Optional[AnalysisJob]:
        """Pending or processing job holding a dedupe key, if any."""

    @abstractmethod
    async def update_job(
        self, job_id: UUID, expected_version: int, changes: Dict[str, Any]
    ) -> bool:
        """Apply changes if the stored version matches. Returns True when applied."""

    @abstractmethod
    async def delete_job(self, job_id: UUID, expected_version: Optional[int] = None) -> bool:
        """Delete one job, optionally only if its version still matches."""

    @abstractmethod
    async def delete_jobs(self, job_ids: List[UUID]) -> int:
        """Unconditionally delete jobs by id. Returns the number removed."""

    @abstractmethod
    async def list_due_jobs(self, now: datetime, limit: int) -> List[AnalysisJob]:
        """Pending jobs with scheduled_for <= now, earliest first."""

    @abstractmethod
    async def list_expired_leases(self, now: datetime, limit: int) -> List[AnalysisJob]:
        """Processing jobs whose lease is unset or has expired."""

    @abstractmethod
    async def list_terminal_jobs_before(
        self, status: JobStatus, cutoff: datetime, limit: int
    ) -> List[AnalysisJob]:
        """Jobs in a terminal status last updated before cutoff, oldest first."""

    @abstractmethod
    async def list_jobs_by_dedupe_key(self, dedupe_key: str) -> List[AnalysisJob]:
        """All jobs sharing a dedupe key, in any status."""

    @abstractmethod
    async def list_jobs_by_project_kind(
        self, project_id: str, kind: JobKind
    ) -> List[AnalysisJob]:
        """All jobs of one kind within a project."""


class PostgresJobStore(JobStore):
    """PostgreSQL implementation backed by an asyncpg pool."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def insert_job(self, job: AnalysisJob) -> None:
        """Insert a new job into the database."""
        async with self.db_pool.acquire() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO analysis_jobs (
                        id, project_id, user_id, document_id, kind, status,
                        attempts, last_error, scheduled_for, content_hash,
                        dedupe_key, processing_run_id, processing_started_at,
                        lease_expires_at, payload, result_summary, result_ref,
                        dirty, version, created_at, updated_at
                    ) VALUES (
                        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13,
                        $14, $15, $16, $17, $18, $19, $20, $21
                    )
                    """,
                    job.id,
                    job.project_id,
                    job.user_id,
                    job.document_id,
                    job.kind.value,
                    job.status.value,
                    job.attempts,
                    job.last_error,
                    job.scheduled_for,
                    job.content_hash,
                    job.dedupe_key,
                    job.processing_run_id,
                    job.processing_started_at,
                    job.lease_expires_at,
                    self._encode("payload", job.payload),
                    job.result_summary,
                    self._encode("result_ref", job.result_ref),
                    job.dirty,
                    job.version,
                    job.created_at,
                    job.updated_at,
                )
            except asyncpg.exceptions.UniqueViolationError as e:
                if getattr(e, "constraint_name", None) == ACTIVE_DEDUPE_INDEX_NAME:
                    raise DuplicateActiveJobError(job.dedupe_key) from e
                raise

    async def get_job(self, job_id: UUID) -> Optional[AnalysisJob]:
        """Get a job by ID."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM analysis_jobs WHERE id = $1", job_id)

        return self._row_to_job(row) if row else None

    async def find_active_job(self, dedupe_key: str) -> Optional[AnalysisJob]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM analysis_jobs
                WHERE dedupe_key = $1
                  AND status IN ($2, $3)
                LIMIT 1
                """,
                dedupe_key,
                JobStatus.PENDING.value,
                JobStatus.PROCESSING.value,
            )

        return self._row_to_job(row) if row else None

    async def update_job(
        self, job_id: UUID, expected_version: int, changes: Dict[str, Any]
    ) -> bool:
        """Conditionally update a job; the version check makes it a compare-and-swap."""
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")

        assignments = []
        params = []
        for idx, (column, value) in enumerate(changes.items(), start=1):
            assignments.append(f"{column} = ${idx}")
            params.append(self._encode(column, value))

        id_idx = len(params) + 1
        query = (
            f"UPDATE analysis_jobs SET {', '.join(assignments)}, version = version + 1 "
            f"WHERE id = ${id_idx} AND version = ${id_idx + 1}"
        )

        async with self.db_pool.acquire() as conn:
            result = await conn.execute(query, *params, job_id, expected_version)

        return self._affected(result) == 1

    async def delete_job(self, job_id: UUID, expected_version: Optional[int] = None) -> bool:
        async with self.db_pool.acquire() as conn:
            if expected_version is None:
                result = await conn.execute(
                    "DELETE FROM analysis_jobs WHERE id = $1", job_id
                )
            else:
                result = await conn.execute(
                    "DELETE FROM analysis_jobs WHERE id = $1 AND version = $2",
                    job_id,
                    expected_version,
                )

        return self._affected(result) == 1

    async def delete_jobs(self, job_ids: List[UUID]) -> int:
        if not job_ids:
            return 0

        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM analysis_jobs WHERE id = ANY($1::uuid[])", job_ids
            )

        return self._affected(result)

    async def list_due_jobs(self, now: datetime, limit: int) -> List[AnalysisJob]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM analysis_jobs
                WHERE status = $1
                  AND scheduled_for <= $2
                ORDER BY scheduled_for ASC
                LIMIT $3
                """,
                JobStatus.PENDING.value,
                now,
                limit,
            )

        return self._decode_scan(rows)

    async def list_expired_leases(self, now: datetime, limit: int) -> List[AnalysisJob]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM analysis_jobs
                WHERE status = $1
                  AND (lease_expires_at IS NULL OR lease_expires_at <= $2)
                ORDER BY lease_expires_at ASC NULLS FIRST
                LIMIT $3
                """,
                JobStatus.PROCESSING.value,
                now,
                limit,
            )

        return self._decode_scan(rows)

    async def list_terminal_jobs_before(
        self, status: JobStatus, cutoff: datetime, limit: int
    ) -> List[AnalysisJob]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM analysis_jobs
                WHERE status = $1
                  AND updated_at < $2
                ORDER BY updated_at ASC
                LIMIT $3
                """,
                status.value,
                cutoff,
                limit,
            )

        return self._decode_scan(rows)

    async def list_jobs_by_dedupe_key(self, dedupe_key: str) -> List[AnalysisJob]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM analysis_jobs WHERE dedupe_key = $1", dedupe_key
            )

        return [self._row_to_job(row) for row in rows]

    async def list_jobs_by_project_kind(
        self, project_id: str, kind: JobKind
    ) -> List[AnalysisJob]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM analysis_jobs WHERE project_id = $1 AND kind = $2",
                project_id,
                kind.value,
            )

        return [self._row_to_job(row) for row in rows]

    def _decode_scan(self, rows: List[asyncpg.Record]) -> List[AnalysisJob]:
        """Decode scan results, skipping rows whose kind or payload no longer validates."""
        jobs = []
        for row in rows:
            try:
                jobs.append(self._row_to_job(row))
            except (InvalidJobError, ValueError) as e:
                logger.error(f"Skipping undecodable job {row['id']}: {str(e)}")
        return jobs

    @staticmethod
    def _affected(result: Optional[str]) -> int:
        # asyncpg returns the command tag, e.g. "UPDATE 1" or "DELETE 3"
        return int(result.split()[-1]) if result else 0

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column == "payload":
            if isinstance(value, BaseModel):
                return json.dumps(dump_payload(value))
            return json.dumps(value or {})
        if column == "result_ref":
            return json.dumps(value) if value is not None else None
        if isinstance(value, Enum):
            return value.value
        return value

    @staticmethod
    def _decode_json(value: Any) -> Any:
        return json.loads(value) if isinstance(value, str) else value

    def _row_to_job(self, row: asyncpg.Record) -> AnalysisJob:
        """Convert a database row to an AnalysisJob model."""
        kind = JobKind(row["kind"])
        return AnalysisJob(
            id=row["id"],
            project_id=row["project_id"],
            user_id=row["user_id"],
            document_id=row["document_id"],
            kind=kind,
            status=JobStatus(row["status"]),
            attempts=row["attempts"],
            last_error=row["last_error"],
            scheduled_for=row["scheduled_for"],
            content_hash=row["content_hash"],
            dedupe_key=row["dedupe_key"],
            processing_run_id=row["processing_run_id"],
            processing_started_at=row["processing_started_at"],
            lease_expires_at=row["lease_expires_at"],
            payload=parse_payload(kind, self._decode_json(row["payload"])),
            result_summary=row["result_summary"],
            result_ref=self._decode_json(row["result_ref"]),
            dirty=row["dirty"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

"""High-level service layer for analysis job operations."""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import UUID, uuid4

from analysis_jobs.backoff import calculate_backoff_with_jitter
from analysis_jobs.config import AnalysisJobsConfig
from analysis_jobs.errors import (
    AdmissionConflictError,
    DuplicateActiveJobError,
    InvalidJobError,
    JobNotFoundError,
)
from analysis_jobs.models import (
    DOCUMENT_ANALYSIS_KINDS,
    AnalysisJob,
    ClaimResult,
    EnqueueResult,
    JobKind,
    JobStatus,
)
from analysis_jobs.payloads import parse_kind, parse_payload
from analysis_jobs.store import JobStore

MAX_ATTEMPTS_EXCEEDED = "max_attempts_exceeded"
STALE_PROCESSING_JOB = "stale_processing_job"

EMBEDDING_TARGET_TYPES = ("document", "entity", "memory", "memory_delete")
EMBEDDING_SYSTEM_USER = "system"

# How many times a read-then-write is retried after losing a version race.
ADMISSION_RETRIES = 10
WRITE_RETRIES = 5

_CLEARED_LEASE = {
    "processing_run_id": None,
    "processing_started_at": None,
    "lease_expires_at": None,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_dedupe_key(
    kind: JobKind,
    project_id: str,
    document_id: Optional[str] = None,
    dedupe_key: Optional[str] = None,
) -> str:
    """Admission slot: explicit key, else kind:document_id, else kind:project_id."""
    if dedupe_key:
        return dedupe_key
    if document_id:
        return f"{kind.value}:{document_id}"
    return f"{kind.value}:{project_id}"


def build_embedding_dedupe_key(target_type: str, target_id: str) -> str:
    return f"{JobKind.EMBEDDING_GENERATION.value}:{target_type}:{target_id}"


def hash_content(text: str) -> str:
    """SHA-256 hex digest used as the upstream change-detection hash."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class AnalysisJobService:
    """High-level API for the analysis job queue."""

    def __init__(
        self,
        config: AnalysisJobsConfig,
        store: JobStore,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or _utcnow

    # Admission

    async def enqueue(
        self,
        *,
        project_id: str,
        user_id: str,
        kind: Any,
        payload: Any = None,
        document_id: Optional[str] = None,
        content_hash: Optional[str] = None,
        dedupe_key: Optional[str] = None,
        debounce_ms: Optional[int] = None,
    ) -> EnqueueResult:
        """
        Admit an analysis request, folding it into an active job when one exists.

        Args:
            project_id: Owning project
            user_id: User whose edit triggered the request
            kind: Analysis kind
            payload: Kind-specific payload (validated against the kind)
            document_id: Optional document the analysis targets
            content_hash: Optional hash of the analyzed content
            dedupe_key: Optional explicit admission slot
            debounce_ms: Delay before the job becomes due (default per kind)

        Returns:
            EnqueueResult with the job id and its status at admission time

        Raises:
            InvalidJobError: If the kind, payload or owner ids are malformed, or the
                dedupe key is held by an active job of another kind
            AdmissionConflictError: If the slot kept changing under concurrent writers
        """
        if not project_id:
            raise InvalidJobError("project_id is required")
        if not user_id:
            raise InvalidJobError("user_id is required")

        job_kind = parse_kind(kind)
        job_payload = parse_payload(job_kind, payload)
        if debounce_ms is None:
            debounce_ms = self._default_debounce_ms(job_kind)

        key = build_dedupe_key(job_kind, project_id, document_id, dedupe_key)

        for _ in range(ADMISSION_RETRIES):
            now = self.clock()
            scheduled_for = now + timedelta(milliseconds=max(0, debounce_ms))

            active = await self.store.find_active_job(key)
            if active is not None:
                if active.kind != job_kind:
                    raise InvalidJobError(
                        f"Dedupe key {key} is held by a {active.kind.value} job, "
                        f"cannot admit {job_kind.value}"
                    )
                changes: Dict[str, Any] = {
                    "payload": job_payload,
                    "content_hash": content_hash,
                    "updated_at": now,
                }
                if active.status == JobStatus.PENDING:
                    # Trailing debounce: every call re-arms the window
                    changes["scheduled_for"] = max(active.scheduled_for, scheduled_for)
                else:
                    changes["dirty"] = True

                if await self.store.update_job(active.id, active.version, changes):
                    self.logger.debug(
                        f"Folded {job_kind.value} request into {active.status.value} "
                        f"job {active.id} (dedupe_key={key})"
                    )
                    return EnqueueResult(job_id=active.id, status=active.status)
                continue

            job = AnalysisJob(
                id=uuid4(),
                project_id=project_id,
                user_id=user_id,
                document_id=document_id,
                kind=job_kind,
                status=JobStatus.PENDING,
                attempts=0,
                scheduled_for=scheduled_for,
                content_hash=content_hash,
                dedupe_key=key,
                payload=job_payload,
                dirty=False,
                created_at=now,
                updated_at=now,
            )
            try:
                await self.store.insert_job(job)
            except DuplicateActiveJobError:
                # Another writer took the slot first; fold into it on the next pass
                continue

            self.logger.info(
                f"Enqueued {job_kind.value} job {job.id} for project {project_id} "
                f"due at {scheduled_for.isoformat()}"
            )
            return EnqueueResult(job_id=job.id, status=JobStatus.PENDING)

        raise AdmissionConflictError(key, ADMISSION_RETRIES)

    async def enqueue_document_analysis(
        self,
        *,
        project_id: str,
        user_id: str,
        document_id: str,
        content_text: str,
        source: str,
        kinds: Iterable[JobKind] = DOCUMENT_ANALYSIS_KINDS,
    ) -> List[EnqueueResult]:
        """Fan out the per-document analysis kinds after a document write."""
        content_hash = hash_content(content_text)
        results = []
        for kind in kinds:
            results.append(
                await self.enqueue(
                    project_id=project_id,
                    user_id=user_id,
                    document_id=document_id,
                    kind=kind,
                    payload={"source": source},
                    content_hash=content_hash,
                    debounce_ms=self.config.debounce_ms,
                )
            )
        return results

    async def enqueue_embedding_job(
        self,
        *,
        project_id: str,
        target_type: str,
        target_id: str,
        user_id: Optional[str] = None,
        document_id: Optional[str] = None,
        debounce_ms: Optional[int] = None,
    ) -> EnqueueResult:
        """Schedule a debounced reindex of one embedding target."""
        self._check_target_type(target_type)
        if document_id is None and target_type == "document":
            document_id = target_id

        return await self.enqueue(
            project_id=project_id,
            user_id=user_id or EMBEDDING_SYSTEM_USER,
            document_id=document_id,
            kind=JobKind.EMBEDDING_GENERATION,
            payload={"target_type": target_type, "target_id": target_id},
            dedupe_key=build_embedding_dedupe_key(target_type, target_id),
            debounce_ms=(
                debounce_ms if debounce_ms is not None else self.config.embedding_debounce_ms
            ),
        )

    # Reads

    async def get_job(self, job_id: UUID) -> AnalysisJob:
        """Get a job by ID."""
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    async def list_due(self, limit: Optional[int] = None) -> List[AnalysisJob]:
        """Pending jobs that are due, earliest scheduled first."""
        if limit is None:
            limit = self.config.batch_size
        limit = max(1, min(limit, self.config.scan_limit))
        return await self.store.list_due_jobs(self.clock(), limit)

    # Claim / lease

    async def claim(self, job_id: UUID) -> ClaimResult:
        """
        Try to take the lease on a due pending job.

        Losing to another claimer is not an error: the result is simply
        ``claimed=False``. A job that has used up its attempts is marked
        failed instead of being claimed.
        """
        for _ in range(WRITE_RETRIES):
            now = self.clock()
            job = await self.store.get_job(job_id)
            if job is None or job.status != JobStatus.PENDING or job.scheduled_for > now:
                return ClaimResult(claimed=False)

            if job.attempts >= self.config.max_attempts:
                if await self.store.update_job(
                    job.id,
                    job.version,
                    {
                        "status": JobStatus.FAILED,
                        "last_error": MAX_ATTEMPTS_EXCEEDED,
                        "updated_at": now,
                    },
                ):
                    self.logger.warning(
                        f"Job {job.id} reached {job.attempts} attempts, marked as failed"
                    )
                    return ClaimResult(claimed=False)
                continue

            run_id = str(uuid4())
            applied = await self.store.update_job(
                job.id,
                job.version,
                {
                    "status": JobStatus.PROCESSING,
                    "attempts": job.attempts + 1,
                    "processing_run_id": run_id,
                    "processing_started_at": now,
                    "lease_expires_at": now + timedelta(seconds=self.config.lease_seconds),
                    "last_error": None,
                    "updated_at": now,
                },
            )
            if applied:
                self.logger.info(
                    f"Claimed {job.kind.value} job {job.id} "
                    f"(attempt {job.attempts + 1}/{self.config.max_attempts})"
                )
                return ClaimResult(claimed=True, run_id=run_id)

        self.logger.debug(f"Gave up claiming job {job_id} after repeated version races")
        return ClaimResult(claimed=False)

    # Finalize / fail

    async def finalize(
        self,
        job_id: UUID,
        run_id: str,
        result_summary: Optional[str] = None,
        result_ref: Optional[Dict[str, Any]] = None,
    ) -> Optional[JobStatus]:
        """
        Record a successful run.

        A job marked dirty during the run goes back to pending instead of
        succeeding. Returns the new status, or None when the run id no longer
        owns the job.
        """

        def build(job: AnalysisJob, now: datetime) -> Dict[str, Any]:
            changes: Dict[str, Any] = {**_CLEARED_LEASE, "updated_at": now}
            if result_summary is not None:
                changes["result_summary"] = result_summary
            if result_ref is not None:
                changes["result_ref"] = result_ref
            if job.dirty:
                changes["status"] = JobStatus.PENDING
                changes["scheduled_for"] = now + timedelta(milliseconds=self.config.debounce_ms)
                changes["dirty"] = False
            else:
                changes["status"] = JobStatus.SUCCEEDED
            return changes

        status = await self._complete_run(job_id, run_id, build)
        if status == JobStatus.PENDING:
            self.logger.info(f"Job {job_id} was superseded while running, requeued")
        elif status == JobStatus.SUCCEEDED:
            self.logger.info(f"Job {job_id} succeeded")
        return status

    async def fail(self, job_id: UUID, run_id: str, error_message: str) -> Optional[JobStatus]:
        """
        Record a failed run: back off and retry, or fail for good at the ceiling.

        Returns the new status, or None when the run id no longer owns the job.
        """

        def build(job: AnalysisJob, now: datetime) -> Dict[str, Any]:
            changes: Dict[str, Any] = {
                **_CLEARED_LEASE,
                "last_error": error_message,
                "updated_at": now,
            }
            if job.attempts >= self.config.max_attempts:
                changes["status"] = JobStatus.FAILED
            else:
                changes["status"] = JobStatus.PENDING
                changes["scheduled_for"] = now + self._backoff(job.attempts)
            return changes

        status = await self._complete_run(job_id, run_id, build)
        if status == JobStatus.FAILED:
            self.logger.error(f"Job {job_id} failed permanently: {error_message}")
        elif status == JobStatus.PENDING:
            self.logger.warning(f"Job {job_id} failed, scheduled for retry: {error_message}")
        return status

    # Maintenance

    async def reclaim_stale(self) -> int:
        """
        Return processing jobs with expired leases to pending.

        Call periodically to recover from crashed workers. Returns the number
        of jobs requeued.
        """
        now = self.clock()
        candidates = await self.store.list_expired_leases(now, self.config.scan_limit)

        requeued = 0
        for job in candidates:
            if job.lease_expires_at is not None and job.lease_expires_at > now:
                continue
            applied = await self.store.update_job(
                job.id,
                job.version,
                {
                    **_CLEARED_LEASE,
                    "status": JobStatus.PENDING,
                    "scheduled_for": now + self._backoff(job.attempts),
                    "last_error": STALE_PROCESSING_JOB,
                    "updated_at": now,
                },
            )
            if applied:
                requeued += 1
                self.logger.warning(
                    f"Reclaimed stale job {job.id} (attempts={job.attempts}, "
                    f"lease_expires_at={job.lease_expires_at})"
                )

        if requeued > 0:
            self.logger.info(f"Reclaimed {requeued} stale processing jobs")
        return requeued

    async def cleanup(self) -> int:
        """Delete terminal jobs older than the retention window. Returns the count."""
        now = self.clock()
        cutoff = now - timedelta(days=self.config.retention_days)

        removed = 0
        for status in (JobStatus.SUCCEEDED, JobStatus.FAILED):
            candidates = await self.store.list_terminal_jobs_before(
                status, cutoff, self.config.scan_limit
            )
            for job in candidates:
                if await self.store.delete_job(job.id, job.version):
                    removed += 1

        if removed > 0:
            self.logger.info(f"Cleaned up {removed} finished jobs older than {cutoff.isoformat()}")
        return removed

    # Embedding job bulk deletes

    async def delete_embedding_jobs_for_target(
        self, project_id: str, target_type: str, target_id: str
    ) -> int:
        """Hard-delete every embedding job for one target within a project."""
        self._check_target_type(target_type)
        jobs = await self.store.list_jobs_by_dedupe_key(
            build_embedding_dedupe_key(target_type, target_id)
        )
        job_ids = [
            job.id
            for job in jobs
            if job.project_id == project_id and job.kind == JobKind.EMBEDDING_GENERATION
        ]
        removed = await self.store.delete_jobs(job_ids)
        self.logger.info(
            f"Deleted {removed} embedding jobs for {target_type} {target_id} "
            f"in project {project_id}"
        )
        return removed

    async def delete_embedding_jobs_for_project(self, project_id: str) -> int:
        """Hard-delete every embedding job in a project."""
        jobs = await self.store.list_jobs_by_project_kind(
            project_id, JobKind.EMBEDDING_GENERATION
        )
        removed = await self.store.delete_jobs([job.id for job in jobs])
        self.logger.info(f"Deleted {removed} embedding jobs in project {project_id}")
        return removed

    # Helpers

    async def _complete_run(
        self,
        job_id: UUID,
        run_id: str,
        build: Callable[[AnalysisJob, datetime], Dict[str, Any]],
    ) -> Optional[JobStatus]:
        for _ in range(WRITE_RETRIES):
            job = await self.store.get_job(job_id)
            if (
                job is None
                or job.status != JobStatus.PROCESSING
                or not run_id
                or job.processing_run_id != run_id
            ):
                self.logger.debug(f"Ignoring result for job {job_id}: run {run_id} is stale")
                return None

            changes = build(job, self.clock())
            if await self.store.update_job(job.id, job.version, changes):
                return changes["status"]

        self.logger.warning(
            f"Could not record result for job {job_id} after {WRITE_RETRIES} attempts"
        )
        return None

    def _backoff(self, attempts: int) -> timedelta:
        return timedelta(
            seconds=calculate_backoff_with_jitter(
                attempts,
                base_seconds=self.config.backoff_base_seconds,
                max_seconds=self.config.backoff_max_seconds,
            )
        )

    def _default_debounce_ms(self, kind: JobKind) -> int:
        if kind == JobKind.EMBEDDING_GENERATION:
            return self.config.embedding_debounce_ms
        return self.config.debounce_ms

    @staticmethod
    def _check_target_type(target_type: str) -> None:
        if target_type not in EMBEDDING_TARGET_TYPES:
            raise InvalidJobError(f"Unknown embedding target type: {target_type!r}")

"""Data models for analysis jobs."""

import copy
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel


class JobKind(str, Enum):
    """Analysis kinds the queue knows how to schedule."""

    DETECT_ENTITIES = "detect_entities"
    COHERENCE_LINT = "coherence_lint"
    CLARITY_CHECK = "clarity_check"
    POLICY_CHECK = "policy_check"
    DIGEST_DOCUMENT = "digest_document"
    EMBEDDING_GENERATION = "embedding_generation"


class JobStatus(str, Enum):
    """Job status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)
TERMINAL_STATUSES = (JobStatus.SUCCEEDED, JobStatus.FAILED)

# Kinds fanned out for every document create/update.
DOCUMENT_ANALYSIS_KINDS = (
    JobKind.DETECT_ENTITIES,
    JobKind.COHERENCE_LINT,
    JobKind.CLARITY_CHECK,
    JobKind.POLICY_CHECK,
    JobKind.DIGEST_DOCUMENT,
)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class AnalysisJob:
    """Represents an analysis job record."""

    def __init__(
        self,
        id: UUID,
        project_id: str,
        user_id: str,
        kind: JobKind,
        status: JobStatus,
        payload: Any,
        scheduled_for: datetime,
        created_at: datetime,
        updated_at: datetime,
        document_id: Optional[str] = None,
        attempts: int = 0,
        last_error: Optional[str] = None,
        content_hash: Optional[str] = None,
        dedupe_key: Optional[str] = None,
        processing_run_id: Optional[str] = None,
        processing_started_at: Optional[datetime] = None,
        lease_expires_at: Optional[datetime] = None,
        result_summary: Optional[str] = None,
        result_ref: Optional[Dict[str, Any]] = None,
        dirty: bool = False,
        version: int = 0,
    ):
        self.id = id
        self.project_id = project_id
        self.user_id = user_id
        self.document_id = document_id
        self.kind = JobKind(kind) if isinstance(kind, str) else kind
        self.status = JobStatus(status) if isinstance(status, str) else status
        self.attempts = attempts
        self.last_error = last_error
        self.scheduled_for = scheduled_for
        self.content_hash = content_hash
        self.dedupe_key = dedupe_key
        self.processing_run_id = processing_run_id
        self.processing_started_at = processing_started_at
        self.lease_expires_at = lease_expires_at
        self.payload = payload
        self.result_summary = result_summary
        self.result_ref = result_ref
        self.dirty = dirty
        self.version = version
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def copy(self) -> "AnalysisJob":
        """Return a detached copy of this record."""
        return copy.deepcopy(self)

    def payload_dict(self) -> Dict[str, Any]:
        """Payload as plain JSON-compatible data."""
        if isinstance(self.payload, BaseModel):
            return self.payload.model_dump(mode="json", exclude_none=True)
        return dict(self.payload or {})

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        return {
            "id": str(self.id),
            "project_id": self.project_id,
            "user_id": self.user_id,
            "document_id": self.document_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "scheduled_for": _isoformat(self.scheduled_for),
            "content_hash": self.content_hash,
            "dedupe_key": self.dedupe_key,
            "processing_run_id": self.processing_run_id,
            "processing_started_at": _isoformat(self.processing_started_at),
            "lease_expires_at": _isoformat(self.lease_expires_at),
            "payload": self.payload_dict(),
            "result_summary": self.result_summary,
            "result_ref": self.result_ref,
            "dirty": self.dirty,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return (
            f"AnalysisJob(id={self.id}, kind={self.kind.value}, "
            f"status={self.status.value}, attempts={self.attempts})"
        )


class EnqueueResult(BaseModel):
    """Outcome of an admission call."""

    job_id: UUID
    status: JobStatus


class ClaimResult(BaseModel):
    """Outcome of a claim attempt; run_id is the lease ticket when claimed."""

    claimed: bool
    run_id: Optional[str] = None


class ExecutionResult(BaseModel):
    """Value returned by an executor and persisted on success."""

    summary: Optional[str] = None
    result_ref: Optional[Dict[str, Any]] = None

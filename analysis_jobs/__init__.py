"""Background analysis job queue with debounced admission and leased workers."""

from analysis_jobs.config import AnalysisJobsConfig
from analysis_jobs.ddl import ANALYSIS_JOBS_TABLE_DDL
from analysis_jobs.errors import (
    AdmissionConflictError,
    AnalysisJobsError,
    AuthTokenError,
    DuplicateActiveJobError,
    InvalidJobError,
    JobNotFoundError,
    RemoteHttpError,
)
from analysis_jobs.memory_store import InMemoryJobStore
from analysis_jobs.models import (
    AnalysisJob,
    ClaimResult,
    EnqueueResult,
    ExecutionResult,
    JobKind,
    JobStatus,
)
from analysis_jobs.registry import ExecutorRegistry, executor_registry
from analysis_jobs.scheduler import run_maintenance_loop
from analysis_jobs.service import AnalysisJobService
from analysis_jobs.store import JobStore, PostgresJobStore
from analysis_jobs.worker import process_due_jobs, run_worker_loop

__version__ = "0.1.0"

__all__ = [
    "AnalysisJobsConfig",
    "ANALYSIS_JOBS_TABLE_DDL",
    "AdmissionConflictError",
    "AnalysisJobsError",
    "AuthTokenError",
    "DuplicateActiveJobError",
    "InvalidJobError",
    "JobNotFoundError",
    "RemoteHttpError",
    "InMemoryJobStore",
    "AnalysisJob",
    "ClaimResult",
    "EnqueueResult",
    "ExecutionResult",
    "JobKind",
    "JobStatus",
    "ExecutorRegistry",
    "executor_registry",
    "run_maintenance_loop",
    "AnalysisJobService",
    "JobStore",
    "PostgresJobStore",
    "process_due_jobs",
    "run_worker_loop",
]

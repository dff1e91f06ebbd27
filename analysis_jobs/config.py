"""Configuration for the analysis job queue."""

import os
from typing import Optional


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"Invalid integer in {name}: {value!r}") from e


class AnalysisJobsConfig:
    """Configuration object for analysis jobs."""

    def __init__(
        self,
        db_dsn: Optional[str] = None,
        debounce_ms: int = 3000,
        embedding_debounce_ms: int = 15000,
        lease_seconds: int = 300,
        max_attempts: int = 5,
        backoff_base_seconds: int = 30,
        backoff_max_seconds: int = 900,
        retention_days: int = 14,
        scan_limit: int = 50,
        batch_size: int = 10,
        enqueue_auth_token: Optional[str] = None,
    ):
        self.db_dsn = db_dsn
        self.debounce_ms = debounce_ms
        self.embedding_debounce_ms = embedding_debounce_ms
        self.lease_seconds = lease_seconds
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.retention_days = retention_days
        # Upper bound for every scan: due listing, stale reclaim and cleanup.
        self.scan_limit = scan_limit
        self.batch_size = batch_size
        self.enqueue_auth_token = enqueue_auth_token

    @classmethod
    def from_env(cls) -> "AnalysisJobsConfig":
        """Create config from environment variables."""
        db_dsn = os.getenv("ANALYSIS_JOBS_DB_DSN")
        if not db_dsn:
            raise ValueError("ANALYSIS_JOBS_DB_DSN environment variable is required")

        return cls(
            db_dsn=db_dsn,
            debounce_ms=_int_from_env("ANALYSIS_JOBS_DEBOUNCE_MS", 3000),
            embedding_debounce_ms=_int_from_env(
                "ANALYSIS_JOBS_EMBEDDING_DEBOUNCE_MS", 15000
            ),
            lease_seconds=_int_from_env("ANALYSIS_JOBS_LEASE_SECONDS", 300),
            max_attempts=_int_from_env("ANALYSIS_JOBS_MAX_ATTEMPTS", 5),
            backoff_base_seconds=_int_from_env(
                "ANALYSIS_JOBS_BACKOFF_BASE_SECONDS", 30
            ),
            backoff_max_seconds=_int_from_env("ANALYSIS_JOBS_BACKOFF_MAX_SECONDS", 900),
            retention_days=_int_from_env("ANALYSIS_JOBS_RETENTION_DAYS", 14),
            scan_limit=_int_from_env("ANALYSIS_JOBS_SCAN_LIMIT", 50),
            batch_size=_int_from_env("ANALYSIS_JOBS_BATCH_SIZE", 10),
            enqueue_auth_token=os.getenv("ANALYSIS_JOBS_ENQUEUE_AUTH_TOKEN"),
        )

"""Exception types for the analysis jobs library."""


class AnalysisJobsError(Exception):
    """Base exception for all analysis jobs errors."""

    pass


class InvalidJobError(AnalysisJobsError):
    """Raised when an enqueue request is malformed (unknown kind, bad payload)."""

    pass


class JobNotFoundError(AnalysisJobsError):
    """Raised when a job is not found."""

    def __init__(self, job_id: str, message: str = None):
        self.job_id = job_id
        if message is None:
            message = f"Job {job_id} not found"
        super().__init__(message)


class DuplicateActiveJobError(AnalysisJobsError):
    """Raised by a store when another active job already owns a dedupe key."""

    def __init__(self, dedupe_key: str, message: str = None):
        self.dedupe_key = dedupe_key
        if message is None:
            message = f"An active job already exists for dedupe key {dedupe_key}"
        super().__init__(message)


class AdmissionConflictError(AnalysisJobsError):
    """Raised when admission keeps losing races for the same dedupe key."""

    def __init__(self, dedupe_key: str, attempts: int):
        self.dedupe_key = dedupe_key
        self.attempts = attempts
        super().__init__(
            f"Could not admit job for dedupe key {dedupe_key} after {attempts} attempts"
        )


class AuthTokenError(AnalysisJobsError):
    """Raised when authentication token is missing or invalid."""

    pass


class RemoteHttpError(AnalysisJobsError):
    """Raised when an HTTP request to a remote analysis jobs service fails."""

    def __init__(self, status_code: int, message: str, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")

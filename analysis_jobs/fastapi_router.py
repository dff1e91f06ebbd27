"""FastAPI router for the analysis jobs HTTP API."""

import logging
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from analysis_jobs.errors import AdmissionConflictError, InvalidJobError, JobNotFoundError
from analysis_jobs.service import AnalysisJobService


logger = logging.getLogger(__name__)


class EnqueueJobRequest(BaseModel):
    """Request model for enqueueing an analysis job."""

    project_id: str
    user_id: str
    kind: str
    payload: Dict[str, Any] = {}
    document_id: Optional[str] = None
    content_hash: Optional[str] = None
    dedupe_key: Optional[str] = None
    debounce_ms: Optional[int] = None


class EnqueueEmbeddingJobRequest(BaseModel):
    """Request model for enqueueing an embedding job."""

    project_id: str
    target_type: str
    target_id: str
    user_id: Optional[str] = None
    document_id: Optional[str] = None
    debounce_ms: Optional[int] = None


class EnqueueJobResponse(BaseModel):
    """Response model for enqueueing a job."""

    job_id: str
    status: str


class DeleteJobsResponse(BaseModel):
    """Response model for bulk deletes."""

    removed: int


class JobResponse(BaseModel):
    """Response model for job details."""

    id: str
    project_id: str
    user_id: str
    document_id: Optional[str] = None
    kind: str
    status: str
    attempts: int
    last_error: Optional[str] = None
    scheduled_for: Optional[str] = None
    content_hash: Optional[str] = None
    dedupe_key: Optional[str] = None
    processing_run_id: Optional[str] = None
    processing_started_at: Optional[str] = None
    lease_expires_at: Optional[str] = None
    payload: Dict[str, Any]
    result_summary: Optional[str] = None
    result_ref: Optional[Dict[str, Any]] = None
    dirty: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def create_jobs_router(
    job_service_factory: Callable[[], AnalysisJobService],
    auth_token: Optional[str] = None,
) -> APIRouter:
    """
    Create FastAPI router for the analysis jobs API.

    Args:
        job_service_factory: Callable that returns an AnalysisJobService instance
        auth_token: Optional auth token required by the write endpoints

    Returns:
        APIRouter instance
    """
    router = APIRouter()

    async def get_job_service() -> AnalysisJobService:
        """Dependency to get AnalysisJobService instance."""
        return job_service_factory()

    async def verify_auth_token(
        x_analysis_jobs_token: Optional[str] = Header(None, alias="X-Analysis-Jobs-Token")
    ) -> None:
        """Verify auth token if configured."""
        if auth_token:
            if not x_analysis_jobs_token or x_analysis_jobs_token != auth_token:
                raise HTTPException(
                    status_code=401, detail="Invalid or missing auth token"
                )

    @router.post("/jobs/enqueue", response_model=EnqueueJobResponse)
    async def enqueue_job(
        request: EnqueueJobRequest,
        job_service: AnalysisJobService = Depends(get_job_service),
        _: None = Depends(verify_auth_token),
    ):
        """Enqueue (or fold into) an analysis job."""
        try:
            result = await job_service.enqueue(
                project_id=request.project_id,
                user_id=request.user_id,
                kind=request.kind,
                payload=request.payload,
                document_id=request.document_id,
                content_hash=request.content_hash,
                dedupe_key=request.dedupe_key,
                debounce_ms=request.debounce_ms,
            )
            return EnqueueJobResponse(job_id=str(result.job_id), status=result.status.value)

        except InvalidJobError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except AdmissionConflictError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error enqueueing job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/jobs/embeddings/enqueue", response_model=EnqueueJobResponse)
    async def enqueue_embedding_job(
        request: EnqueueEmbeddingJobRequest,
        job_service: AnalysisJobService = Depends(get_job_service),
        _: None = Depends(verify_auth_token),
    ):
        """Enqueue a debounced embedding reindex for one target."""
        try:
            result = await job_service.enqueue_embedding_job(
                project_id=request.project_id,
                target_type=request.target_type,
                target_id=request.target_id,
                user_id=request.user_id,
                document_id=request.document_id,
                debounce_ms=request.debounce_ms,
            )
            return EnqueueJobResponse(job_id=str(result.job_id), status=result.status.value)

        except InvalidJobError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except AdmissionConflictError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error enqueueing embedding job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs/{job_id}", response_model=JobResponse)
    async def get_job(
        job_id: str,
        job_service: AnalysisJobService = Depends(get_job_service),
    ):
        """Get job details by ID."""
        try:
            job_uuid = UUID(job_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail="Invalid job ID format") from e

        try:
            job = await job_service.get_job(job_uuid)
            return JobResponse(**job.to_dict())
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error getting job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.delete(
        "/jobs/embeddings/{project_id}/{target_type}/{target_id}",
        response_model=DeleteJobsResponse,
    )
    async def delete_embedding_jobs_for_target(
        project_id: str,
        target_type: str,
        target_id: str,
        job_service: AnalysisJobService = Depends(get_job_service),
        _: None = Depends(verify_auth_token),
    ):
        """Hard-delete the embedding jobs of one target."""
        try:
            removed = await job_service.delete_embedding_jobs_for_target(
                project_id, target_type, target_id
            )
            return DeleteJobsResponse(removed=removed)
        except InvalidJobError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error deleting embedding jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.delete("/jobs/embeddings/{project_id}", response_model=DeleteJobsResponse)
    async def delete_embedding_jobs_for_project(
        project_id: str,
        job_service: AnalysisJobService = Depends(get_job_service),
        _: None = Depends(verify_auth_token),
    ):
        """Hard-delete every embedding job in a project."""
        try:
            removed = await job_service.delete_embedding_jobs_for_project(project_id)
            return DeleteJobsResponse(removed=removed)
        except Exception as e:
            logger.exception("Error deleting project embedding jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    return router

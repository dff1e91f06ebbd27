"""HTTP client for a remote analysis jobs service."""

from typing import Any, Dict, Optional
from uuid import UUID

import aiohttp

from analysis_jobs.errors import RemoteHttpError
from analysis_jobs.models import EnqueueResult


class AnalysisJobsHttpClient:
    """HTTP client for calling the analysis jobs service."""

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 5.0,
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Base URL of the analysis jobs service (e.g., "https://analysis-jobs.internal")
            auth_token: Optional auth token for X-Analysis-Jobs-Token header
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self, json_body: bool = False) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"} if json_body else {}
        if self.auth_token:
            headers["X-Analysis-Jobs-Token"] = self.auth_token
        return headers

    async def enqueue(
        self,
        *,
        project_id: str,
        user_id: str,
        kind: str,
        payload: Optional[Dict[str, Any]] = None,
        document_id: Optional[str] = None,
        content_hash: Optional[str] = None,
        dedupe_key: Optional[str] = None,
        debounce_ms: Optional[int] = None,
    ) -> EnqueueResult:
        """
        Enqueue an analysis job via HTTP API.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        request_body: Dict[str, Any] = {
            "project_id": project_id,
            "user_id": user_id,
            "kind": kind,
            "payload": payload or {},
        }
        if document_id:
            request_body["document_id"] = document_id
        if content_hash:
            request_body["content_hash"] = content_hash
        if dedupe_key:
            request_body["dedupe_key"] = dedupe_key
        if debounce_ms is not None:
            request_body["debounce_ms"] = debounce_ms

        data = await self._request("post", "/jobs/enqueue", "enqueue job", json=request_body)
        return EnqueueResult(job_id=UUID(data["job_id"]), status=data["status"])

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
        """
        Enqueue an embedding job via HTTP API.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        request_body: Dict[str, Any] = {
            "project_id": project_id,
            "target_type": target_type,
            "target_id": target_id,
        }
        if user_id:
            request_body["user_id"] = user_id
        if document_id:
            request_body["document_id"] = document_id
        if debounce_ms is not None:
            request_body["debounce_ms"] = debounce_ms

        data = await self._request(
            "post", "/jobs/embeddings/enqueue", "enqueue embedding job", json=request_body
        )
        return EnqueueResult(job_id=UUID(data["job_id"]), status=data["status"])

    async def get_job(self, job_id: UUID) -> Dict[str, Any]:
        """
        Get job details by ID.

        Raises:
            RemoteHttpError: If the HTTP request fails (404 when the job is missing)
        """
        return await self._request("get", f"/jobs/{job_id}", "get job")

    async def delete_embedding_jobs_for_target(
        self, project_id: str, target_type: str, target_id: str
    ) -> int:
        """Delete embedding jobs for one target; returns the number removed."""
        data = await self._request(
            "delete",
            f"/jobs/embeddings/{project_id}/{target_type}/{target_id}",
            "delete embedding jobs",
        )
        return data["removed"]

    async def delete_embedding_jobs_for_project(self, project_id: str) -> int:
        """Delete every embedding job in a project; returns the number removed."""
        data = await self._request(
            "delete", f"/jobs/embeddings/{project_id}", "delete embedding jobs"
        )
        return data["removed"]

    async def _request(
        self, method: str, path: str, action: str, json: Optional[Dict[str, Any]] = None
    ) -> Any:
        url = f"{self.base_url}{path}"
        kwargs: Dict[str, Any] = {"headers": self._headers(json_body=json is not None)}
        if json is not None:
            kwargs["json"] = json

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with getattr(session, method)(url, **kwargs) as resp:
                    response_body = await resp.text()

                    if resp.status == 404:
                        raise RemoteHttpError(
                            status_code=404,
                            message="Job not found",
                            response_body=response_body,
                        )

                    if resp.status >= 400:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"Failed to {action}: {response_body}",
                            response_body=response_body,
                        )

                    return await resp.json()

            except aiohttp.ClientError as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e)}",
                ) from e

"""
Remote queue API client: pending jobs in, job results out.
"""

from typing import Any, Dict, List, Optional
import httpx
from pydantic import ValidationError
from .models import Job, JobResult
from .config import settings
from .logging import get_logger


class QueueAPIError(Exception):
    """Custom exception for queue API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ResultSubmissionFailed(QueueAPIError):
    """Raised when a job result could not be delivered to the queue API."""
    pass


class QueueClient:
    """Client for the remote queue API."""

    PENDING_ENDPOINT = "/api/queue/pending"
    RESULT_ENDPOINT = "/api/queue/result"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_secret: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.remote_api_url).rstrip("/")
        self.api_secret = api_secret if api_secret is not None else settings.queue_api_secret
        self.logger = get_logger("queue_client")
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(settings.queue_read_timeout, connect=settings.queue_connect_timeout),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_secret:
            headers["Authorization"] = f"Bearer {self.api_secret}"
        return headers

    def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """Make a single HTTP request, raising QueueAPIError on failure."""
        url = f"{self.base_url}{endpoint}"

        try:
            response = self.client.request(
                method=method,
                url=url,
                json=json_data,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise QueueAPIError(f"{method} {endpoint} failed: {e}") from e

        if response.status_code != 200:
            body = response.text.strip()
            raise QueueAPIError(
                f"{method} {endpoint} failed with code {response.status_code}"
                + (f": {body}" if body else ""),
                status_code=response.status_code,
                body=body,
            )

        return response

    def get_pending_jobs(self) -> List[Job]:
        """Fetch every pending job from the queue.

        The endpoint returns ``{"requests": [...]}``; a missing ``requests``
        key means the queue is empty. Records that cannot be parsed are
        skipped with a warning.

        Raises:
            QueueAPIError: if the request fails or the body is not JSON.
        """
        response = self._make_request("GET", self.PENDING_ENDPOINT)

        try:
            response_data = response.json()
        except ValueError as e:
            raise QueueAPIError(f"Pending jobs response is not valid JSON: {e}", body=response.text) from e

        if not isinstance(response_data, dict):
            raise QueueAPIError(f"Unexpected pending jobs response structure: {type(response_data).__name__}")

        requests = response_data.get("requests") or []
        if not isinstance(requests, list):
            raise QueueAPIError(f"Unexpected 'requests' field type: {type(requests).__name__}")

        jobs = []
        for job_data in requests:
            if not isinstance(job_data, dict):
                self.logger.warning(f"⚠️  Skipping non-object job record: {type(job_data).__name__}")
                continue
            try:
                jobs.append(Job(**job_data))
            except ValidationError as e:
                self.logger.warning(f"⚠️  Failed to parse job {job_data.get('id', '<no id>')}: {e}")

        self.logger.debug(f"📊 Parsed {len(jobs)} pending job(s)")
        return jobs

    def submit_result(self, result: JobResult) -> None:
        """Post a job result back to the queue. No retries are attempted.

        Raises:
            ResultSubmissionFailed: if the result could not be delivered.
        """
        body = result.to_request().model_dump(exclude_none=True)
        try:
            self._make_request("POST", self.RESULT_ENDPOINT, json_data=body)
        except QueueAPIError as e:
            raise ResultSubmissionFailed(
                f"Failed to submit result for job {result.job_id}: {e}",
                status_code=e.status_code,
                body=e.body,
            ) from e

    def test_connection(self) -> bool:
        """Test the connection to the queue API."""
        try:
            self._make_request("GET", self.PENDING_ENDPOINT)
            self.logger.info("✅ Queue API connection successful")
            return True
        except QueueAPIError as e:
            self.logger.error(f"❌ Queue API connection failed: {e}")
            return False

    def close(self):
        """Close the HTTP client."""
        if self._owns_client:
            self.client.close()

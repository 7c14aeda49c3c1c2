"""
Data models for the Player Tag Bridge.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, field_validator


class Job(BaseModel):
    """Pending tag-extraction request from the remote queue.

    Only ``id`` is required. Everything else is read leniently so that a
    record with odd metadata still gets processed and answered.
    """
    id: str
    messageId: Optional[str] = None
    channelId: Optional[str] = None
    guildId: Optional[str] = None
    userId: Optional[str] = None
    userTag: Optional[str] = None
    timestamp: Optional[Any] = None
    retryCount: int = 0
    imageUrls: List[str] = []

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        """Accept numeric ids; reject missing or blank ones."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.strip():
            raise ValueError("job id must be a non-empty string")
        return v

    @field_validator("messageId", "channelId", "guildId", "userId", "userTag", mode="before")
    @classmethod
    def coerce_text(cls, v):
        """Stringify scalar values, drop anything else."""
        if isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return None

    @field_validator("retryCount", mode="before")
    @classmethod
    def coerce_retry_count(cls, v):
        """Fall back to 0 for missing, negative or unreadable counts."""
        try:
            count = int(v)
        except (TypeError, ValueError, OverflowError):
            return 0
        return max(count, 0)

    @field_validator("imageUrls", mode="before")
    @classmethod
    def coerce_image_urls(cls, v):
        """Keep the non-empty string URLs; anything else means no images."""
        if not isinstance(v, list):
            return []
        return [url for url in v if isinstance(url, str) and url.strip()]


class TagExtraction(BaseModel):
    """Outcome of validating raw model output."""
    tag: Optional[str] = None
    reason: str
    candidate: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.tag is not None


class JobResult(BaseModel):
    """Result of processing a single job."""
    job_id: str
    success: bool
    extracted_tag: Optional[str] = None
    error_message: Optional[str] = None
    processing_time: float = 0.0
    submitted: bool = False

    def to_request(self) -> "SubmitResultRequest":
        """Build the wire body for the result sink."""
        return SubmitResultRequest(
            requestId=self.job_id,
            success=self.success,
            playerTag=self.extracted_tag if self.success else None,
            errorMessage=None if self.success else self.error_message,
        )


class SubmitResultRequest(BaseModel):
    """Request for submitting a job result."""
    requestId: str
    success: bool
    playerTag: Optional[str] = None
    errorMessage: Optional[str] = None


class DrainSummary(BaseModel):
    """Result of draining the pending queue once."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    processing_time: float = 0.0
    results: List[JobResult] = []

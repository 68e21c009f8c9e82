from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobResult(BaseModel):
    video_path: str
    size_bytes: int
    # Path of the video relative to the temp namespace, e.g. /temp/<name>.mp4
    video_url: str | None = None


class Job(BaseModel):
    id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    message: str | None = None
    result: JobResult | None = None
    error: str | None = None
    error_code: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class JobPatch(BaseModel):
    """Partial update merged into a stored Job. Unset fields are left alone."""

    status: JobStatus | None = None
    progress: int | None = None
    message: str | None = None
    result: JobResult | None = None
    error: str | None = None
    error_code: str | None = None

"""Job registry: the state machine in front of a JobStore.

Rules enforced on every update:
- progress never goes down and stays within [0, 100]
- queued -> processing -> completed, or any non-terminal state -> failed
- once completed/failed the status is frozen (other fields still merge)
- completed always carries progress 100
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any

from reelsmith.exceptions import JobNotFoundError
from reelsmith.schemas.job import Job, JobPatch, JobStatus
from reelsmith.services.job_store import JobStore

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class JobRegistry:
    def __init__(self, store: JobStore) -> None:
        self.store = store
        # Serializes read-merge-write so concurrent patches never interleave
        self._lock = threading.Lock()

    def create(self, job_id: str) -> Job:
        job = Job(id=job_id, status=JobStatus.QUEUED, progress=0)
        created = self.store.create(job)
        logger.info(f"[JOBS] Created job {job_id}")
        return created

    def get(self, job_id: str) -> Job | None:
        return self.store.get(job_id)

    def require(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def update(self, job_id: str, patch: JobPatch | dict[str, Any]) -> Job | None:
        """Merge a patch into the stored job and return the new snapshot.

        Returns None when the job id is unknown.
        """
        if isinstance(patch, dict):
            patch = JobPatch.model_validate(patch)
        # Attribute values keep nested models typed; model_dump would flatten them
        changes = {name: getattr(patch, name) for name in patch.model_fields_set}

        with self._lock:
            job = self.store.get(job_id)
            if job is None:
                logger.warning(f"[JOBS] Update for unknown job {job_id} ignored")
                return None

            new_status = changes.pop("status", None)
            if new_status is not None and new_status != job.status:
                if new_status in _ALLOWED_TRANSITIONS[job.status]:
                    job.status = new_status
                elif job.status.is_terminal:
                    logger.warning(
                        f"[JOBS] Job {job_id} is already {job.status.value}, ignoring {new_status.value}"
                    )
                else:
                    logger.warning(
                        f"[JOBS] Ignoring illegal transition {job.status.value} -> "
                        f"{new_status.value} for job {job_id}"
                    )

            new_progress = changes.pop("progress", None)
            if new_progress is not None:
                clamped = max(0, min(100, int(new_progress)))
                job.progress = max(job.progress, clamped)

            for field, value in changes.items():
                setattr(job, field, value)

            if job.status == JobStatus.COMPLETED:
                job.progress = 100

            job.updated_at = datetime.now(timezone.utc)
            return self.store.save(job)

    def delete(self, job_id: str) -> bool:
        return self.store.delete(job_id)

    def list(self) -> list[Job]:
        return self.store.list()

    def clear(self) -> int:
        count = self.store.clear()
        logger.info(f"[JOBS] Cleared {count} jobs")
        return count

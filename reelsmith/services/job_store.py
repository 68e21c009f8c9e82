"""Job storage backends.

The registry and the pipeline only talk to the abstract JobStore; which
concrete backend is used is a deployment choice (see create_job_store).
"""

import logging
import threading
from abc import ABC, abstractmethod

from sqlalchemy import delete, select

from reelsmith.config import Settings
from reelsmith.models.database import create_db_engine, create_session_maker, init_db
from reelsmith.models.job import JobRecord
from reelsmith.schemas.job import Job, JobResult, JobStatus

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Persistence for Job snapshots. Implementations return copies."""

    @abstractmethod
    def create(self, job: Job) -> Job: ...

    @abstractmethod
    def get(self, job_id: str) -> Job | None: ...

    @abstractmethod
    def save(self, job: Job) -> Job: ...

    @abstractmethod
    def delete(self, job_id: str) -> bool: ...

    @abstractmethod
    def list(self) -> list[Job]: ...

    @abstractmethod
    def clear(self) -> int: ...


class InMemoryJobStore(JobStore):
    """Thread-safe dict-backed store. Jobs vanish with the process."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job: Job) -> Job:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
            return job.model_copy(deep=True)

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def save(self, job: Job) -> Job:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
            return job.model_copy(deep=True)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def list(self) -> list[Job]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def clear(self) -> int:
        with self._lock:
            count = len(self._jobs)
            self._jobs.clear()
            return count


def _record_to_job(record: JobRecord) -> Job:
    result = None
    if record.video_path is not None:
        result = JobResult(
            video_path=record.video_path,
            size_bytes=record.size_bytes or 0,
            video_url=record.video_url,
        )
    return Job(
        id=record.id,
        status=JobStatus(record.status),
        progress=record.progress,
        message=record.message,
        result=result,
        error=record.error,
        error_code=record.error_code,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _apply_job(record: JobRecord, job: Job) -> None:
    record.status = job.status.value
    record.progress = job.progress
    record.message = job.message
    record.error = job.error
    record.error_code = job.error_code
    record.created_at = job.created_at
    record.updated_at = job.updated_at
    if job.result is not None:
        record.video_path = job.result.video_path
        record.video_url = job.result.video_url
        record.size_bytes = job.result.size_bytes


class SqlJobStore(JobStore):
    """SQLAlchemy-backed store; survives restarts when pointed at a file or server."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.engine = create_db_engine(database_url, echo=echo)
        self._session_maker = create_session_maker(self.engine)
        init_db(self.engine)

    def create(self, job: Job) -> Job:
        with self._session_maker() as session, session.begin():
            record = JobRecord(id=job.id)
            _apply_job(record, job)
            session.add(record)
        return job.model_copy(deep=True)

    def get(self, job_id: str) -> Job | None:
        with self._session_maker() as session:
            record = session.get(JobRecord, job_id)
            return _record_to_job(record) if record else None

    def save(self, job: Job) -> Job:
        with self._session_maker() as session, session.begin():
            record = session.get(JobRecord, job.id)
            if record is None:
                record = JobRecord(id=job.id)
                session.add(record)
            _apply_job(record, job)
        return job.model_copy(deep=True)

    def delete(self, job_id: str) -> bool:
        with self._session_maker() as session, session.begin():
            result = session.execute(delete(JobRecord).where(JobRecord.id == job_id))
            return result.rowcount > 0

    def list(self) -> list[Job]:
        with self._session_maker() as session:
            records = session.scalars(select(JobRecord).order_by(JobRecord.created_at)).all()
            return [_record_to_job(r) for r in records]

    def clear(self) -> int:
        with self._session_maker() as session, session.begin():
            result = session.execute(delete(JobRecord))
            return result.rowcount


def create_job_store(settings: Settings) -> JobStore:
    if settings.job_store_backend == "sql":
        logger.info(f"[JOBS] Using SQL job store at {settings.database_url}")
        return SqlJobStore(settings.database_url, echo=settings.database_echo)
    logger.info("[JOBS] Using in-memory job store")
    return InMemoryJobStore()

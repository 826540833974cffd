"""Export job records and the job store.

WHY: Burn-in exports run for seconds to many minutes, so the API returns
a job ID immediately and clients poll for status. The job record is the
only shared mutable state in the system: the pipeline task writes it,
HTTP handlers and the reaper read and remove it. Keeping it behind a
store interface lets a durable backend replace the in-memory one
without touching the pipeline.

HOW: Four components:
  JobStatus        — enum of valid job states
  ExportJob        — dataclass holding one job's state
  JobStore         — abstract store interface
  InMemoryJobStore — dict + threading.Lock implementation

  apply_update() holds the transition rules, so every store enforces
  them the same way.

RULES:
- Job IDs are "job_<uuid4 hex>" and are never reused, even after the
  job has been deleted
- Progress is clamped to 0–100 and never decreases
- COMPLETED and FAILED are terminal: later updates are ignored
- COMPLETED forces progress to 100; terminal states set completed_at
- Stores hand out copies; callers never hold the live record
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

DEFAULT_MAX_JOBS = 200


class JobStatus(str, enum.Enum):
    """Valid states for an export job.

    HOW: Inherits from str so values serialize cleanly to JSON.

    RULES:
    - pending: job created, pipeline not yet started
    - processing: probing, compiling, or transcoding
    - completed: output file ready for download (terminal)
    - failed: unrecoverable error at any stage (terminal)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class ExportJob:
    """State of a single burn-in export.

    RULES:
    - job_id: unique, immutable after creation
    - video_id: the input media reference the job was created for
    - progress: integer percent 0–100
    - output_path / public_url: set only on COMPLETED
    - subtitle_path: compiled ASS document, once written
    - error: set only on FAILED
    - created_at / updated_at / completed_at: epoch seconds
    """

    job_id: str
    video_id: str
    status: JobStatus
    progress: int
    created_at: float
    updated_at: float
    completed_at: Optional[float] = None
    output_path: Optional[Path] = None
    public_url: Optional[str] = None
    subtitle_path: Optional[Path] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "video_id": self.video_id,
            "status": self.status.value,
            "progress": self.progress,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
            "output_path": str(self.output_path) if self.output_path else None,
            "public_url": self.public_url,
            "subtitle_path": str(self.subtitle_path) if self.subtitle_path else None,
            "error": self.error,
        }


class JobLimitError(RuntimeError):
    """Raised when the store already holds its maximum number of jobs."""


def new_job_id() -> str:
    return "job_{}".format(uuid.uuid4().hex)


def apply_update(
    job: ExportJob,
    now: float,
    status: Optional[JobStatus] = None,
    progress: Optional[int] = None,
    output_path: Optional[Path] = None,
    public_url: Optional[str] = None,
    subtitle_path: Optional[Path] = None,
    error: Optional[str] = None,
) -> bool:
    """Apply one update to job in place, enforcing the transition rules.

    Returns:
        True if the update was applied, False if it was discarded because
        the job is already terminal.
    """
    if job.status.is_terminal:
        return False

    if status is not None and not (status == JobStatus.PENDING and job.status != JobStatus.PENDING):
        job.status = status
    if progress is not None:
        job.progress = max(job.progress, min(100, max(0, int(progress))))
    if output_path is not None:
        job.output_path = output_path
    if public_url is not None:
        job.public_url = public_url
    if subtitle_path is not None:
        job.subtitle_path = subtitle_path
    if error is not None:
        job.error = error

    if job.status == JobStatus.COMPLETED:
        job.progress = 100
    if job.status.is_terminal:
        job.completed_at = now
    job.updated_at = now
    return True


class JobStore(ABC):
    """Abstract job store.

    RULES:
    - create() allocates a fresh, never-before-issued job ID
    - get() returns None for unknown IDs (no exceptions)
    - update() is atomic per job and returns the post-update snapshot,
      or None if the job does not exist
    - cleanup_expired() removes terminal jobs whose completed_at is older
      than max_age_seconds and returns the removed records
    """

    @abstractmethod
    def create(self, video_id: str) -> ExportJob:
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[ExportJob]:
        ...

    @abstractmethod
    def list_jobs(self) -> List[ExportJob]:
        ...

    @abstractmethod
    def update(self, job_id: str, **changes: Any) -> Optional[ExportJob]:
        ...

    @abstractmethod
    def delete(self, job_id: str) -> Optional[ExportJob]:
        ...

    @abstractmethod
    def cleanup_expired(self, max_age_seconds: float) -> List[ExportJob]:
        ...


class InMemoryJobStore(JobStore):
    """Thread-safe in-memory job store.

    WHY: Jobs are created from request handlers and updated from pipeline
    tasks; the reaper and listing endpoints read across jobs. A single
    lock around a dict keeps every mutation atomic and every listing a
    consistent snapshot.

    HOW: Records live in a dict keyed by job ID. Every issued ID is also
    remembered in a set so an ID is never handed out twice, even after
    its job has been reaped.

    RULES:
    - All public methods acquire self._lock
    - Returned ExportJob objects are copies
    - create() raises JobLimitError when max_jobs records are held
    """

    def __init__(self, max_jobs: int = DEFAULT_MAX_JOBS) -> None:
        self._jobs: Dict[str, ExportJob] = {}
        self._issued: Set[str] = set()
        self._lock = threading.Lock()
        self.max_jobs = max_jobs

    def create(self, video_id: str) -> ExportJob:
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise JobLimitError(
                    "Maximum number of export jobs ({}) reached".format(self.max_jobs)
                )

            job_id = new_job_id()
            while job_id in self._issued:
                job_id = new_job_id()
            self._issued.add(job_id)

            now = time.time()
            job = ExportJob(
                job_id=job_id,
                video_id=video_id,
                status=JobStatus.PENDING,
                progress=0,
                created_at=now,
                updated_at=now,
            )
            self._jobs[job_id] = job
            snapshot = dataclasses.replace(job)

        logger.info("Created export job %s for video %s", job_id, video_id)
        return snapshot

    def get(self, job_id: str) -> Optional[ExportJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return dataclasses.replace(job) if job is not None else None

    def list_jobs(self) -> List[ExportJob]:
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda j: j.created_at)
            return [dataclasses.replace(j) for j in jobs]

    def update(self, job_id: str, **changes: Any) -> Optional[ExportJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if not apply_update(job, time.time(), **changes):
                logger.debug("Ignored update for finished job %s: %s", job_id, changes)
            return dataclasses.replace(job)

    def delete(self, job_id: str) -> Optional[ExportJob]:
        with self._lock:
            job = self._jobs.pop(job_id, None)
            return dataclasses.replace(job) if job is not None else None

    def cleanup_expired(self, max_age_seconds: float) -> List[ExportJob]:
        now = time.time()
        expired: List[ExportJob] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if not job.status.is_terminal or job.completed_at is None:
                    continue
                if now - job.completed_at > max_age_seconds:
                    expired.append(dataclasses.replace(self._jobs.pop(job_id)))

        return expired

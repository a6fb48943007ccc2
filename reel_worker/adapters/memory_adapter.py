"""
In-process adapters.

InMemoryJobStore keeps job records in a dict guarded by a lock and is
used for single-process deployments and tests. LocalObjectStore writes
published assets below a directory on disk.
"""

import copy
import logging
import os
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Optional, Dict, Any, List, Set

from .base import JobStore, ObjectStore
from ..fsm import TERMINAL_STATES
from ..models import VideoJob, JobStatus, utcnow

logger = logging.getLogger("reel_worker")

_MUTABLE_FIELDS = {
    'status', 'progress', 'error_message', 'generated_script', 'audio_url',
    'background_url', 'final_video_url', 'metadata', 'completed_at'
}


class InMemoryJobStore(JobStore):
    """Dict-backed implementation of the job store"""

    def __init__(self):
        self._jobs: Dict[str, VideoJob] = {}
        self._lock = Lock()

    def create(self, job: VideoJob) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = copy.deepcopy(job)
        logger.debug(f"Created job {job.id} for owner {job.owner_id}")

    def get(self, job_id: str) -> Optional[VideoJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def list_by_owner(self, owner_id: str, limit: int = 20) -> List[VideoJob]:
        with self._lock:
            jobs = [job for job in self._jobs.values() if job.owner_id == owner_id]
            jobs.sort(key=lambda job: job.created_at, reverse=True)
            return [copy.deepcopy(job) for job in jobs[:limit]]

    def update(self, job_id: str, changes: Dict[str, Any],
               allowed_from: Optional[Set[JobStatus]] = None) -> Optional[VideoJob]:
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if allowed_from is not None and job.status not in allowed_from:
                return None

            for name, value in changes.items():
                if name == 'metadata':
                    job.metadata.update(value or {})
                elif name == 'progress':
                    job.progress = max(job.progress, int(value))
                else:
                    setattr(job, name, value)
            job.updated_at = utcnow()
            return copy.deepcopy(job)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def delete_terminal_before(self, cutoff: datetime) -> int:
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.status in TERMINAL_STATES and job.created_at < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        return len(expired)

    def count_by_status(self, owner_id: str, since: Optional[datetime] = None) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with self._lock:
            for job in self._jobs.values():
                if job.owner_id != owner_id:
                    continue
                if since is not None and job.created_at < since:
                    continue
                counts[job.status.value] = counts.get(job.status.value, 0) + 1
        return counts

    def list_due(self, now: datetime, limit: int = 50) -> List[VideoJob]:
        with self._lock:
            due = [
                job for job in self._jobs.values()
                if job.status == JobStatus.PENDING
                and job.params.scheduled_for is not None
                and job.params.scheduled_for <= now
            ]
            due.sort(key=lambda job: job.params.scheduled_for)
            return [copy.deepcopy(job) for job in due[:limit]]


class LocalObjectStore(ObjectStore):
    """Filesystem implementation of the object store"""

    def __init__(self, root_dir: str, base_url: Optional[str] = None):
        self.root_dir = Path(root_dir)
        self.base_url = base_url.rstrip("/") if base_url else None

    def connect(self):
        self.root_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local object store ready at {self.root_dir}")

    def put(self, data: bytes, key: str, content_type: str) -> str:
        key = key.lstrip("/")
        target = (self.root_dir / key).resolve()
        if self.root_dir.resolve() not in target.parents:
            raise ValueError(f"Object key escapes store root: {key}")

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as fh:
            fh.write(data)

        logger.info(f"Stored {len(data)} bytes ({content_type}) at {target}")

        if self.base_url:
            return f"{self.base_url}/{key}"
        return target.as_uri()

    def path_for(self, key: str) -> str:
        return os.path.join(str(self.root_dir), key.lstrip("/"))

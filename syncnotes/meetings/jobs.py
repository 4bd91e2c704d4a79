"""In-memory registry of background analysis jobs (queued -> running -> done | failed)."""
import time
import uuid
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class AnalysisJob:
    """A single background analysis run for one meeting.
    Why available: Transcription can take minutes with retries, so /meetings/{id}/analyze_async returns at once and clients poll /jobs/{job_id}."""

    job_id: str
    meeting_id: str
    status: str  # queued | running | done | failed
    created_at: float
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.status in ("done", "failed")


class JobRegistry:
    """Per-process job table. Finished jobs older than retention_seconds are dropped when new jobs are queued."""

    def __init__(self, retention_seconds: float = 3600.0):
        self.retention_seconds = retention_seconds
        self._jobs: Dict[str, AnalysisJob] = {}

    def queue(self, meeting_id: str) -> AnalysisJob:
        self.prune()
        job = AnalysisJob(job_id=uuid.uuid4().hex, meeting_id=meeting_id, status="queued", created_at=time.time())
        self._jobs[job.job_id] = job
        return job

    def get(self, job_id: str) -> Optional[AnalysisJob]:
        return self._jobs.get(job_id)

    def prune(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        stale = [
            job_id for job_id, job in self._jobs.items()
            if job.finished and job.finished_at is not None and now - job.finished_at > self.retention_seconds
        ]
        for job_id in stale:
            del self._jobs[job_id]
        return len(stale)

    def clear(self) -> None:
        self._jobs.clear()

    def __len__(self) -> int:
        return len(self._jobs)


JOBS = JobRegistry()

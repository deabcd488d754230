"""Pydantic models for re-embed job tracking."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field


class JobState(str, Enum):
    """Job state enum."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})


class ReEmbedJob(BaseModel):
    """A re-embed job record. Never mutated in place; the table swaps in copies."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    project_id: str
    config_version: int
    embedding_model: str
    state: JobState = JobState.PENDING
    total: int = 0
    processed: int = 0
    failed_count: int = 0
    cursor: str | None = Field(None, description="Id of the last chunk fully processed")
    cause: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0 if self.state is JobState.COMPLETED else 0.0
        return round(min(self.processed, self.total) / self.total * 100, 2)


class JobProgress(BaseModel):
    """Processed/total documents of a job."""

    processed: int
    total: int
    percent: float


class JobStatus(BaseModel):
    """Pollable view of a job."""

    job_id: UUID
    project_id: str
    state: JobState
    progress: JobProgress
    failed_count: int
    cause: str | None = None

    @classmethod
    def from_job(cls, job: ReEmbedJob) -> "JobStatus":
        return cls(
            job_id=job.id,
            project_id=job.project_id,
            state=job.state,
            progress=JobProgress(processed=job.processed, total=job.total, percent=job.percent),
            failed_count=job.failed_count,
            cause=job.cause,
        )

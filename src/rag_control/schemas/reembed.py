"""Re-embed job schemas."""

from pydantic import BaseModel, Field

from rag_control.reembed.models import JobStatus, ReEmbedJob


class ReEmbedTriggerResponse(BaseModel):
    """Response model for a newly triggered re-embed job."""

    job: ReEmbedJob
    poll_interval_seconds: float = Field(..., description="Suggested status polling interval")


class ReEmbedJobListResponse(BaseModel):
    """Job history of a project, newest first."""

    project_id: str
    jobs: list[ReEmbedJob]


__all__ = ["JobStatus", "ReEmbedJob", "ReEmbedJobListResponse", "ReEmbedTriggerResponse"]

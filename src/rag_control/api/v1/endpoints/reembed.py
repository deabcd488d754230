"""Re-embed job endpoints. Clients trigger, then poll status until a terminal state."""

from uuid import UUID

from fastapi import APIRouter, status

from rag_control.core.exceptions import NotFoundException
from rag_control.dependencies import OrchestratorDep, SettingsDep
from rag_control.reembed.models import JobStatus
from rag_control.schemas.reembed import ReEmbedJob, ReEmbedJobListResponse, ReEmbedTriggerResponse

router = APIRouter(tags=["re-embed"])


@router.post(
    "/projects/{project_id}/re-embed",
    response_model=ReEmbedTriggerResponse,
    summary="Trigger Re-embed",
    description="Starts a re-embed job bound to the current config version; 409 if one is active",
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_reembed(
    project_id: str,
    orchestrator: OrchestratorDep,
    settings: SettingsDep,
) -> ReEmbedTriggerResponse:
    job = await orchestrator.trigger(project_id)
    return ReEmbedTriggerResponse(
        job=job, poll_interval_seconds=settings.reembed_poll_interval
    )


@router.get(
    "/projects/{project_id}/re-embed/status",
    response_model=JobStatus,
    summary="Latest Re-embed Status",
)
async def get_project_reembed_status(project_id: str, orchestrator: OrchestratorDep) -> JobStatus:
    job = orchestrator.latest(project_id)
    if job is None:
        raise NotFoundException(f"No re-embed job found for project {project_id}")
    return JobStatus.from_job(job)


@router.get(
    "/projects/{project_id}/re-embed/jobs",
    response_model=ReEmbedJobListResponse,
    summary="Re-embed Job History",
)
async def list_project_reembed_jobs(
    project_id: str, orchestrator: OrchestratorDep
) -> ReEmbedJobListResponse:
    return ReEmbedJobListResponse(project_id=project_id, jobs=orchestrator.history(project_id))


@router.get(
    "/re-embed/jobs/{job_id}",
    response_model=JobStatus,
    summary="Re-embed Job Status",
)
async def get_reembed_status(job_id: UUID, orchestrator: OrchestratorDep) -> JobStatus:
    return orchestrator.get_status(job_id)


@router.get(
    "/re-embed/jobs/{job_id}/detail",
    response_model=ReEmbedJob,
    summary="Re-embed Job Record",
)
async def get_reembed_job(job_id: UUID, orchestrator: OrchestratorDep) -> ReEmbedJob:
    return orchestrator.get_job(job_id)


@router.post(
    "/re-embed/jobs/{job_id}/cancel",
    response_model=JobStatus,
    summary="Cancel Re-embed Job",
    description="Cancellation takes effect at the worker's next checkpoint",
    status_code=status.HTTP_202_ACCEPTED,
)
async def cancel_reembed(job_id: UUID, orchestrator: OrchestratorDep) -> JobStatus:
    return JobStatus.from_job(orchestrator.cancel(job_id))

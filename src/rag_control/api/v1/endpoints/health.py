"""Health check endpoint."""

from fastapi import APIRouter

from rag_control.dependencies import JobTableDep, SettingsDep
from rag_control.schemas.health import HealthResponse

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Returns the health status of the control plane and its re-embed load",
)
async def health_check(settings: SettingsDep, jobs: JobTableDep) -> HealthResponse:
    """Check API health and return status.

    Args:
        settings: Injected application settings.
        jobs: Injected re-embed job table.

    Returns:
        HealthResponse: Health status information.
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        active_reembed_jobs=len(jobs.non_terminal()),
    )

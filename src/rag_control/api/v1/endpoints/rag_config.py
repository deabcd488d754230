"""Per-project RAG configuration endpoints."""

from fastapi import APIRouter, Query

from rag_control.core.logging import get_logger
from rag_control.dependencies import ConfigStoreDep, OrchestratorDep
from rag_control.rag.models import EMBEDDING_MODELS, RagConfig, RagConfigUpdate
from rag_control.schemas.rag_config import (
    EmbeddingModelInfo,
    RagConfigUpdateResponse,
    ValidationResponse,
)

logger = get_logger(__name__)

router = APIRouter(tags=["rag-config"])


@router.get(
    "/embedding-models",
    response_model=list[EmbeddingModelInfo],
    summary="List Embedding Models",
)
async def list_embedding_models() -> list[EmbeddingModelInfo]:
    return [EmbeddingModelInfo.from_spec(spec) for spec in EMBEDDING_MODELS.values()]


@router.get(
    "/projects/{project_id}/rag-config",
    response_model=RagConfig,
    summary="Get RAG Config",
    description="Returns the project's configuration, creating it from defaults on first access",
)
async def get_rag_config(project_id: str, config_store: ConfigStoreDep) -> RagConfig:
    return config_store.get_config(project_id)


@router.get(
    "/projects/{project_id}/rag-config/defaults",
    response_model=RagConfig,
    summary="Get RAG Config Defaults",
)
async def get_rag_config_defaults(project_id: str, config_store: ConfigStoreDep) -> RagConfig:
    return config_store.get_defaults(project_id)


@router.post(
    "/projects/{project_id}/rag-config/validate",
    response_model=ValidationResponse,
    summary="Validate RAG Config",
    description="Dry-run validation of a proposed change; nothing is stored",
)
async def validate_rag_config(
    project_id: str,
    proposed: RagConfigUpdate,
    config_store: ConfigStoreDep,
) -> ValidationResponse:
    return ValidationResponse.from_report(config_store.validate_config(project_id, proposed))


@router.put(
    "/projects/{project_id}/rag-config",
    response_model=RagConfigUpdateResponse,
    summary="Update RAG Config",
)
async def update_rag_config(
    project_id: str,
    proposed: RagConfigUpdate,
    config_store: ConfigStoreDep,
    orchestrator: OrchestratorDep,
    auto_reembed: bool = Query(False, description="Trigger a re-embed job if one is required"),
) -> RagConfigUpdateResponse:
    """Apply a partial update to the project's RAG config.

    Args:
        project_id: Project identifier.
        proposed: Fields to change; omitted fields are kept.
        config_store: Injected config store.
        orchestrator: Injected re-embed orchestrator.
        auto_reembed: Start a re-embed job when the change requires one.

    Returns:
        RagConfigUpdateResponse: New config, whether re-embedding is required and
        the started job, if any.
    """
    result = await config_store.update_config(project_id, proposed)

    job = None
    if auto_reembed and result.reembed_required:
        job = await orchestrator.trigger(project_id)
        logger.info(f"Auto-triggered re-embed job {job.id} for project {project_id}")

    return RagConfigUpdateResponse(
        config=result.config,
        reembed_required=result.reembed_required,
        job=job,
    )

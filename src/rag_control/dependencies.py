"""FastAPI dependency injection utilities."""

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends

from rag_control.config import Settings, get_settings
from rag_control.core.logging import get_logger

if TYPE_CHECKING:
    from rag_control.credentials.registry import CredentialRegistry
    from rag_control.credentials.secret_store import SecretStore
    from rag_control.rag.store import RagConfigStore
    from rag_control.reembed.job_table import ReEmbedJobTable
    from rag_control.reembed.orchestrator import ReEmbedOrchestrator
    from rag_control.services.embedding_provider import LlamaIndexEmbeddingProvider
    from rag_control.services.qdrant_service import QdrantChunkStore
    from rag_control.services.state_store import QdrantStateStore

logger = get_logger(__name__)

# Common dependencies that can be injected into route handlers
SettingsDep = Annotated[Settings, Depends(get_settings)]


# Module-level caches for service singletons
_state_store_cache: "QdrantStateStore | None" = None
_secret_store_cache: "SecretStore | None" = None
_registry_cache: "CredentialRegistry | None" = None
_job_table_cache: "ReEmbedJobTable | None" = None
_config_store_cache: "RagConfigStore | None" = None
_chunk_store_cache: "QdrantChunkStore | None" = None
_embedding_provider_cache: "LlamaIndexEmbeddingProvider | None" = None
_orchestrator_cache: "ReEmbedOrchestrator | None" = None


def get_state_store(settings: Annotated["Settings", Depends(get_settings)]) -> "QdrantStateStore":
    """Get or create the cached QdrantStateStore."""
    global _state_store_cache

    if _state_store_cache is None:
        from rag_control.services.state_store import QdrantStateStore

        _state_store_cache = QdrantStateStore(settings)

    return _state_store_cache


def get_secret_store(
    settings: Annotated["Settings", Depends(get_settings)],
    state: Annotated["QdrantStateStore", Depends(get_state_store)],
) -> "SecretStore":
    """Get or create the cached SecretStore."""
    global _secret_store_cache

    if _secret_store_cache is None:
        from rag_control.credentials.secret_store import SecretStore

        _secret_store_cache = SecretStore.from_settings(settings, state)

    return _secret_store_cache


def get_credential_registry(
    secret_store: Annotated["SecretStore", Depends(get_secret_store)],
    state: Annotated["QdrantStateStore", Depends(get_state_store)],
) -> "CredentialRegistry":
    """Get or create the cached CredentialRegistry."""
    global _registry_cache

    if _registry_cache is None:
        from rag_control.credentials.registry import CredentialRegistry

        _registry_cache = CredentialRegistry(secret_store, state)

    return _registry_cache


def get_job_table(
    state: Annotated["QdrantStateStore", Depends(get_state_store)],
) -> "ReEmbedJobTable":
    """Get or create the cached ReEmbedJobTable."""
    global _job_table_cache

    if _job_table_cache is None:
        from rag_control.reembed.job_table import ReEmbedJobTable

        _job_table_cache = ReEmbedJobTable(state)

    return _job_table_cache


def get_config_store(
    settings: Annotated["Settings", Depends(get_settings)],
    registry: Annotated["CredentialRegistry", Depends(get_credential_registry)],
    jobs: Annotated["ReEmbedJobTable", Depends(get_job_table)],
    state: Annotated["QdrantStateStore", Depends(get_state_store)],
) -> "RagConfigStore":
    """Get or create the cached RagConfigStore."""
    global _config_store_cache

    if _config_store_cache is None:
        from rag_control.rag.store import RagConfigStore

        _config_store_cache = RagConfigStore(settings, registry, jobs, state=state)

    return _config_store_cache


async def get_chunk_store(
    settings: Annotated["Settings", Depends(get_settings)],
) -> "QdrantChunkStore":
    """Get or create the cached QdrantChunkStore, creating its collection on first use."""
    global _chunk_store_cache

    if _chunk_store_cache is None:
        from rag_control.services.qdrant_service import QdrantChunkStore

        store = QdrantChunkStore(settings)
        await store.ensure_schema()
        _chunk_store_cache = store

    return _chunk_store_cache


def get_embedding_provider(
    settings: Annotated["Settings", Depends(get_settings)],
) -> "LlamaIndexEmbeddingProvider":
    """Get or create the cached LlamaIndexEmbeddingProvider."""
    global _embedding_provider_cache

    if _embedding_provider_cache is None:
        from rag_control.services.embedding_provider import LlamaIndexEmbeddingProvider

        _embedding_provider_cache = LlamaIndexEmbeddingProvider(settings)

    return _embedding_provider_cache


def get_orchestrator(
    settings: Annotated["Settings", Depends(get_settings)],
    jobs: Annotated["ReEmbedJobTable", Depends(get_job_table)],
    config_store: Annotated["RagConfigStore", Depends(get_config_store)],
    registry: Annotated["CredentialRegistry", Depends(get_credential_registry)],
    chunk_store: Annotated["QdrantChunkStore", Depends(get_chunk_store)],
    embedder: Annotated["LlamaIndexEmbeddingProvider", Depends(get_embedding_provider)],
) -> "ReEmbedOrchestrator":
    """Get or create the cached ReEmbedOrchestrator."""
    global _orchestrator_cache

    if _orchestrator_cache is None:
        from rag_control.reembed.orchestrator import ReEmbedOrchestrator

        _orchestrator_cache = ReEmbedOrchestrator(
            settings,
            jobs=jobs,
            config_store=config_store,
            registry=registry,
            chunk_store=chunk_store,
            embedder=embedder,
        )

    return _orchestrator_cache


async def startup_services() -> None:
    """Build the orchestrator and resume re-embed jobs the previous process left unfinished."""
    settings = get_settings()
    if not settings.reembed_recover_on_startup:
        return

    orchestrator = _orchestrator_cache
    if orchestrator is None:
        state = get_state_store(settings)
        registry = get_credential_registry(get_secret_store(settings, state), state)
        jobs = get_job_table(state)
        orchestrator = get_orchestrator(
            settings,
            jobs,
            get_config_store(settings, registry, jobs, state),
            registry,
            await get_chunk_store(settings),
            get_embedding_provider(settings),
        )

    recovered = await orchestrator.recover()
    logger.info(f"Resumed {recovered} re-embed job(s) after startup")


async def shutdown_services() -> None:
    """Stop re-embed workers and close external clients."""
    global _orchestrator_cache, _chunk_store_cache, _state_store_cache
    global _secret_store_cache, _registry_cache, _job_table_cache, _config_store_cache

    if _orchestrator_cache is not None:
        await _orchestrator_cache.aclose()
        _orchestrator_cache = None

    if _chunk_store_cache is not None:
        try:
            await _chunk_store_cache.aclose()
        except Exception as e:
            logger.warning(f"Failed to close Qdrant client: {e}")
        _chunk_store_cache = None

    if _state_store_cache is not None:
        try:
            _state_store_cache.close()
        except Exception as e:
            logger.warning(f"Failed to close Qdrant state client: {e}")
        _state_store_cache = None
        # Everything below was loaded from the closed client.
        _secret_store_cache = None
        _registry_cache = None
        _job_table_cache = None
        _config_store_cache = None


# Type aliases for dependency injection
SecretStoreDep = Annotated["SecretStore", Depends(get_secret_store)]
RegistryDep = Annotated["CredentialRegistry", Depends(get_credential_registry)]
JobTableDep = Annotated["ReEmbedJobTable", Depends(get_job_table)]
ConfigStoreDep = Annotated["RagConfigStore", Depends(get_config_store)]
OrchestratorDep = Annotated["ReEmbedOrchestrator", Depends(get_orchestrator)]

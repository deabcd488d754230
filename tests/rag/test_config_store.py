"""Tests for the per-project RAG config store."""

import pytest

from rag_control.config import Settings
from rag_control.core.exceptions import ValidationException
from rag_control.credentials.models import CredentialKind, CredentialScope
from rag_control.credentials.registry import CredentialRegistry
from rag_control.rag.models import RagConfigUpdate, SimilarityMetric
from rag_control.rag.store import REEMBED_WARNING, RagConfigStore
from rag_control.reembed.job_table import ReEmbedJobTable
from rag_control.reembed.models import JobState
from rag_control.services.state_store import QdrantStateStore

pytestmark = pytest.mark.asyncio


async def test_first_access_creates_v1_from_defaults(config_store: RagConfigStore):
    config = config_store.get_config("proj-1")

    assert config.version == 1
    assert config.embedding_model == "nomic-embed-text"
    assert config.chunk_size == 512
    assert config.chunk_overlap == 128
    assert config.similarity_metric is SimilarityMetric.COSINE
    assert config.top_k == 5
    assert config_store.get_config("proj-1") is config


async def test_defaults_prefer_model_with_resolvable_credential(
    config_store: RagConfigStore, registry: CredentialRegistry
):
    await registry.create(
        CredentialScope.PROJECT, "proj-1", CredentialKind.OPENAI_API_KEY, "sk-proj-12345678"
    )

    assert config_store.get_defaults("proj-1").embedding_model == "text-embedding-3-small"
    assert config_store.get_defaults("proj-2").embedding_model == "nomic-embed-text"
    assert config_store.get_defaults("proj-1").version == 0


async def test_model_change_requires_reembed(config_store: RagConfigStore):
    config_store.get_config("proj-1")

    result = await config_store.update_config(
        "proj-1", RagConfigUpdate(embedding_model="mxbai-embed-large")
    )

    assert result.reembed_required is True
    assert result.config.version == 2
    assert config_store.get_config("proj-1").embedding_model == "mxbai-embed-large"


@pytest.mark.parametrize(
    "update",
    [
        RagConfigUpdate(chunk_size=1024),
        RagConfigUpdate(chunk_overlap=0),
        RagConfigUpdate(similarity_metric=SimilarityMetric.DOT),
    ],
)
async def test_embedding_affecting_changes_require_reembed(
    config_store: RagConfigStore, update: RagConfigUpdate
):
    result = await config_store.update_config("proj-1", update)

    assert result.reembed_required is True


async def test_top_k_only_change_does_not_require_reembed(config_store: RagConfigStore):
    result = await config_store.update_config("proj-1", RagConfigUpdate(top_k=10))

    assert result.reembed_required is False
    assert result.config.top_k == 10
    assert result.config.version == 2


async def test_rejected_update_leaves_config_unchanged(config_store: RagConfigStore):
    before = config_store.get_config("proj-1")

    with pytest.raises(ValidationException) as exc_info:
        await config_store.update_config(
            "proj-1", RagConfigUpdate(chunk_size=0, top_k=0, embedding_model="text-embedding-3-small")
        )

    fields = {v.field for v in exc_info.value.violations}
    assert fields == {"chunk_size", "chunk_overlap", "top_k", "embedding_model"}
    after = config_store.get_config("proj-1")
    assert after == before
    assert after.model_dump_json() == before.model_dump_json()


async def test_update_rejected_while_job_is_active(
    config_store: RagConfigStore, job_table: ReEmbedJobTable
):
    config = config_store.get_config("proj-1")
    job = job_table.create_if_absent("proj-1", config.version, config.embedding_model)

    with pytest.raises(ValidationException) as exc_info:
        await config_store.update_config("proj-1", RagConfigUpdate(top_k=7))
    assert [v.field for v in exc_info.value.violations] == ["project"]

    job_table.finish(job.id, JobState.COMPLETED)
    result = await config_store.update_config("proj-1", RagConfigUpdate(top_k=7))
    assert result.config.version == 2


async def test_validate_has_no_side_effects(config_store: RagConfigStore):
    report = config_store.validate_config("proj-1", RagConfigUpdate(chunk_size=256))

    assert report.valid
    assert report.warnings == [REEMBED_WARNING]

    config = config_store.get_config("proj-1")
    assert config.version == 1
    assert config.chunk_size == 512


async def test_validate_top_k_only_has_no_warning(config_store: RagConfigStore):
    report = config_store.validate_config("proj-1", RagConfigUpdate(top_k=3))

    assert report.valid
    assert report.warnings == []


async def test_versions_increase_monotonically(config_store: RagConfigStore):
    versions = []
    for top_k in (2, 3, 4):
        result = await config_store.update_config("proj-1", RagConfigUpdate(top_k=top_k))
        versions.append(result.config.version)

    assert versions == [2, 3, 4]


async def test_configs_reload_from_state_store(
    config_store: RagConfigStore,
    test_settings: Settings,
    registry: CredentialRegistry,
    job_table: ReEmbedJobTable,
    state_store: QdrantStateStore,
):
    await config_store.update_config("proj-1", RagConfigUpdate(chunk_size=256, top_k=8))

    reloaded = RagConfigStore(test_settings, registry, job_table, state=state_store)
    config = reloaded.get_config("proj-1")

    assert config.version == 2
    assert config.chunk_size == 256
    assert config.top_k == 8
    assert config.similarity_metric is SimilarityMetric.COSINE

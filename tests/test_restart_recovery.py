"""A process restart rebuilds credentials, configs and jobs from Qdrant and resumes work."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from conftest import InMemoryChunkStore, ScriptedEmbedder
from cryptography.fernet import Fernet

from rag_control import dependencies
from rag_control.config import Settings
from rag_control.credentials.models import CredentialKind, CredentialScope
from rag_control.credentials.registry import CredentialRegistry
from rag_control.credentials.secret_store import SecretStore
from rag_control.dependencies import startup_services
from rag_control.rag.models import RagConfigUpdate
from rag_control.rag.store import RagConfigStore
from rag_control.reembed.job_table import ReEmbedJobTable
from rag_control.reembed.models import JobState
from rag_control.reembed.orchestrator import ReEmbedOrchestrator
from rag_control.services.state_store import QdrantStateStore

pytestmark = pytest.mark.asyncio

OPENAI = CredentialKind.OPENAI_API_KEY
SYSTEM_KEY = "sk-system-restart-1234"


class Process:
    """Everything one process builds on top of the state collection."""

    def __init__(
        self, settings: Settings, chunk_store: InMemoryChunkStore, embedder: ScriptedEmbedder
    ):
        self.state = QdrantStateStore(settings)
        self.registry = CredentialRegistry(
            SecretStore.from_settings(settings, self.state), self.state
        )
        self.jobs = ReEmbedJobTable(self.state)
        self.config_store = RagConfigStore(settings, self.registry, self.jobs, state=self.state)
        self.orchestrator = ReEmbedOrchestrator(
            settings,
            jobs=self.jobs,
            config_store=self.config_store,
            registry=self.registry,
            chunk_store=chunk_store,
            embedder=embedder,
        )

    async def stop(self) -> None:
        await self.orchestrator.aclose()
        self.state.close()


@pytest.fixture
def persistent_settings(tmp_path: Path) -> Settings:
    return Settings(
        encryption_keys=[Fernet.generate_key().decode()],
        qdrant_local_mode=True,
        qdrant_local_path=str(tmp_path / "state"),
        reembed_backoff_min=0.0,
        reembed_backoff_max=0.0,
    )


async def test_restart_resumes_job_from_persisted_cursor(
    persistent_settings: Settings,
    chunk_store: InMemoryChunkStore,
    embedder: ScriptedEmbedder,
):
    chunks = chunk_store.seed("P", 30)
    gate = asyncio.Event()
    embedder.gate = {chunks[11].text: gate}

    first = Process(persistent_settings, chunk_store, embedder)
    await first.registry.create(CredentialScope.SYSTEM, None, OPENAI, SYSTEM_KEY)
    await first.config_store.update_config("P", RagConfigUpdate(chunk_size=256))
    job = await first.orchestrator.trigger("P")
    await embedder.entered.wait()

    closing = asyncio.create_task(first.stop())
    await asyncio.sleep(0)
    gate.set()
    await closing

    embedder.calls.clear()
    embedder.credentials.clear()
    embedder.gate = {}

    second = Process(persistent_settings, chunk_store, embedder)
    try:
        assert second.registry.resolve(OPENAI, project_id="P") == SYSTEM_KEY

        config = second.config_store.get_config("P")
        assert config.version == 2
        assert config.chunk_size == 256
        assert config.embedding_model == "text-embedding-3-small"

        paused = second.orchestrator.get_job(job.id)
        assert paused.state is JobState.RUNNING
        assert paused.processed == 12
        assert paused.cursor == chunks[11].id

        assert await second.orchestrator.recover() == 1
        status = await second.orchestrator.wait(job.id)

        assert status.state is JobState.COMPLETED
        assert status.progress.processed == 30
        assert embedder.calls == [chunk.text for chunk in chunks[12:]]
        assert set(embedder.credentials) == {SYSTEM_KEY}
    finally:
        await second.stop()


async def test_paused_job_can_be_cancelled_after_restart(
    persistent_settings: Settings,
    chunk_store: InMemoryChunkStore,
    embedder: ScriptedEmbedder,
):
    chunk_store.seed("P", 10)
    first = Process(persistent_settings, chunk_store, embedder)
    version = first.config_store.get_config("P").version
    job = first.jobs.create_if_absent("P", version, "nomic-embed-text")
    first.jobs.claim(job.id)
    first.state.close()

    second = Process(persistent_settings, chunk_store, embedder)
    try:
        cancelled = second.orchestrator.cancel(job.id)

        assert cancelled.state is JobState.CANCELLED
        assert second.jobs.active_job("P") is None
        next_job = await second.orchestrator.trigger("P")
        assert (await second.orchestrator.wait(next_job.id)).state is JobState.COMPLETED
    finally:
        await second.stop()


async def test_startup_resumes_unfinished_jobs(
    monkeypatch: pytest.MonkeyPatch,
    make_orchestrator,
    job_table: ReEmbedJobTable,
    chunk_store: InMemoryChunkStore,
    embedder: ScriptedEmbedder,
):
    chunks = chunk_store.seed("P", 20)
    job = job_table.create_if_absent("P", 1, "nomic-embed-text")
    job_table.claim(job.id)
    job_table.set_total(job.id, 20)
    job_table.checkpoint(job.id, cursor=chunks[4].id, processed=5, failed_count=0)

    orchestrator = make_orchestrator()
    monkeypatch.setattr(dependencies, "_orchestrator_cache", orchestrator)
    try:
        await startup_services()
        status = await orchestrator.wait(job.id)
    finally:
        await orchestrator.aclose()

    assert status.state is JobState.COMPLETED
    assert status.progress.processed == 20
    assert len(embedder.calls) == 15

# conftest.py
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterator

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from llama_index.core.base.embeddings.base import BaseEmbedding  # type: ignore
from pydantic import PrivateAttr
from qdrant_client import AsyncQdrantClient, QdrantClient

from rag_control.config import Settings
from rag_control.core.exceptions import FatalJobError, TransientEmbeddingError
from rag_control.core.models import Chunk
from rag_control.credentials.registry import CredentialRegistry
from rag_control.credentials.secret_store import SecretStore
from rag_control.rag.models import EmbeddingModelSpec
from rag_control.rag.store import RagConfigStore
from rag_control.reembed.job_table import ReEmbedJobTable
from rag_control.reembed.orchestrator import ReEmbedOrchestrator
from rag_control.services.state_store import QdrantStateStore


# ---------- Fake embedding so LlamaIndex never calls external APIs ----------
class FakeEmbedding(BaseEmbedding):
    dim: int = 768
    _error: Exception | None = PrivateAttr(default=None)

    def fail_with(self, error: Exception) -> FakeEmbedding:
        self._error = error
        return self

    def _vector(self, text: str) -> list[float]:
        if self._error is not None:
            raise self._error
        return [float(len(text) % 7 + 1)] * self.dim

    def _get_text_embedding(self, text: str) -> list[float]:
        return self._vector(text)

    async def _aget_text_embedding(self, text: str) -> list[float]:
        return self._vector(text)

    def _get_query_embedding(self, query: str) -> list[float]:
        return self._vector(query)

    async def _aget_query_embedding(self, query: str) -> list[float]:
        return self._vector(query)


class InMemoryChunkStore:
    """Chunk store kept in a dict, ordered by chunk id."""

    def __init__(self) -> None:
        self.chunks: dict[str, list[Chunk]] = {}
        self.vectors: dict[tuple[str, str], list[float]] = {}

    def seed(self, project_id: str, n: int) -> list[Chunk]:
        chunks = [
            Chunk(
                id=f"{project_id}-{i:04d}",
                project_id=project_id,
                document_id=f"doc-{i // 10}",
                chunk_index=i % 10,
                text=f"chunk {i} of {project_id}",
            )
            for i in range(n)
        ]
        self.chunks[project_id] = chunks
        return chunks

    async def count_chunks(self, project_id: str) -> int:
        return len(self.chunks.get(project_id, []))

    async def iter_chunks(self, project_id: str, *, after: str | None = None) -> AsyncIterator[Chunk]:
        for chunk in self.chunks.get(project_id, []):
            if after is not None and chunk.id <= after:
                continue
            yield chunk

    async def write_embedding(self, chunk: Chunk, model_id: str, vector: list[float]) -> None:
        self.vectors[(chunk.id, model_id)] = vector


class ScriptedEmbedder:
    """Embedding provider whose per-chunk behaviour is scripted by text.

    - ``permanent``: texts that always raise a non-retryable error
    - ``transient``: text -> number of transient failures before success
    - ``gate``: text -> event the call waits on (``entered`` is set first)
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.credentials: list[str | None] = []
        self.permanent: set[str] = set()
        self.transient: dict[str, int] = {}
        self.fatal: set[str] = set()
        self.gate: dict[str, asyncio.Event] = {}
        self.entered = asyncio.Event()

    async def embed(
        self,
        text: str,
        *,
        model: EmbeddingModelSpec,
        credential: str | None,
    ) -> list[float]:
        self.calls.append(text)
        self.credentials.append(credential)

        if text in self.gate:
            self.entered.set()
            await self.gate[text].wait()
        if text in self.fatal:
            raise FatalJobError("provider rejected the credential")
        if text in self.permanent:
            raise ValueError(f"cannot embed {text!r}")
        if self.transient.get(text, 0) > 0:
            self.transient[text] -= 1
            raise TransientEmbeddingError("rate limited")
        return [0.5] * model.dimensions


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        encryption_keys=[Fernet.generate_key().decode()],
        qdrant_collection_name="test-chunks",
        qdrant_url="http://unused-in-local-mode",
        qdrant_api_key=None,
        qdrant_prefer_grpc=False,
        reembed_backoff_min=0.0,
        reembed_backoff_max=0.0,
        reembed_page_size=8,
    )


@pytest.fixture
def state_store(test_settings: Settings) -> QdrantStateStore:
    """Control-plane state in an in-memory embedded Qdrant."""
    return QdrantStateStore(test_settings, client=QdrantClient(location=":memory:"))


@pytest.fixture(autouse=True)
def isolated_state_store(monkeypatch: pytest.MonkeyPatch, state_store: QdrantStateStore):
    """Keep the app's dependency graph off a real Qdrant server."""
    from rag_control import dependencies

    monkeypatch.setattr(dependencies, "_state_store_cache", state_store)
    for cache in (
        "_secret_store_cache",
        "_registry_cache",
        "_job_table_cache",
        "_config_store_cache",
    ):
        monkeypatch.setattr(dependencies, cache, None)


@pytest.fixture
def secret_store(test_settings: Settings, state_store: QdrantStateStore) -> SecretStore:
    return SecretStore.from_settings(test_settings, state_store)


@pytest.fixture
def registry(secret_store: SecretStore, state_store: QdrantStateStore) -> CredentialRegistry:
    return CredentialRegistry(secret_store, state_store)


@pytest.fixture
def job_table(state_store: QdrantStateStore) -> ReEmbedJobTable:
    return ReEmbedJobTable(state_store)


@pytest.fixture
def config_store(
    test_settings: Settings,
    registry: CredentialRegistry,
    job_table: ReEmbedJobTable,
    state_store: QdrantStateStore,
) -> RagConfigStore:
    return RagConfigStore(test_settings, registry, job_table, state=state_store)


@pytest.fixture
def chunk_store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def embedder() -> ScriptedEmbedder:
    return ScriptedEmbedder()


@pytest.fixture
def make_orchestrator(
    test_settings: Settings,
    job_table: ReEmbedJobTable,
    config_store: RagConfigStore,
    registry: CredentialRegistry,
    chunk_store: InMemoryChunkStore,
    embedder: ScriptedEmbedder,
) -> Callable[..., ReEmbedOrchestrator]:
    def _make(settings: Settings | None = None) -> ReEmbedOrchestrator:
        return ReEmbedOrchestrator(
            settings or test_settings,
            jobs=job_table,
            config_store=config_store,
            registry=registry,
            chunk_store=chunk_store,
            embedder=embedder,
        )

    return _make


@pytest_asyncio.fixture
async def orchestrator(
    make_orchestrator: Callable[..., ReEmbedOrchestrator],
) -> AsyncIterator[ReEmbedOrchestrator]:
    orch = make_orchestrator()
    try:
        yield orch
    finally:
        await orch.aclose()


@pytest_asyncio.fixture
async def aclient_local() -> AsyncIterator[AsyncQdrantClient]:
    """In-memory embedded Qdrant for tests."""
    client = AsyncQdrantClient(path=":memory:")
    try:
        yield client
    finally:
        await client.close()


@pytest.fixture
def api_client(
    monkeypatch: pytest.MonkeyPatch,
    registry: CredentialRegistry,
    config_store: RagConfigStore,
    make_orchestrator: Callable[..., ReEmbedOrchestrator],
) -> Iterator[TestClient]:
    """TestClient wired to the per-test registry, config store and orchestrator."""
    from rag_control import dependencies
    from rag_control.dependencies import (
        get_config_store,
        get_credential_registry,
        get_orchestrator,
    )
    from rag_control.main import app

    orchestrator = make_orchestrator()
    # Startup recovery and shutdown both go through the cached orchestrator.
    monkeypatch.setattr(dependencies, "_orchestrator_cache", orchestrator)
    app.dependency_overrides[get_credential_registry] = lambda: registry
    app.dependency_overrides[get_config_store] = lambda: config_store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()

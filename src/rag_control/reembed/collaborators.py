"""Boundaries of the re-embed worker: where chunks come from and how vectors are made."""

from collections.abc import AsyncIterator
from typing import Protocol

from rag_control.core.models import Chunk
from rag_control.rag.models import EmbeddingModelSpec


class ChunkStore(Protocol):
    """Ordered, resumable read of a project's ingested chunks, plus vector write-back."""

    async def count_chunks(self, project_id: str) -> int: ...

    def iter_chunks(self, project_id: str, *, after: str | None = None) -> AsyncIterator[Chunk]:
        """Yield chunks in a stable order, starting strictly after chunk id `after`."""
        ...

    async def write_embedding(self, chunk: Chunk, model_id: str, vector: list[float]) -> None: ...


class EmbeddingProvider(Protocol):
    """Computes a vector for a text given a model and the credential it requires.

    Implementations raise ``TransientEmbeddingError`` for retryable failures and
    ``FatalJobError`` for failures no other chunk could succeed past.
    """

    async def embed(
        self,
        text: str,
        *,
        model: EmbeddingModelSpec,
        credential: str | None,
    ) -> list[float]: ...

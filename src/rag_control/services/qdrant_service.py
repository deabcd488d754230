"""Qdrant-backed chunk store: ordered paging over a project's chunks and vector write-back."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any

from qdrant_client import AsyncQdrantClient
from qdrant_client import models as q
from qdrant_client.conversions.common_types import PointId

from rag_control.config import Settings
from rag_control.core.constants import K_CHUNK_INDEX, K_DOCUMENT_ID, K_PROJECT_ID, K_TEXT
from rag_control.core.logging import get_logger
from rag_control.core.models import Chunk
from rag_control.rag.models import EMBEDDING_MODELS

logger = get_logger(__name__)


def _project_filter(project_id: str) -> q.Filter:
    return q.Filter(
        must=[
            q.FieldCondition(
                key=K_PROJECT_ID,
                match=q.MatchValue(value=project_id),
            )
        ]
    )


def chunk_to_point(chunk: Chunk) -> q.PointStruct:
    """Chunks are stored payload-first; vectors are added per model by re-embedding."""
    return q.PointStruct(
        id=chunk.id,
        vector={},
        payload={
            K_PROJECT_ID: chunk.project_id,
            K_DOCUMENT_ID: chunk.document_id,
            K_CHUNK_INDEX: chunk.chunk_index,
            K_TEXT: chunk.text,
        },
    )


def record_to_chunk(record: q.Record) -> Chunk:
    payload: dict[str, Any] = record.payload or {}
    return Chunk(
        id=str(record.id),
        project_id=str(payload.get(K_PROJECT_ID, "")),
        document_id=str(payload.get(K_DOCUMENT_ID, "")),
        chunk_index=int(payload.get(K_CHUNK_INDEX, 0)),
        text=str(payload.get(K_TEXT, "")),
    )


class QdrantChunkStore:
    """Thin wrapper around the async Qdrant client for the project chunk collection.

    The collection holds one named dense vector per catalog embedding model, so a
    re-embed under a new model writes alongside the old vectors instead of
    requiring a schema change.
    """

    def __init__(
        self,
        settings: Settings,
        aclient: AsyncQdrantClient | None = None,
        page_size: int | None = None,
    ):
        self.settings = settings
        self.col = settings.qdrant_collection_name
        self.page_size = page_size or settings.reembed_page_size

        if aclient is not None:
            self.aclient = aclient
        elif settings.qdrant_local_mode:
            self.aclient = AsyncQdrantClient(location=":memory:")
        else:
            self.aclient = AsyncQdrantClient(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefer_grpc=settings.qdrant_prefer_grpc,
                timeout=settings.qdrant_timeout,
            )

        logger.info("QdrantChunkStore initialized for collection '%s'", self.col)

    async def aclose(self) -> None:
        """Close the client."""
        await self.aclient.close()

    async def collection_exists(self) -> bool:
        """Return True if the collection already exists."""
        return await self.aclient.collection_exists(self.col)

    async def get_collection_info(self) -> q.CollectionInfo:
        """Fetch collection information."""
        return await self.aclient.get_collection(self.col)

    async def ensure_schema(self) -> None:
        """Ensure the collection exists with a named vector per catalog model."""
        if await self.collection_exists():
            logger.info("Collection '%s' already exists", self.col)
            return

        logger.info("Creating collection '%s' with named vectors", self.col)
        await self.aclient.create_collection(
            collection_name=self.col,
            vectors_config={
                spec.id: q.VectorParams(size=spec.dimensions, distance=q.Distance.COSINE)
                for spec in EMBEDDING_MODELS.values()
            },
            on_disk_payload=True,
        )
        try:
            await self.aclient.create_payload_index(
                collection_name=self.col,
                field_name=K_PROJECT_ID,
                field_schema=q.KeywordIndexParams(type=q.KeywordIndexType.KEYWORD, is_tenant=True),
            )
        except Exception as exc:  # pragma: no cover
            logger.warning("Failed to create index '%s': %s", K_PROJECT_ID, exc)
        logger.info("Created collection '%s'", self.col)

    async def upsert_chunks(self, chunks: Sequence[Chunk], *, wait: bool = True) -> None:
        """Insert chunk payloads (normally done by the ingestion pipeline)."""
        if not chunks:
            return
        await self.aclient.upsert(
            collection_name=self.col,
            points=[chunk_to_point(chunk) for chunk in chunks],
            wait=wait,
        )
        logger.debug("Upserted %d chunks into '%s'", len(chunks), self.col)

    async def count_chunks(self, project_id: str) -> int:
        result = await self.aclient.count(
            collection_name=self.col,
            count_filter=_project_filter(project_id),
            exact=True,
        )
        return result.count

    async def iter_chunks(
        self, project_id: str, *, after: str | None = None
    ) -> AsyncIterator[Chunk]:
        """Page through a project's chunks in point-id order, one page in memory at a time.

        Qdrant's scroll offset is inclusive, so resuming at `after` skips that
        point itself.
        """
        offset: PointId | None = after
        skip = after
        while True:
            records, next_offset = await self.aclient.scroll(
                collection_name=self.col,
                scroll_filter=_project_filter(project_id),
                limit=self.page_size,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            for record in records:
                if skip is not None and str(record.id) == skip:
                    continue
                yield record_to_chunk(record)
            skip = None

            if next_offset is None:
                return
            offset = next_offset

    async def write_embedding(self, chunk: Chunk, model_id: str, vector: list[float]) -> None:
        await self.aclient.update_vectors(
            collection_name=self.col,
            points=[q.PointVectors(id=chunk.id, vector={model_id: vector})],
        )

    async def retrieve_vector(self, chunk_id: str, model_id: str) -> list[float] | None:
        """Fetch one chunk's vector for a model, if it has been embedded."""
        records = await self.aclient.retrieve(
            collection_name=self.col,
            ids=[chunk_id],
            with_payload=False,
            with_vectors=[model_id],
        )
        if not records or not isinstance(records[0].vector, dict):
            return None
        vector = records[0].vector.get(model_id)
        return list(vector) if isinstance(vector, list) else None  # pyright: ignore[reportUnknownArgumentType]


__all__ = ["QdrantChunkStore", "chunk_to_point", "record_to_chunk"]

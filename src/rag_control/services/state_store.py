"""Durable control-plane records kept as payload-only points in a Qdrant collection."""

from __future__ import annotations

from typing import Any
from uuid import NAMESPACE_URL, uuid5

from qdrant_client import QdrantClient
from qdrant_client import models as q

from rag_control.config import Settings
from rag_control.core.constants import K_STATE_DATA, K_STATE_KEY, K_STATE_KIND
from rag_control.core.logging import get_logger

logger = get_logger(__name__)


def state_point_id(kind: str, key: str) -> str:
    """Deterministic point id, so a re-put of the same record overwrites it."""
    return str(uuid5(NAMESPACE_URL, f"rag-control/{kind}/{key}"))


def _kind_filter(kind: str) -> q.Filter:
    return q.Filter(
        must=[
            q.FieldCondition(
                key=K_STATE_KIND,
                match=q.MatchValue(value=kind),
            )
        ]
    )


class QdrantStateStore:
    """Write-through key/value storage for secrets, credentials, configs and jobs.

    Every record is a point without vectors whose payload holds the record
    kind, its key and a JSON document. Owners keep their own in-memory view and
    call :meth:`put`/:meth:`delete` on every mutation, then reload everything
    of their kind with :meth:`load` when the process starts.
    """

    def __init__(
        self,
        settings: Settings,
        client: QdrantClient | None = None,
        page_size: int = 256,
    ):
        self.settings = settings
        self.col = settings.qdrant_state_collection_name
        self.page_size = page_size

        if client is not None:
            self.client = client
        elif settings.qdrant_local_mode and settings.qdrant_local_path:
            self.client = QdrantClient(
                path=settings.qdrant_local_path, force_disable_check_same_thread=True
            )
        elif settings.qdrant_local_mode:
            logger.warning(
                "Qdrant local mode without a path: control-plane state will not survive a restart"
            )
            self.client = QdrantClient(location=":memory:")
        else:
            self.client = QdrantClient(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefer_grpc=settings.qdrant_prefer_grpc,
                timeout=settings.qdrant_timeout,
            )

        self.ensure_schema()
        logger.info("QdrantStateStore initialized for collection '%s'", self.col)

    def close(self) -> None:
        """Close the client."""
        self.client.close()

    def ensure_schema(self) -> None:
        """Ensure the payload-only collection and its kind index exist."""
        if self.client.collection_exists(self.col):
            return

        logger.info("Creating state collection '%s'", self.col)
        self.client.create_collection(collection_name=self.col, vectors_config={})
        try:
            self.client.create_payload_index(
                collection_name=self.col,
                field_name=K_STATE_KIND,
                field_schema=q.PayloadSchemaType.KEYWORD,
            )
        except Exception as exc:  # pragma: no cover
            logger.warning("Failed to create index '%s': %s", K_STATE_KIND, exc)

    def put(self, kind: str, key: str, data: dict[str, Any]) -> None:
        """Insert or replace one record. `data` must be JSON-serializable."""
        self.client.upsert(
            collection_name=self.col,
            points=[
                q.PointStruct(
                    id=state_point_id(kind, key),
                    vector={},
                    payload={K_STATE_KIND: kind, K_STATE_KEY: key, K_STATE_DATA: data},
                )
            ],
            wait=True,
        )

    def delete(self, kind: str, key: str) -> None:
        self.client.delete(
            collection_name=self.col,
            points_selector=q.PointIdsList(points=[state_point_id(kind, key)]),
            wait=True,
        )

    def load(self, kind: str) -> dict[str, dict[str, Any]]:
        """Return every record of a kind as {key: data}."""
        loaded: dict[str, dict[str, Any]] = {}
        offset: Any = None
        while True:
            records, offset = self.client.scroll(
                collection_name=self.col,
                scroll_filter=_kind_filter(kind),
                limit=self.page_size,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            for record in records:
                payload = record.payload or {}
                loaded[str(payload[K_STATE_KEY])] = dict(payload[K_STATE_DATA])
            if offset is None:
                break

        logger.debug("Loaded %d '%s' record(s) from '%s'", len(loaded), kind, self.col)
        return loaded


__all__ = ["QdrantStateStore", "state_point_id"]

"""Embedding provider backed by llama-index embedding models."""

import hashlib
from collections import OrderedDict
from collections.abc import Callable

import httpx
import ollama
import openai
from llama_index.core.base.embeddings.base import BaseEmbedding  # type: ignore
from llama_index.embeddings.ollama import OllamaEmbedding  # type: ignore
from llama_index.embeddings.openai import OpenAIEmbedding  # type: ignore

from rag_control.config import Settings
from rag_control.core.constants import PROVIDER_OLLAMA, PROVIDER_OPENAI
from rag_control.core.exceptions import FatalJobError, TransientEmbeddingError
from rag_control.core.logging import get_logger
from rag_control.rag.models import EmbeddingModelSpec

logger = get_logger(__name__)

EmbeddingFactory = Callable[[EmbeddingModelSpec, str | None], BaseEmbedding]

# The ollama client turns httpx connect errors into the builtin ConnectionError.
_TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
    httpx.TransportError,
    ConnectionError,
)
_FATAL_ERRORS: tuple[type[Exception], ...] = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
)
_FATAL_STATUS_CODES = frozenset({401, 403})


def _is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class LlamaIndexEmbeddingProvider:
    """Builds llama-index embedding models from the model spec and credential.

    Clients are cached per (model, credential fingerprint), so a job reuses one
    client for all of its chunks and a rotated credential gets a fresh one. The
    cache is a small LRU; evicted clients are simply dropped. Retries are left
    to the caller, so the underlying clients are created with ``max_retries=0``.
    """

    def __init__(self, settings: Settings, factory: EmbeddingFactory | None = None):
        self.settings = settings
        self._factory = factory or self._build
        self._clients: OrderedDict[tuple[str, str | None], BaseEmbedding] = OrderedDict()

    def _build(self, spec: EmbeddingModelSpec, credential: str | None) -> BaseEmbedding:
        if spec.provider == PROVIDER_OPENAI:
            if not credential:
                raise FatalJobError(f"{spec.id} requires an API key")
            return OpenAIEmbedding(
                api_key=credential,
                model=spec.id,
                dimensions=spec.dimensions,
                max_retries=0,
                timeout=self.settings.embedding_timeout,
            )
        if spec.provider == PROVIDER_OLLAMA:
            return OllamaEmbedding(
                model_name=spec.id,
                base_url=self.settings.ollama_base_url,
            )
        raise FatalJobError(f"Unsupported embedding provider: {spec.provider}")

    def _client(self, spec: EmbeddingModelSpec, credential: str | None) -> BaseEmbedding:
        fingerprint = (
            hashlib.sha256(credential.encode("utf-8")).hexdigest() if credential else None
        )
        key = (spec.id, fingerprint)
        client = self._clients.get(key)
        if client is not None:
            self._clients.move_to_end(key)
            return client

        client = self._factory(spec, credential)
        self._clients[key] = client
        while len(self._clients) > self.settings.embedding_client_cache_size:
            self._clients.popitem(last=False)
        logger.debug(f"Built {spec.provider} embedding client for {spec.id}")
        return client

    async def embed(
        self,
        text: str,
        *,
        model: EmbeddingModelSpec,
        credential: str | None,
    ) -> list[float]:
        """Embed a single text.

        Raises:
            TransientEmbeddingError: Connection, rate-limit or server-side failures.
            FatalJobError: The credential was rejected or the provider is unusable.
        """
        embed_model = self._client(model, credential)
        try:
            vector = await embed_model.aget_text_embedding(text)
        except _FATAL_ERRORS as e:
            raise FatalJobError(f"{model.provider} rejected the credential: {e}") from e
        except _TRANSIENT_ERRORS as e:
            raise TransientEmbeddingError(f"{e.__class__.__name__}: {e}") from e
        except ollama.ResponseError as e:
            if e.status_code in _FATAL_STATUS_CODES:
                raise FatalJobError(f"{model.provider} rejected the request: {e}") from e
            if _is_transient_status(e.status_code):
                raise TransientEmbeddingError(f"ResponseError: {e}") from e
            raise

        if len(vector) != model.dimensions:
            raise ValueError(
                f"{model.id} returned {len(vector)} dimensions, expected {model.dimensions}"
            )
        return vector

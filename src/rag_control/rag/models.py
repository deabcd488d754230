"""Per-project RAG configuration models and the embedding model catalog."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from rag_control.core.constants import PROVIDER_OLLAMA, PROVIDER_OPENAI
from rag_control.core.models import Violation
from rag_control.credentials.models import CredentialKind


class SimilarityMetric(str, Enum):
    """Distance used when ranking retrieved chunks."""

    COSINE = "cosine"
    DOT = "dot"
    EUCLIDEAN = "euclidean"


@dataclass(frozen=True)
class EmbeddingModelSpec:
    """A supported embedding model and the credential it needs, if any."""

    id: str
    provider: str
    dimensions: int
    credential_kind: CredentialKind | None = None


# Ordered by preference when computing a project's defaults.
EMBEDDING_MODELS: dict[str, EmbeddingModelSpec] = {
    spec.id: spec
    for spec in (
        EmbeddingModelSpec(
            "text-embedding-3-small", PROVIDER_OPENAI, 1536, CredentialKind.OPENAI_API_KEY
        ),
        EmbeddingModelSpec(
            "text-embedding-3-large", PROVIDER_OPENAI, 3072, CredentialKind.OPENAI_API_KEY
        ),
        EmbeddingModelSpec("nomic-embed-text", PROVIDER_OLLAMA, 768),
        EmbeddingModelSpec("mxbai-embed-large", PROVIDER_OLLAMA, 1024),
    )
}


def get_embedding_model(model_id: str) -> EmbeddingModelSpec | None:
    return EMBEDDING_MODELS.get(model_id)


# Changing any of these invalidates every stored vector.
REEMBED_FIELDS: tuple[str, ...] = (
    "embedding_model",
    "chunk_size",
    "chunk_overlap",
    "similarity_metric",
)


class RagConfig(BaseModel):
    """The live RAG configuration document of a project."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    embedding_model: str
    chunk_size: int
    chunk_overlap: int
    similarity_metric: SimilarityMetric
    top_k: int
    version: int = Field(0, description="Incremented on every accepted update; 0 for unsaved defaults")
    updated_at: datetime | None = None


class RagConfigUpdate(BaseModel):
    """Proposed changes; omitted fields keep their current value."""

    model_config = ConfigDict(extra="forbid")

    embedding_model: str | None = None
    chunk_size: int | None = None
    chunk_overlap: int | None = None
    similarity_metric: SimilarityMetric | None = None
    top_k: int | None = None

    def apply_to(self, config: RagConfig) -> RagConfig:
        return config.model_copy(update=self.model_dump(exclude_none=True))


def requires_reembed(old: RagConfig, new: RagConfig) -> bool:
    """True if going from `old` to `new` makes existing vectors stale (top-k alone does not)."""
    return any(getattr(old, name) != getattr(new, name) for name in REEMBED_FIELDS)


class ConfigUpdateResult(BaseModel):
    """Outcome of an accepted configuration update."""

    config: RagConfig
    reembed_required: bool


@dataclass(frozen=True)
class ValidationReport:
    """Blocking violations plus non-blocking warnings for a proposed config."""

    violations: list[Violation]
    warnings: list[str]

    @property
    def valid(self) -> bool:
        return not self.violations

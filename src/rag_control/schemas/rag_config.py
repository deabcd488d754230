"""RAG configuration request and response schemas."""

from pydantic import BaseModel, Field

from rag_control.core.models import Violation
from rag_control.credentials.models import CredentialKind
from rag_control.rag.models import EmbeddingModelSpec, RagConfig, ValidationReport
from rag_control.reembed.models import ReEmbedJob


class ViolationItem(BaseModel):
    """A single rejected field."""

    field: str = Field(..., description="Offending field, or 'project' for project-level blocks")
    message: str = Field(..., description="Human-readable reason")

    @classmethod
    def from_violation(cls, violation: Violation) -> "ViolationItem":
        return cls(field=violation.field, message=violation.message)


class ValidationResponse(BaseModel):
    """Result of a dry-run validation."""

    valid: bool = Field(..., description="True when there are no violations")
    violations: list[ViolationItem] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list, description="Non-blocking notices")

    @classmethod
    def from_report(cls, report: ValidationReport) -> "ValidationResponse":
        return cls(
            valid=report.valid,
            violations=[ViolationItem.from_violation(v) for v in report.violations],
            warnings=report.warnings,
        )


class RagConfigUpdateResponse(BaseModel):
    """Outcome of an accepted configuration update."""

    config: RagConfig
    reembed_required: bool = Field(
        ..., description="True if stored vectors are stale under the new configuration"
    )
    job: ReEmbedJob | None = Field(None, description="Re-embed job started by auto_reembed")


class EmbeddingModelInfo(BaseModel):
    """Catalog entry of a supported embedding model."""

    id: str
    provider: str
    dimensions: int
    credential_kind: CredentialKind | None = Field(
        None, description="Credential kind required to use this model"
    )

    @classmethod
    def from_spec(cls, spec: EmbeddingModelSpec) -> "EmbeddingModelInfo":
        return cls(
            id=spec.id,
            provider=spec.provider,
            dimensions=spec.dimensions,
            credential_kind=spec.credential_kind,
        )

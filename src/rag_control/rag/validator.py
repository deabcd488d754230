"""Checks a candidate RAG configuration against constraints and resolvable credentials."""

from rag_control.core.models import Violation
from rag_control.credentials.registry import CredentialRegistry
from rag_control.rag.models import RagConfig, get_embedding_model
from rag_control.reembed.job_table import ReEmbedJobTable


class ConfigValidator:
    """Side-effect free: reads the registry and job table, never writes."""

    def __init__(self, registry: CredentialRegistry, jobs: ReEmbedJobTable):
        self._registry = registry
        self._jobs = jobs

    def validate(self, project_id: str, candidate: RagConfig) -> list[Violation]:
        """Return every violation of `candidate`; an empty list means acceptable.

        Args:
            project_id: Project the configuration belongs to.
            candidate: The full configuration that would be stored.

        Returns:
            list[Violation]: All violations found (not just the first).
        """
        violations: list[Violation] = []

        active = self._jobs.active_job(project_id)
        if active is not None:
            violations.append(
                Violation(
                    "project",
                    f"Re-embed job {active.id} is {active.state.value}; "
                    "configuration is frozen until it finishes",
                )
            )

        if candidate.chunk_size <= 0:
            violations.append(Violation("chunk_size", "chunk_size must be greater than 0"))
        if candidate.chunk_overlap < 0:
            violations.append(Violation("chunk_overlap", "chunk_overlap must not be negative"))
        if candidate.chunk_overlap >= candidate.chunk_size:
            violations.append(
                Violation("chunk_overlap", "chunk_overlap must be smaller than chunk_size")
            )
        if candidate.top_k < 1:
            violations.append(Violation("top_k", "top_k must be at least 1"))

        spec = get_embedding_model(candidate.embedding_model)
        if spec is None:
            violations.append(
                Violation(
                    "embedding_model", f"Unknown embedding model: {candidate.embedding_model}"
                )
            )
        elif spec.credential_kind is not None and not self._registry.is_resolvable(
            spec.credential_kind, project_id
        ):
            violations.append(
                Violation(
                    "embedding_model",
                    f"{spec.id} requires a {spec.credential_kind.value} credential, "
                    "but none is configured for this project or system-wide",
                )
            )

        return violations

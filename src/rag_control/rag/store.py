"""Durable per-project RAG configuration with computed defaults."""

from datetime import UTC, datetime

from rag_control.config import Settings
from rag_control.core.constants import STATE_RAG_CONFIG
from rag_control.core.exceptions import ValidationException
from rag_control.core.logging import get_logger
from rag_control.credentials.registry import CredentialRegistry
from rag_control.rag.models import (
    EMBEDDING_MODELS,
    ConfigUpdateResult,
    RagConfig,
    RagConfigUpdate,
    SimilarityMetric,
    ValidationReport,
    requires_reembed,
)
from rag_control.rag.validator import ConfigValidator
from rag_control.reembed.job_table import ReEmbedJobTable
from rag_control.services.state_store import QdrantStateStore

logger = get_logger(__name__)

REEMBED_WARNING = (
    "Embedding-affecting settings changed; all documents will have to be re-embedded."
)


class RagConfigStore:
    """One live RagConfig per project, mutated only through validated updates."""

    def __init__(
        self,
        settings: Settings,
        registry: CredentialRegistry,
        jobs: ReEmbedJobTable,
        validator: ConfigValidator | None = None,
        state: QdrantStateStore | None = None,
    ):
        self.settings = settings
        self._registry = registry
        self._jobs = jobs
        self._validator = validator or ConfigValidator(registry, jobs)
        self._state = state
        self._configs: dict[str, RagConfig] = {}
        if state is not None:
            self._configs = {
                project_id: RagConfig.model_validate(data)
                for project_id, data in state.load(STATE_RAG_CONFIG).items()
            }

    def _save(self, config: RagConfig) -> None:
        self._configs[config.project_id] = config
        if self._state is not None:
            self._state.put(STATE_RAG_CONFIG, config.project_id, config.model_dump(mode="json"))

    def get_defaults(self, project_id: str) -> RagConfig:
        """Compute (without storing) the defaults for a project.

        Prefers the first catalog model whose credential currently resolves
        for the project; otherwise the configured baseline model.
        """
        model_id = self.settings.baseline_embedding_model
        for spec in EMBEDDING_MODELS.values():
            if spec.credential_kind is not None and self._registry.is_resolvable(
                spec.credential_kind, project_id
            ):
                model_id = spec.id
                break

        return RagConfig(
            project_id=project_id,
            embedding_model=model_id,
            chunk_size=self.settings.default_chunk_size,
            chunk_overlap=self.settings.default_chunk_overlap,
            similarity_metric=SimilarityMetric(self.settings.default_similarity_metric),
            top_k=self.settings.default_top_k,
        )

    def get_config(self, project_id: str) -> RagConfig:
        """Return the project's config, creating it from defaults on first access."""
        config = self._configs.get(project_id)
        if config is None:
            created = self.get_defaults(project_id).model_copy(
                update={"version": 1, "updated_at": datetime.now(UTC)}
            )
            config = self._configs.setdefault(project_id, created)
            if config is created:
                self._save(config)
                logger.info(
                    f"Created RAG config v1 for project {project_id} "
                    f"(embedding model {config.embedding_model})"
                )
        return config

    def validate_config(self, project_id: str, proposed: RagConfigUpdate) -> ValidationReport:
        """Validate a proposed change without touching storage."""
        current = self._configs.get(project_id) or self.get_defaults(project_id)
        candidate = proposed.apply_to(current)
        violations = self._validator.validate(project_id, candidate)
        warnings = [REEMBED_WARNING] if requires_reembed(current, candidate) else []
        return ValidationReport(violations=violations, warnings=warnings)

    async def update_config(self, project_id: str, proposed: RagConfigUpdate) -> ConfigUpdateResult:
        """Apply a validated change and bump the version.

        The job-existence check and the write happen under the project's job
        slot, so a concurrent trigger cannot slip in between.

        Raises:
            ValidationException: With every violation; stored config unchanged.
        """
        async with self._jobs.slot(project_id):
            current = self.get_config(project_id)
            candidate = proposed.apply_to(current)

            violations = self._validator.validate(project_id, candidate)
            if violations:
                raise ValidationException(
                    f"RAG config for project {project_id} rejected", violations
                )

            updated = candidate.model_copy(
                update={"version": current.version + 1, "updated_at": datetime.now(UTC)}
            )
            self._save(updated)

        reembed_required = requires_reembed(current, updated)
        logger.info(
            f"Updated RAG config for project {project_id} to v{updated.version} "
            f"(re-embed required: {reembed_required})"
        )
        return ConfigUpdateResult(config=updated, reembed_required=reembed_required)

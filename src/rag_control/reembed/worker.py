"""Worker that re-embeds one project's chunks for a single job."""

import asyncio
import logging
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from rag_control.config import Settings
from rag_control.core.exceptions import (
    FatalJobError,
    NotConfiguredException,
    TransientEmbeddingError,
)
from rag_control.core.logging import get_logger
from rag_control.core.models import Chunk
from rag_control.credentials.registry import CredentialRegistry
from rag_control.rag.models import EmbeddingModelSpec, get_embedding_model
from rag_control.rag.store import RagConfigStore
from rag_control.reembed.collaborators import ChunkStore, EmbeddingProvider
from rag_control.reembed.job_table import ReEmbedJobTable
from rag_control.reembed.models import JobState, ReEmbedJob

logger = get_logger(__name__)


class ReEmbedWorker:
    """Streams a project's chunks and re-embeds them under the job's bound config.

    Progress is checkpointed after every chunk (cursor = last chunk id), and
    cancellation or shutdown is only observed at those checkpoints.
    """

    def __init__(
        self,
        job_id: UUID,
        *,
        settings: Settings,
        jobs: ReEmbedJobTable,
        config_store: RagConfigStore,
        registry: CredentialRegistry,
        chunk_store: ChunkStore,
        embedder: EmbeddingProvider,
        shutdown_event: asyncio.Event | None = None,
    ):
        self.job_id = job_id
        self.settings = settings
        self.jobs = jobs
        self.config_store = config_store
        self.registry = registry
        self.chunk_store = chunk_store
        self.embedder = embedder
        self.shutdown_event = shutdown_event or asyncio.Event()

    # ---------------- Setup ----------------

    def _bound_model(self, job: ReEmbedJob) -> EmbeddingModelSpec:
        config = self.config_store.get_config(job.project_id)
        if config.version != job.config_version:
            raise FatalJobError(
                f"RAG config moved to v{config.version} while job is bound to v{job.config_version}"
            )
        spec = get_embedding_model(config.embedding_model)
        if spec is None:
            raise FatalJobError(f"Unknown embedding model: {config.embedding_model}")
        return spec

    def _credential_for(self, job: ReEmbedJob, spec: EmbeddingModelSpec) -> str | None:
        if spec.credential_kind is None:
            return None
        try:
            return self.registry.resolve(spec.credential_kind, job.project_id)
        except NotConfiguredException as e:
            raise FatalJobError(e.message) from e

    # ---------------- Per-chunk ----------------

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.settings.reembed_max_attempts),
            wait=wait_exponential(
                multiplier=self.settings.reembed_backoff_min,
                max=self.settings.reembed_backoff_max,
            ),
            retry=retry_if_exception_type(TransientEmbeddingError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def process_chunk(
        self, chunk: Chunk, spec: EmbeddingModelSpec, credential: str | None
    ) -> bool:
        """Embed and store one chunk.

        Returns:
            True on success, False if the chunk failed permanently.

        Raises:
            FatalJobError: If the provider reports a failure that ends the job.
        """
        try:
            async for attempt in self._retrying():
                with attempt:
                    vector = await self.embedder.embed(
                        chunk.text, model=spec, credential=credential
                    )
        except FatalJobError:
            raise
        except TransientEmbeddingError as e:
            logger.warning(f"Chunk {chunk.id} failed after retries: {e}")
            return False
        except Exception as e:
            logger.warning(f"Chunk {chunk.id} failed permanently: {e}")
            return False

        # Write-back errors are infrastructure failures and propagate.
        await self.chunk_store.write_embedding(chunk, spec.id, vector)
        return True

    def _over_threshold(self, failed: int, total: int) -> bool:
        return total > 0 and failed / total > self.settings.reembed_failure_threshold

    # ---------------- Main loop ----------------

    async def run(self) -> ReEmbedJob:
        """Drive the job to a terminal state (or stop at a checkpoint on shutdown)."""
        if not self.jobs.claim(self.job_id):
            logger.info(f"Re-embed job {self.job_id} is no longer runnable, skipping")
            return self.jobs.get(self.job_id)

        job = self.jobs.get(self.job_id)
        project_id = job.project_id
        logger.info(
            f"Worker started re-embed job {self.job_id} for project {project_id}"
            + (f" (resuming after {job.cursor})" if job.cursor else "")
        )

        try:
            spec = self._bound_model(job)
            credential = self._credential_for(job, spec)

            total = await self.chunk_store.count_chunks(project_id)
            job = self.jobs.set_total(self.job_id, max(total, job.processed))
            processed, failed = job.processed, job.failed_count

            if self.jobs.cancel_requested(self.job_id):
                return self.jobs.finish(self.job_id, JobState.CANCELLED, cause="Cancelled")

            async for chunk in self.chunk_store.iter_chunks(project_id, after=job.cursor):
                ok = await self.process_chunk(chunk, spec, credential)
                processed += 1
                failed += 0 if ok else 1
                job = self.jobs.checkpoint(
                    self.job_id, cursor=chunk.id, processed=processed, failed_count=failed
                )

                if self._over_threshold(failed, job.total):
                    return self.jobs.finish(
                        self.job_id,
                        JobState.FAILED,
                        cause=f"Permanent failure rate exceeded "
                        f"{self.settings.reembed_failure_threshold:.0%} "
                        f"({failed}/{job.total} chunks failed)",
                    )
                if self.jobs.cancel_requested(self.job_id):
                    return self.jobs.finish(self.job_id, JobState.CANCELLED, cause="Cancelled")
                if self.shutdown_event.is_set():
                    logger.info(
                        f"Shutdown requested; re-embed job {self.job_id} paused at {chunk.id}"
                    )
                    return job

                if processed % 100 == 0:
                    logger.debug(f"Re-embed job {self.job_id} progress: {processed}/{job.total}")

            return self.jobs.finish(self.job_id, JobState.COMPLETED)

        except asyncio.CancelledError:
            logger.warning(f"Worker task for re-embed job {self.job_id} cancelled")
            raise
        except FatalJobError as e:
            logger.error(f"Re-embed job {self.job_id} aborted: {e}")
            return self.jobs.finish(self.job_id, JobState.FAILED, cause=str(e))
        except Exception as e:
            logger.error(f"Re-embed job {self.job_id} crashed: {e}", exc_info=True)
            return self.jobs.finish(
                self.job_id, JobState.FAILED, cause=f"{e.__class__.__name__}: {e}"
            )

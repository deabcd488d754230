"""Orchestrates re-embed jobs: one worker task per project, many projects at once."""

import asyncio
from uuid import UUID

from rag_control.config import Settings
from rag_control.core.logging import get_logger
from rag_control.credentials.registry import CredentialRegistry
from rag_control.rag.store import RagConfigStore
from rag_control.reembed.collaborators import ChunkStore, EmbeddingProvider
from rag_control.reembed.job_table import ReEmbedJobTable
from rag_control.reembed.models import JobState, JobStatus, ReEmbedJob
from rag_control.reembed.worker import ReEmbedWorker

logger = get_logger(__name__)


class ReEmbedOrchestrator:
    """Creates jobs, spawns their workers and answers status polls."""

    def __init__(
        self,
        settings: Settings,
        *,
        jobs: ReEmbedJobTable,
        config_store: RagConfigStore,
        registry: CredentialRegistry,
        chunk_store: ChunkStore,
        embedder: EmbeddingProvider,
    ):
        self.settings = settings
        self.jobs = jobs
        self.config_store = config_store
        self.registry = registry
        self.chunk_store = chunk_store
        self.embedder = embedder

        self._tasks: dict[UUID, asyncio.Task[ReEmbedJob]] = {}
        self._shutdown_event = asyncio.Event()

    # ---------------- Worker management ----------------

    def _spawn(self, job_id: UUID) -> None:
        worker = ReEmbedWorker(
            job_id,
            settings=self.settings,
            jobs=self.jobs,
            config_store=self.config_store,
            registry=self.registry,
            chunk_store=self.chunk_store,
            embedder=self.embedder,
            shutdown_event=self._shutdown_event,
        )
        task = asyncio.create_task(worker.run(), name=f"reembed-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t, job_id=job_id: self._tasks.pop(job_id, None))
        logger.info(f"Spawned worker for re-embed job {job_id}")

    @property
    def running_workers(self) -> int:
        return len(self._tasks)

    # ---------------- Operations ----------------

    async def trigger(self, project_id: str) -> ReEmbedJob:
        """Create a job bound to the project's current config version and start it.

        Raises:
            ConflictException: If the project already has a non-terminal job.
        """
        async with self.jobs.slot(project_id):
            config = self.config_store.get_config(project_id)
            job = self.jobs.create_if_absent(project_id, config.version, config.embedding_model)

        self._shutdown_event.clear()
        self._spawn(job.id)
        return job

    def cancel(self, job_id: UUID) -> ReEmbedJob:
        """Request cancellation; takes effect at the worker's next checkpoint.

        A RUNNING job without a live worker (paused by shutdown, or its task
        was cancelled) has nobody to observe the request, so it is cancelled
        at once.

        Raises:
            NotFoundException: If the job does not exist.
            ConflictException: If the job is already terminal.
        """
        job = self.jobs.get(job_id)
        if job.state is JobState.RUNNING and job_id not in self._tasks:
            return self.jobs.finish(job_id, JobState.CANCELLED, cause="Cancelled while paused")
        return self.jobs.request_cancel(job_id)

    def get_status(self, job_id: UUID) -> JobStatus:
        return JobStatus.from_job(self.jobs.get(job_id))

    def get_job(self, job_id: UUID) -> ReEmbedJob:
        return self.jobs.get(job_id)

    def latest(self, project_id: str) -> ReEmbedJob | None:
        return self.jobs.latest(project_id)

    def history(self, project_id: str) -> list[ReEmbedJob]:
        return self.jobs.history(project_id)

    async def wait(self, job_id: UUID) -> JobStatus:
        """Wait for the job's worker (if any) to return, then report status."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.get_status(job_id)

    # ---------------- Lifecycle ----------------

    async def recover(self) -> int:
        """Restart workers for non-terminal jobs that have none, resuming from their cursor.

        Returns:
            Number of workers started.
        """
        self._shutdown_event.clear()
        started = 0
        for job in self.jobs.non_terminal():
            if job.id not in self._tasks:
                logger.info(f"Recovering re-embed job {job.id} from cursor {job.cursor}")
                self._spawn(job.id)
                started += 1
        return started

    async def aclose(self) -> None:
        """Stop every worker at its next checkpoint. Jobs stay resumable."""
        if not self._tasks:
            return
        logger.info(f"Stopping {len(self._tasks)} re-embed worker(s)...")
        self._shutdown_event.set()
        await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
        logger.info("All re-embed workers stopped")

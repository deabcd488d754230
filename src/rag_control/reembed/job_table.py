"""Project-keyed job table with a compare-and-set slot per project."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from rag_control.core.constants import STATE_REEMBED_JOB
from rag_control.core.exceptions import ConflictException, NotFoundException
from rag_control.core.logging import get_logger
from rag_control.reembed.models import JobState, ReEmbedJob
from rag_control.services.state_store import QdrantStateStore

logger = get_logger(__name__)


class ReEmbedJobTable:
    """Stores job records and the single active-job slot of each project.

    Anything that must observe "no non-terminal job" and then write (trigger,
    config update) does so while holding :meth:`slot` for the project.
    Terminal records are immutable: any further change raises. With a state
    store, each record (cursor and cancel flag included) is written through
    on every change and reloaded on construction.
    """

    def __init__(self, state: QdrantStateStore | None = None) -> None:
        self._state = state
        self._jobs: dict[UUID, ReEmbedJob] = {}
        self._active: dict[str, UUID] = {}
        self._history: dict[str, list[UUID]] = {}
        self._slots: dict[str, asyncio.Lock] = {}
        self._cancel_requested: set[UUID] = set()
        if state is not None:
            self._load(state)

    def _load(self, state: QdrantStateStore) -> None:
        loaded = [
            (ReEmbedJob.model_validate(data["job"]), bool(data.get("cancel_requested")))
            for data in state.load(STATE_REEMBED_JOB).values()
        ]
        loaded.sort(key=lambda item: item[0].created_at)
        for job, cancel_requested in loaded:
            self._jobs[job.id] = job
            self._history.setdefault(job.project_id, []).append(job.id)
            if not job.state.terminal:
                self._active[job.project_id] = job.id
            if cancel_requested:
                self._cancel_requested.add(job.id)
        logger.info(
            f"Loaded {len(self._jobs)} re-embed job(s), {len(self._active)} non-terminal"
        )

    def _save(self, job: ReEmbedJob) -> None:
        self._jobs[job.id] = job
        if self._state is not None:
            self._state.put(
                STATE_REEMBED_JOB,
                str(job.id),
                {
                    "job": job.model_dump(mode="json"),
                    "cancel_requested": job.id in self._cancel_requested,
                },
            )

    @asynccontextmanager
    async def slot(self, project_id: str) -> AsyncIterator[None]:
        """Hold the project's job slot for a check-then-write sequence."""
        lock = self._slots.setdefault(project_id, asyncio.Lock())
        async with lock:
            yield

    # ---------------- Reads ----------------

    def get(self, job_id: UUID) -> ReEmbedJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundException(f"Re-embed job {job_id} not found")
        return job

    def active_job(self, project_id: str) -> ReEmbedJob | None:
        job_id = self._active.get(project_id)
        return self._jobs[job_id] if job_id is not None else None

    def latest(self, project_id: str) -> ReEmbedJob | None:
        ids = self._history.get(project_id)
        return self._jobs[ids[-1]] if ids else None

    def history(self, project_id: str) -> list[ReEmbedJob]:
        """All jobs of a project, newest first."""
        return [self._jobs[job_id] for job_id in reversed(self._history.get(project_id, []))]

    def non_terminal(self) -> list[ReEmbedJob]:
        return [self._jobs[job_id] for job_id in self._active.values()]

    def cancel_requested(self, job_id: UUID) -> bool:
        return job_id in self._cancel_requested

    # ---------------- Writes ----------------

    def create_if_absent(
        self,
        project_id: str,
        config_version: int,
        embedding_model: str,
    ) -> ReEmbedJob:
        """Create a PENDING job unless the project already has a non-terminal one.

        Raises:
            ConflictException: If a non-terminal job exists for the project.
        """
        existing = self.active_job(project_id)
        if existing is not None:
            raise ConflictException(
                f"Re-embed job {existing.id} is already {existing.state.value} "
                f"for project {project_id}"
            )

        job = ReEmbedJob(
            id=uuid4(),
            project_id=project_id,
            config_version=config_version,
            embedding_model=embedding_model,
            created_at=datetime.now(UTC),
        )
        self._save(job)
        self._active[project_id] = job.id
        self._history.setdefault(project_id, []).append(job.id)
        logger.info(f"Created re-embed job {job.id} for project {project_id} (config v{config_version})")
        return job

    def _replace(self, job_id: UUID, **changes: Any) -> ReEmbedJob:
        current = self.get(job_id)
        if current.state.terminal:
            raise ConflictException(f"Re-embed job {job_id} is {current.state.value} and immutable")

        job = current.model_copy(update=changes)
        if job.state.terminal:
            if self._active.get(job.project_id) == job_id:
                del self._active[job.project_id]
            self._cancel_requested.discard(job_id)
        self._save(job)
        return job

    def claim(self, job_id: UUID) -> bool:
        """Move PENDING to RUNNING. Returns False if the job is no longer runnable.

        A RUNNING job is claimable again so a recovered worker can resume it.
        """
        job = self.get(job_id)
        if job.state.terminal:
            return False
        if job.state is JobState.PENDING:
            self._replace(job_id, state=JobState.RUNNING, started_at=datetime.now(UTC))
        return True

    def set_total(self, job_id: UUID, total: int) -> ReEmbedJob:
        return self._replace(job_id, total=total)

    def checkpoint(
        self,
        job_id: UUID,
        *,
        cursor: str,
        processed: int,
        failed_count: int,
    ) -> ReEmbedJob:
        """Persist progress after one chunk. Progress never moves backwards."""
        current = self.get(job_id)
        if processed < current.processed or failed_count < current.failed_count:
            raise ValueError(f"Progress of job {job_id} must be monotonic")
        return self._replace(
            job_id,
            cursor=cursor,
            processed=processed,
            failed_count=failed_count,
            total=max(current.total, processed),
        )

    def finish(self, job_id: UUID, state: JobState, cause: str | None = None) -> ReEmbedJob:
        if not state.terminal:
            raise ValueError(f"{state.value} is not a terminal state")
        job = self._replace(job_id, state=state, cause=cause, finished_at=datetime.now(UTC))
        logger.info(
            f"Re-embed job {job_id} finished {state.value}: "
            f"{job.processed}/{job.total} processed, {job.failed_count} failed"
            + (f" ({cause})" if cause else "")
        )
        return job

    def request_cancel(self, job_id: UUID) -> ReEmbedJob:
        """Ask a job to stop at its next checkpoint.

        A PENDING job has no work in flight, so it is cancelled at once.

        Raises:
            NotFoundException: If the job does not exist.
            ConflictException: If the job is already terminal.
        """
        job = self.get(job_id)
        if job.state.terminal:
            raise ConflictException(f"Re-embed job {job_id} is already {job.state.value}")
        if job.state is JobState.PENDING:
            return self.finish(job_id, JobState.CANCELLED, cause="Cancelled before start")
        self._cancel_requested.add(job_id)
        self._save(job)
        logger.info(f"Cancellation requested for re-embed job {job_id}")
        return job

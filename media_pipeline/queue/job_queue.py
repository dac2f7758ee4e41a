"""Single-concurrency FIFO job queue.

Jobs submitted from any coroutine are started strictly in submission
order, one at a time. Each submission gets an asyncio.Future that is
settled exactly once with the job's result or exception; a failing job
never affects the jobs queued behind it.

The queue is an explicit value: build one at process start and hand it
to every submitter.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from media_pipeline.utils.errors import PipelineError

logger = logging.getLogger(__name__)


@dataclass
class Job:
    """A queued unit of work and its completion handle."""

    job_id: str
    task: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    submitted_at: datetime


@dataclass
class QueueStatus:
    """Point-in-time snapshot of the queue."""

    queue_length: int
    processing: bool
    current_job_id: str | None
    current_started_at: datetime | None


class JobQueue:
    """Runs submitted jobs one at a time in submission order.

    A worker task is started on the first submission and exits once the
    queue drains; the next submission starts a new one. Must be used from
    a single event loop.
    """

    def __init__(self) -> None:
        self._pending: asyncio.Queue[Job] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._current: Job | None = None
        self._current_started_at: datetime | None = None
        self._closed = False

    def submit(
        self, task: Callable[[], Awaitable[Any]], job_id: str | None = None
    ) -> asyncio.Future:
        """Enqueue ``task`` and return the future that will carry its outcome.

        Never blocks and never runs ``task`` inline; ``task`` is called
        only when every earlier job has settled.

        Raises:
            PipelineError: If the queue has been closed.
        """
        if self._closed:
            raise PipelineError("Job queue is closed", job_id=job_id)

        loop = asyncio.get_running_loop()
        job = Job(
            job_id=job_id or uuid.uuid4().hex,
            task=task,
            future=loop.create_future(),
            submitted_at=datetime.now(UTC),
        )
        self._pending.put_nowait(job)
        logger.info(
            "Job enqueued. Queue length: %d",
            self._pending.qsize(),
            extra={"job_id": job.job_id},
        )

        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain(), name="job-queue-worker")
        return job.future

    async def _drain(self) -> None:
        while not self._pending.empty():
            job = self._pending.get_nowait()
            try:
                await self._run_job(job)
            finally:
                self._pending.task_done()

    async def _run_job(self, job: Job) -> None:
        if job.future.done():
            # Submitter cancelled the future before the job's turn came
            logger.info("Skipping cancelled job", extra={"job_id": job.job_id})
            return

        self._current = job
        self._current_started_at = datetime.now(UTC)
        start = time.monotonic()
        logger.info(
            "Processing job. Queue remaining: %d",
            self._pending.qsize(),
            extra={"job_id": job.job_id},
        )

        try:
            result = await job.task()
        except asyncio.CancelledError:
            if not job.future.done():
                job.future.cancel()
            worker = asyncio.current_task()
            if self._closed or (worker is not None and worker.cancelling()):
                raise
            # The task itself was cancelled; the worker carries on
            logger.info("Job cancelled", extra={"job_id": job.job_id})
        except Exception as exc:
            elapsed = time.monotonic() - start
            logger.info(
                "Job failed after %.2fs: %s",
                elapsed,
                exc,
                extra={"job_id": job.job_id, "duration_seconds": round(elapsed, 3)},
            )
            if not job.future.done():
                job.future.set_exception(exc)
        else:
            elapsed = time.monotonic() - start
            logger.info(
                "Job completed successfully in %.2fs",
                elapsed,
                extra={"job_id": job.job_id, "duration_seconds": round(elapsed, 3)},
            )
            if not job.future.done():
                job.future.set_result(result)
        finally:
            self._current = None
            self._current_started_at = None

    def status(self) -> QueueStatus:
        current = self._current
        return QueueStatus(
            queue_length=self._pending.qsize(),
            processing=current is not None,
            current_job_id=current.job_id if current else None,
            current_started_at=self._current_started_at,
        )

    async def join(self) -> None:
        """Wait until every submitted job has settled."""
        await self._pending.join()

    async def close(self) -> None:
        """Stop accepting jobs, cancel the running one and any still queued."""
        self._closed = True
        while not self._pending.empty():
            job = self._pending.get_nowait()
            job.future.cancel()
            self._pending.task_done()

        worker = self._worker
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        logger.info("Job queue closed")

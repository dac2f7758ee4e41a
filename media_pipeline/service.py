"""Submission front door for media analysis jobs.

MediaAnalysisService checks configuration and the upload itself before
anything is queued, then hands the pipeline run to the shared JobQueue.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

from media_pipeline.config import ServiceConfig
from media_pipeline.pipeline import PipelineOrchestrator, PipelineResult
from media_pipeline.queue.job_queue import JobQueue
from media_pipeline.transcription.interface import MediaFile
from media_pipeline.transcription.validation import validate_media_file
from media_pipeline.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


class MediaAnalysisService:
    """Queues transcribe-then-analyze runs behind a single-concurrency queue.

    Args:
        config: Service configuration; without an API key every submission
            is rejected.
        queue: The process-wide JobQueue.
        orchestrator: Pipeline to run for each job. May be None only when
            the service is unconfigured.
    """

    def __init__(
        self,
        config: ServiceConfig,
        queue: JobQueue,
        orchestrator: PipelineOrchestrator | None,
    ) -> None:
        self._config = config
        self._queue = queue
        self._orchestrator = orchestrator

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured and self._orchestrator is not None

    def submit(
        self, media: MediaFile, metadata: dict | None = None
    ) -> asyncio.Future[PipelineResult]:
        """Validate ``media`` and queue a pipeline run for it.

        Returns:
            Future resolved with the PipelineResult, or rejected with the
            pipeline's ClassifiedError.

        Raises:
            ConfigurationError: If the service has no API credential.
            ClassifiedError: CLIENT_FAILURE if the upload fails validation.
        """
        if not self.is_configured:
            raise ConfigurationError(
                "Media analysis is not configured. Set OPENAI_API_KEY.",
                setting="OPENAI_API_KEY",
            )

        validate_media_file(media)

        job_id = uuid.uuid4().hex
        submitted = time.monotonic()
        orchestrator = self._orchestrator

        async def run_pipeline() -> PipelineResult:
            return await orchestrator.run(
                media,
                metadata,
                job_id=job_id,
                queue_wait_time_seconds=time.monotonic() - submitted,
            )

        logger.info("Submitting %s", media.filename, extra={"job_id": job_id})
        return self._queue.submit(run_pipeline, job_id=job_id)

"""Pipeline orchestrator for media analysis jobs.

Contains the PipelineResult data model and PipelineOrchestrator, which
runs transcription followed by analysis for one uploaded file.
Classified failures from either step are re-raised unchanged so the
submitter can tell billing, usage-limit and network failures apart.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from media_pipeline.analysis.interface import AnalysisEngine, HighlightSegment
from media_pipeline.observability.metrics import JobMetrics, StageTimer, log_job_metrics
from media_pipeline.transcription.interface import (
    MediaFile,
    Transcript,
    TranscriptionEngine,
    TranscriptSegment,
)
from media_pipeline.utils.errors import ClassifiedError, ErrorCategory

logger = logging.getLogger(__name__)

EMPTY_TRANSCRIPT_MESSAGE = (
    "Transcription returned empty text. The audio may be too quiet or unclear."
)


@dataclass
class PipelineResult:
    """Transcription and analysis output returned to the job submitter."""

    transcript: str
    transcript_segments: list[TranscriptSegment]
    duration_seconds: float
    summary: str
    highlights: list[str]
    segments: list[HighlightSegment]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PipelineOrchestrator:
    """Sequences the transcription and analysis steps for one file.

    Args:
        transcriber: Speech-to-text engine.
        analyzer: Transcript analysis engine.
    """

    def __init__(
        self, transcriber: TranscriptionEngine, analyzer: AnalysisEngine
    ) -> None:
        self._transcriber = transcriber
        self._analyzer = analyzer

    async def run(
        self,
        media: MediaFile,
        metadata: dict | None = None,
        job_id: str = "",
        queue_wait_time_seconds: float = 0.0,
    ) -> PipelineResult:
        """Transcribe then analyze ``media``.

        Args:
            media: The uploaded file.
            metadata: Job metadata passed to the transcription engine.
            job_id: Identifier used in logs and metrics.
            queue_wait_time_seconds: Time the job spent queued before
                starting (reported in metrics).

        Returns:
            PipelineResult combining transcript and analysis fields.

        Raises:
            ClassifiedError: CLIENT_FAILURE when transcription yields no
                text (analysis is skipped); otherwise the failing step's
                error, unchanged.
        """
        wall_start = time.monotonic()
        transcription_timer = StageTimer("transcription")
        analysis_timer = StageTimer("analysis")
        transcript: Transcript | None = None
        stage = "transcription"

        logger.info(
            "Starting media analysis pipeline for %s",
            media.filename,
            extra={"job_id": job_id},
        )

        try:
            with transcription_timer:
                transcript = await self._transcriber.transcribe(media, metadata or {})

            if not transcript.text.strip():
                raise ClassifiedError(
                    EMPTY_TRANSCRIPT_MESSAGE,
                    category=ErrorCategory.CLIENT_FAILURE,
                    retryable=False,
                    context="transcription",
                )

            stage = "analysis"
            with analysis_timer:
                analysis = await self._analyzer.analyze(transcript)

        except Exception as exc:
            wall_time = time.monotonic() - wall_start
            self._log_failure(exc, stage, job_id, wall_time)
            log_job_metrics(
                self._build_metrics(
                    job_id=job_id,
                    status="failed",
                    media=media,
                    transcript=transcript,
                    highlight_count=0,
                    wall_time=wall_time,
                    transcription_timer=transcription_timer,
                    analysis_timer=analysis_timer,
                    queue_wait_time_seconds=queue_wait_time_seconds,
                    error=exc,
                    error_stage=stage,
                )
            )
            raise

        wall_time = time.monotonic() - wall_start
        logger.info(
            "Pipeline finished in %.2fs",
            wall_time,
            extra={"job_id": job_id, "duration_seconds": round(wall_time, 3)},
        )
        log_job_metrics(
            self._build_metrics(
                job_id=job_id,
                status="completed",
                media=media,
                transcript=transcript,
                highlight_count=len(analysis.highlights),
                wall_time=wall_time,
                transcription_timer=transcription_timer,
                analysis_timer=analysis_timer,
                queue_wait_time_seconds=queue_wait_time_seconds,
            )
        )

        return PipelineResult(
            transcript=transcript.text,
            transcript_segments=transcript.segments,
            duration_seconds=transcript.duration_seconds,
            summary=analysis.summary,
            highlights=analysis.highlights,
            segments=analysis.segments,
        )

    @staticmethod
    def _log_failure(
        exc: Exception, stage: str, job_id: str, wall_time: float
    ) -> None:
        extra = {"job_id": job_id, "stage": stage, "error": str(exc)}
        if not isinstance(exc, ClassifiedError):
            logger.error(
                "Pipeline failed at stage '%s' after %.2fs",
                stage,
                wall_time,
                exc_info=True,
                extra=extra,
            )
            return

        extra["category"] = exc.category.value
        if exc.category is ErrorCategory.BILLING_QUOTA:
            logger.warning(
                "Billing failure after %.2fs: %s", wall_time, exc.message, extra=extra
            )
        elif exc.category is ErrorCategory.USAGE_LIMIT:
            logger.warning(
                "Usage limit hit after %.2fs: %s", wall_time, exc.message, extra=extra
            )
        else:
            logger.error(
                "Pipeline failed at stage '%s' after %.2fs (%s, status=%s): %s",
                stage,
                wall_time,
                exc.category.value,
                exc.http_status,
                exc.message,
                extra=extra,
            )

    @staticmethod
    def _build_metrics(
        job_id: str,
        status: str,
        media: MediaFile,
        transcript: Transcript | None,
        highlight_count: int,
        wall_time: float,
        transcription_timer: StageTimer,
        analysis_timer: StageTimer,
        queue_wait_time_seconds: float,
        error: Exception | None = None,
        error_stage: str | None = None,
    ) -> JobMetrics:
        retry_count = 0
        error_category = None
        if isinstance(error, ClassifiedError):
            retry_count = max(0, error.attempts - 1)
            error_category = error.category.value

        return JobMetrics(
            job_id=job_id,
            status=status,
            filename=media.filename,
            file_size_bytes=media.size_bytes,
            media_duration_seconds=transcript.duration_seconds if transcript else 0.0,
            transcript_chars=len(transcript.text) if transcript else 0,
            transcript_segment_count=len(transcript.segments) if transcript else 0,
            highlight_count=highlight_count,
            processing_wall_time_seconds=wall_time,
            transcription_duration_seconds=transcription_timer.duration_seconds,
            analysis_duration_seconds=analysis_timer.duration_seconds,
            queue_wait_time_seconds=queue_wait_time_seconds,
            retry_count=retry_count,
            error_stage=error_stage if error is not None else None,
            error_category=error_category,
            error_message=str(error) if error is not None else None,
        )

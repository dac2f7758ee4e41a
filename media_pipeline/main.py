"""Command-line entry point for the media analysis pipeline.

Builds the process-wide JobQueue and the pipeline from environment
configuration, submits every file given on the command line at once and
prints one JSON line per file as the jobs settle in order.
"""

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path

from media_pipeline.analysis.chat import ChatAnalysisEngine
from media_pipeline.config import ServiceConfig, get_config
from media_pipeline.observability.logger import configure_logging
from media_pipeline.pipeline import PipelineOrchestrator
from media_pipeline.queue.job_queue import JobQueue
from media_pipeline.service import MediaAnalysisService
from media_pipeline.transcription.interface import MediaFile
from media_pipeline.transcription.registry import get_transcription_engine
from media_pipeline.utils.errors import (
    ClassifiedError,
    ConfigurationError,
    PipelineError,
    user_message,
)

logger = logging.getLogger(__name__)

EXIT_FAILED_JOBS = 1
EXIT_NOT_CONFIGURED = 2


def load_media_file(path: Path) -> MediaFile:
    mime_type, _ = mimetypes.guess_type(path.name)
    return MediaFile(
        filename=path.name,
        content=path.read_bytes(),
        mime_type=mime_type or "application/octet-stream",
    )


def build_service(config: ServiceConfig, queue: JobQueue) -> MediaAnalysisService:
    """Wire engines, orchestrator and queue into a MediaAnalysisService."""
    if not config.is_configured:
        return MediaAnalysisService(config, queue, orchestrator=None)

    transcriber = get_transcription_engine(
        config.transcription_provider,
        api_key=config.api_key,
        base_url=config.base_url,
        model=config.transcription_model,
    )
    analyzer = ChatAnalysisEngine(
        api_key=config.api_key,
        base_url=config.base_url,
        model=config.analysis_model,
    )
    return MediaAnalysisService(config, queue, PipelineOrchestrator(transcriber, analyzer))


def _error_line(filename: str, error: Exception) -> dict:
    if isinstance(error, ClassifiedError):
        return {
            "file": filename,
            "status": "failed",
            "error": error.to_dict(),
            "user_message": user_message(error),
        }
    return {"file": filename, "status": "failed", "error": {"message": str(error)}}


async def _run(service: MediaAnalysisService, paths: list[Path], metadata: dict) -> int:
    """Submit every file, then report each outcome in submission order."""
    submitted: list[tuple[str, asyncio.Future]] = []
    failures = 0

    for path in paths:
        try:
            media = load_media_file(path)
            submitted.append((media.filename, service.submit(media, metadata)))
        except (OSError, PipelineError) as exc:
            logger.error("Could not submit %s: %s", path, exc)
            print(json.dumps(_error_line(path.name, exc)))
            failures += 1

    for filename, future in submitted:
        try:
            result = await future
        except PipelineError as exc:
            print(json.dumps(_error_line(filename, exc)))
            failures += 1
        else:
            print(json.dumps({"file": filename, "status": "completed", **result.to_dict()}))

    return EXIT_FAILED_JOBS if failures else 0


def main(argv: list[str] | None = None) -> int:
    """Transcribe and analyze the given media files."""
    parser = argparse.ArgumentParser(
        description="Transcribe and analyze audio/video files one at a time."
    )
    parser.add_argument("files", nargs="+", type=Path, help="Audio or video files")
    parser.add_argument("--language", default="en", help="Source language hint")
    args = parser.parse_args(argv)

    configure_logging()
    config = get_config()
    if not config.is_configured:
        logger.error("OPENAI_API_KEY is not set; media analysis is unavailable")
        return EXIT_NOT_CONFIGURED

    async def run() -> int:
        queue = JobQueue()
        service = build_service(config, queue)
        try:
            return await _run(service, args.files, {"language": args.language})
        finally:
            await queue.close()

    try:
        return asyncio.run(run())
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_NOT_CONFIGURED


if __name__ == "__main__":
    sys.exit(main())

"""Speech-to-text modules."""

from media_pipeline.transcription.registry import get_transcription_engine

__all__ = ["get_transcription_engine"]

"""Transcript analysis modules."""

from media_pipeline.analysis.interface import (
    AnalysisEngine,
    AnalysisResult,
    HighlightSegment,
)

__all__ = ["AnalysisEngine", "AnalysisResult", "HighlightSegment"]

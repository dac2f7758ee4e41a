"""Abstract transcript analysis interface.

Defines the AnalysisEngine ABC and the analysis data models.
Concrete implementations (e.g., ChatAnalysisEngine) subclass AnalysisEngine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from media_pipeline.transcription.interface import Transcript


@dataclass
class HighlightSegment:
    """Publishing metadata for one highlight of the media."""

    start_time: float
    end_time: float
    title: str
    caption: str
    description: str
    hashtags: list[str] = field(default_factory=list)
    hook: str = ""


@dataclass
class AnalysisResult:
    """Summary, highlight list and per-highlight metadata."""

    summary: str
    highlights: list[str]
    segments: list[HighlightSegment]


class AnalysisEngine(ABC):
    """Abstract base class for transcript analysis engine implementations.

    Subclasses must implement the analyze() method.
    """

    @abstractmethod
    async def analyze(self, transcript: Transcript) -> AnalysisResult:
        """Analyze a transcript and derive highlights.

        Args:
            transcript: Transcript with text, timed segments and duration.

        Returns:
            AnalysisResult with summary, highlights and highlight segments.
        """

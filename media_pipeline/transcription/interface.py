"""Abstract transcription engine interface.

Defines the TranscriptionEngine ABC and the media/transcript data models.
Concrete implementations (e.g., Whisper) subclass TranscriptionEngine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class MediaFile:
    """An uploaded audio or video file held in memory."""

    filename: str
    content: bytes
    mime_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass
class TranscriptSegment:
    """A timed span of transcribed speech."""

    start: float
    end: float
    text: str


@dataclass
class Transcript:
    """Complete transcript with timed segments."""

    text: str
    segments: list[TranscriptSegment]
    duration_seconds: float
    raw_response: dict = field(default_factory=dict)


class TranscriptionEngine(ABC):
    """Abstract base class for speech-to-text engine implementations.

    Subclasses must implement the transcribe() method.
    """

    @abstractmethod
    async def transcribe(self, media: MediaFile, metadata: dict) -> Transcript:
        """Transcribe a media file and return a structured transcript.

        Args:
            media: The uploaded audio or video file.
            metadata: Job metadata for context (e.g., language hints).

        Returns:
            Transcript with text, timed segments and media duration.
        """

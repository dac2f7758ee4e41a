"""Prompt construction and response cleanup for transcript analysis.

The transcript and segment previews are truncated before they are sent
so requests stay small and fast.
"""

import re

from media_pipeline.transcription.interface import Transcript, TranscriptSegment

MAX_TRANSCRIPT_CHARS = 1000
MAX_PROMPT_SEGMENTS = 10
MAX_SEGMENT_PREVIEW_CHARS = 60

TRUNCATION_SUFFIX = "... [truncated]"
PREVIEW_SUFFIX = "..."

SYSTEM_PROMPT = (
    "You are a professional video content analyst. "
    "Always return valid JSON only, no markdown formatting."
)

RESPONSE_SCHEMA = """{
  "summary": "2-3 sentence summary",
  "highlights": ["highlight 1", "highlight 2"],
  "segments": [{
    "startTime": 0,
    "endTime": 0,
    "title": "title",
    "caption": "caption",
    "description": "description",
    "hashtags": ["tag1"],
    "hook": "hook text"
  }]
}"""

_CODE_FENCE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)


def format_timestamp(seconds: float) -> str:
    """Format seconds as M:SS."""
    total_seconds = max(0, int(seconds))
    minutes = total_seconds // 60
    secs = total_seconds % 60
    return f"{minutes}:{secs:02d}"


def truncate_transcript(text: str, limit: int = MAX_TRANSCRIPT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_SUFFIX


def preview_segments(
    segments: list[TranscriptSegment],
    max_segments: int = MAX_PROMPT_SEGMENTS,
    max_chars: int = MAX_SEGMENT_PREVIEW_CHARS,
) -> str:
    """Render the first ``max_segments`` segments as numbered preview lines.

    Example line: ``[1] 0:00-0:04: Welcome back to the channel``
    """
    lines: list[str] = []
    for index, segment in enumerate(segments[:max_segments], start=1):
        text = segment.text
        if len(text) > max_chars:
            text = text[:max_chars] + PREVIEW_SUFFIX
        lines.append(
            f"[{index}] {format_timestamp(segment.start)}-"
            f"{format_timestamp(segment.end)}: {text}"
        )
    return "\n".join(lines)


def build_analysis_prompt(transcript: Transcript) -> str:
    return (
        "Analyze video and generate highlights.\n\n"
        f"TRANSCRIPT: {truncate_transcript(transcript.text)}\n"
        f"SEGMENTS: {preview_segments(transcript.segments)}\n"
        f"DURATION: {format_timestamp(transcript.duration_seconds)}\n\n"
        f"Return JSON:\n{RESPONSE_SCHEMA}"
    )


def strip_code_fences(content: str) -> str:
    """Remove markdown code-fence markers the model may wrap JSON in."""
    return _CODE_FENCE.sub("", content).strip()

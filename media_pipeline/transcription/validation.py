"""Pre-flight validation of uploaded media files.

Checks run before any network call so that an unusable upload fails
immediately, without consuming a retry attempt or an API request.
"""

import logging

from media_pipeline.transcription.interface import MediaFile
from media_pipeline.utils.errors import ClassifiedError, ErrorCategory

logger = logging.getLogger(__name__)

# Hard upload limit of the speech-to-text service
MAX_FILE_SIZE_MB = 25
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024

SUPPORTED_AUDIO_FORMATS: tuple[str, ...] = (
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/webm",
    "audio/m4a",
    "audio/ogg",
)
SUPPORTED_VIDEO_FORMATS: tuple[str, ...] = (
    "video/mp4",
    "video/webm",
    "video/quicktime",
    "video/x-msvideo",
    "video/mpeg",
)

_SUPPORTED_SUBTYPES = frozenset(
    fmt.split("/", 1)[1] for fmt in SUPPORTED_AUDIO_FORMATS + SUPPORTED_VIDEO_FORMATS
)


def _validation_error(message: str) -> ClassifiedError:
    return ClassifiedError(
        message,
        category=ErrorCategory.CLIENT_FAILURE,
        retryable=False,
        http_status=400,
        attempts=0,
        context="validation",
    )


def is_supported_mime_type(mime_type: str) -> bool:
    """Return True for audio/* or video/* types with a recognized subtype.

    Subtypes match by containment so vendor variants such as
    ``audio/x-m4a`` are accepted. Parameters (``; codecs=...``) are ignored.
    """
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    family, _, subtype = base.partition("/")
    if family not in ("audio", "video") or not subtype:
        return False
    return any(supported in subtype for supported in _SUPPORTED_SUBTYPES)


def validate_media_file(media: MediaFile) -> None:
    """Validate an upload against the speech-to-text service's limits.

    Args:
        media: The uploaded file.

    Raises:
        ClassifiedError: CLIENT_FAILURE when the file is empty, larger than
            MAX_FILE_SIZE_MB, or not a recognized audio/video format.
    """
    if not media.content:
        raise _validation_error(
            "File is empty. Please upload a valid audio or video file."
        )

    size_mb = media.size_bytes / (1024 * 1024)
    if media.size_bytes > MAX_FILE_SIZE_BYTES:
        raise _validation_error(
            f"File is too large ({size_mb:.2f}MB). Maximum size is "
            f"{MAX_FILE_SIZE_MB}MB. Please compress or use a shorter file."
        )

    if not is_supported_mime_type(media.mime_type):
        supported = ", ".join(SUPPORTED_AUDIO_FORMATS + SUPPORTED_VIDEO_FORMATS)
        raise _validation_error(
            f"Unsupported file format: {media.mime_type}. "
            f"Supported formats: {supported}"
        )

    logger.info(
        "File validated: %s (%.2fMB, %s)", media.filename, size_mb, media.mime_type
    )

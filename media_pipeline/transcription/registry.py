"""Transcription provider lookup for the TRANSCRIPTION_PROVIDER setting.

Whisper is the only registered provider. main.build_service resolves the
configured name here, so a misspelled provider fails at startup with a
ConfigurationError instead of at the first transcription.
"""

from media_pipeline.transcription.interface import TranscriptionEngine
from media_pipeline.transcription.whisper import WhisperEngine
from media_pipeline.utils.errors import ConfigurationError

TRANSCRIPTION_ENGINES: dict[str, type[TranscriptionEngine]] = {
    "whisper": WhisperEngine,
}


def get_transcription_engine(provider: str, **kwargs: object) -> TranscriptionEngine:
    """Create a transcription engine instance by provider name.

    Args:
        provider: Provider name; only "whisper" is registered.
        **kwargs: Engine-specific configuration passed to the constructor.

    Returns:
        An initialized TranscriptionEngine instance.

    Raises:
        ConfigurationError: For any name other than "whisper".
    """
    engine_cls = TRANSCRIPTION_ENGINES.get(provider)
    if not engine_cls:
        available = ", ".join(sorted(TRANSCRIPTION_ENGINES.keys()))
        raise ConfigurationError(
            f"Unknown transcription provider: '{provider}'. Available: {available}",
            setting="TRANSCRIPTION_PROVIDER",
        )
    return engine_cls(**kwargs)

"""Factory for speech-to-text backend adapters."""

from __future__ import annotations

from functools import lru_cache

from capture_bridge.transcription.backends.base import ModelAdapter
from capture_bridge.transcription.errors import ModelLoadError


@lru_cache(maxsize=2)
def _build_adapter(backend_id: str) -> ModelAdapter:
    """Builds one backend adapter lazily to avoid importing unused heavy stacks."""
    if backend_id == "stable_whisper":
        from capture_bridge.transcription.backends.stable_whisper import (
            StableWhisperAdapter,
        )

        return StableWhisperAdapter()
    if backend_id == "faster_whisper":
        from capture_bridge.transcription.backends.faster_whisper import (
            FasterWhisperAdapter,
        )

        return FasterWhisperAdapter()
    raise KeyError(backend_id)


def resolve_model_adapter(backend_id: str) -> ModelAdapter:
    """Returns one adapter implementation for the requested backend id."""
    try:
        return _build_adapter(backend_id)
    except KeyError as err:
        raise ModelLoadError(
            f"Unsupported transcription backend id configured: {backend_id!r}."
        ) from err

"""Adapter contracts for speech-to-text backends."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from capture_bridge.config import ModelConfig
from capture_bridge.domain import BackendId, ModelTranscription, TranscriptionOptions


@dataclass(frozen=True, slots=True)
class ModelHandle:
    """Loaded speech-to-text model shared read-only across jobs."""

    backend_id: BackendId
    model_name: str
    device: str
    model: object
    loaded_at: datetime
    load_duration_ms: float


class ModelAdapter(Protocol):
    """Stable adapter boundary for speech-to-text backend integrations.

    `load` raises `ModelLoadError` when the model cannot be made available.
    `transcribe` raises `CorruptAudioError` for audio the backend cannot
    decode; any other exception is treated as a model-layer failure.
    """

    @property
    def backend_id(self) -> BackendId:
        """Returns canonical backend identifier."""
        ...

    def load(self, config: ModelConfig) -> object:
        """Loads and returns one backend model object."""
        ...

    def transcribe(
        self,
        model: object,
        audio_path: str,
        options: TranscriptionOptions,
    ) -> ModelTranscription:
        """Runs one transcription call on a local audio file."""
        ...

"""Faster-whisper transcription adapter."""

from __future__ import annotations

import importlib
import os
from collections.abc import Iterable
from time import perf_counter
from types import ModuleType

from capture_bridge.config import ModelConfig
from capture_bridge.domain import BackendId, ModelTranscription, TranscriptionOptions
from capture_bridge.transcription.errors import CorruptAudioError, ModelLoadError
from capture_bridge.utils.logger import get_logger

logger = get_logger(__name__)

_MISSING_DEPENDENCY_MESSAGE = (
    "Missing faster-whisper dependencies for transcription backend "
    "'faster_whisper'. Install the `faster` extra or switch to `stable_whisper`."
)


def _import_faster_whisper() -> ModuleType:
    try:
        return importlib.import_module("faster_whisper")
    except ModuleNotFoundError as err:
        raise ModelLoadError(_MISSING_DEPENDENCY_MESSAGE) from err


class FasterWhisperAdapter:
    """Adapter for CTranslate2-based faster-whisper inference."""

    @property
    def backend_id(self) -> BackendId:
        return "faster_whisper"

    def load(self, config: ModelConfig) -> object:
        """Loads one faster-whisper model with int8 CPU compute."""
        whisper_model = getattr(_import_faster_whisper(), "WhisperModel", None)
        if whisper_model is None:
            raise ModelLoadError("faster-whisper package does not expose WhisperModel.")
        os.makedirs(config.download_root, exist_ok=True)
        try:
            return whisper_model(
                config.model_name,
                device=config.device,
                compute_type="int8",
                download_root=str(config.download_root),
            )
        except Exception as err:
            logger.error("Failed to load faster-whisper model: %s", err, exc_info=True)
            raise ModelLoadError(
                f"Failed to load model {config.model_name!r}: {err}"
            ) from err

    def transcribe(
        self,
        model: object,
        audio_path: str,
        options: TranscriptionOptions,
    ) -> ModelTranscription:
        """Runs one faster-whisper call and joins segment text."""
        transcribe = getattr(model, "transcribe", None)
        if not callable(transcribe):
            raise RuntimeError(
                "Loaded faster-whisper model does not expose a callable transcribe()."
            )
        started_at = perf_counter()
        try:
            segments, _info = transcribe(
                audio_path,
                language=options.language,
                word_timestamps=options.word_timestamps,
                vad_filter=True,
            )
            # Segments are a lazy generator; decoding happens while iterating.
            text = _join_segments(segments)
        except Exception as err:
            if _is_decode_failure(err):
                raise CorruptAudioError(
                    f"Audio could not be decoded: {audio_path}"
                ) from err
            raise
        return ModelTranscription(
            text=text,
            duration_ms=(perf_counter() - started_at) * 1000.0,
        )


def _join_segments(segments: Iterable[object]) -> str:
    parts = [str(getattr(segment, "text", "")).strip() for segment in segments]
    return " ".join(part for part in parts if part)


def _is_decode_failure(err: Exception) -> bool:
    """Returns whether a PyAV/ffmpeg error indicates undecodable input."""
    module_name = type(err).__module__ or ""
    message = " ".join(str(err).split()).lower()
    if module_name.startswith("av") and "invalid data" in message:
        return True
    return "invalid data found when processing input" in message

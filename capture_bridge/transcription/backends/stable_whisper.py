"""Stable-whisper (stable-ts) transcription adapter."""

from __future__ import annotations

import importlib
import os
import warnings
from collections.abc import Callable
from time import perf_counter
from types import ModuleType
from typing import cast

from capture_bridge.config import ModelConfig
from capture_bridge.domain import BackendId, ModelTranscription, TranscriptionOptions
from capture_bridge.transcription.errors import CorruptAudioError, ModelLoadError
from capture_bridge.utils.logger import get_logger

logger = get_logger(__name__)

_AUDIO_DECODE_MARKERS: tuple[str, ...] = (
    "failed to load audio",
    "invalid data found when processing input",
)


def _import_stable_whisper() -> ModuleType:
    try:
        return importlib.import_module("stable_whisper")
    except ModuleNotFoundError as err:
        raise ModelLoadError(
            "Missing stable-whisper dependencies. Install stable-ts and "
            "openai-whisper or switch CAPTURE_WHISPER_BACKEND."
        ) from err


class StableWhisperAdapter:
    """Adapter for local Whisper inference through stable-ts."""

    @property
    def backend_id(self) -> BackendId:
        return "stable_whisper"

    def load(self, config: ModelConfig) -> object:
        """Loads one stable-whisper model into memory."""
        stable_whisper = _import_stable_whisper()
        load_model = getattr(stable_whisper, "load_model", None)
        if not callable(load_model):
            raise ModelLoadError(
                "stable-whisper package does not expose a callable load_model()."
            )
        os.makedirs(config.download_root, exist_ok=True)
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", module="stable_whisper")
                return load_model(
                    name=config.model_name,
                    device=config.device,
                    dq=False,
                    download_root=str(config.download_root),
                    in_memory=True,
                )
        except Exception as err:
            logger.error("Failed to load Whisper model: %s", err, exc_info=True)
            raise ModelLoadError(
                f"Failed to load model {config.model_name!r}: {err}"
            ) from err

    def transcribe(
        self,
        model: object,
        audio_path: str,
        options: TranscriptionOptions,
    ) -> ModelTranscription:
        """Runs one stable-whisper transcription call and returns its text."""
        transcribe = getattr(model, "transcribe", None)
        if not callable(transcribe):
            raise RuntimeError(
                "Loaded stable-whisper model does not expose a callable transcribe()."
            )
        typed_transcribe = cast(Callable[..., object], transcribe)
        started_at = perf_counter()
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore")
                result = typed_transcribe(
                    audio=audio_path,
                    language=options.language,
                    verbose=options.verbose,
                    word_timestamps=options.word_timestamps,
                )
        except RuntimeError as err:
            message = " ".join(str(err).split()).lower()
            if any(marker in message for marker in _AUDIO_DECODE_MARKERS):
                raise CorruptAudioError(
                    f"Audio could not be decoded: {audio_path}"
                ) from err
            raise
        return ModelTranscription(
            text=_result_text(result),
            duration_ms=(perf_counter() - started_at) * 1000.0,
        )


def _result_text(result: object) -> str:
    """Extracts plain text from a WhisperResult or a raw whisper dict."""
    if isinstance(result, dict):
        text = result.get("text", "")
    else:
        text = getattr(result, "text", None)
    if not isinstance(text, str):
        raise RuntimeError("Unexpected transcription result type from stable-whisper.")
    return text.strip()

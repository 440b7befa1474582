"""Tests for backend adapter resolution and library translation."""

from __future__ import annotations

import importlib
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from capture_bridge.config import ModelConfig
from capture_bridge.domain import TranscriptionOptions
from capture_bridge.transcription.backends import faster_whisper as faster_backend
from capture_bridge.transcription.backends import resolve_model_adapter
from capture_bridge.transcription.backends import stable_whisper as stable_backend
from capture_bridge.transcription.errors import CorruptAudioError, ModelLoadError


def test_factory_resolves_faster_adapter_without_importing_stable_backend() -> None:
    """Resolving the faster adapter should not import the stable backend module."""
    module_names = (
        "capture_bridge.transcription.backends.factory",
        "capture_bridge.transcription.backends.stable_whisper",
    )
    removed_modules = {
        module_name: sys.modules.pop(module_name, None) for module_name in module_names
    }
    try:
        factory = importlib.import_module(
            "capture_bridge.transcription.backends.factory"
        )
        reloaded_factory = importlib.reload(factory)

        adapter = reloaded_factory.resolve_model_adapter("faster_whisper")

        assert adapter.backend_id == "faster_whisper"
        assert "capture_bridge.transcription.backends.stable_whisper" not in sys.modules
    finally:
        for module_name, module in removed_modules.items():
            if module is not None:
                sys.modules[module_name] = module


def test_factory_returns_cached_adapter() -> None:
    assert resolve_model_adapter("stable_whisper") is resolve_model_adapter(
        "stable_whisper"
    )


def test_factory_rejects_unknown_backend() -> None:
    with pytest.raises(ModelLoadError, match="Unsupported transcription backend"):
        resolve_model_adapter("cloud_api")


class _StableModel:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[dict[str, object]] = []

    def transcribe(self, **kwargs: object) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text="  hello world  ")


def test_stable_adapter_loads_with_download_root(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """Model load should pass name, device, and download root to stable-ts."""
    captured: dict[str, object] = {}

    def load_model(**kwargs: object) -> str:
        captured.update(kwargs)
        return "model"

    monkeypatch.setattr(
        stable_backend,
        "_import_stable_whisper",
        lambda: SimpleNamespace(load_model=load_model),
    )
    root = tmp_path / "weights"

    model = stable_backend.StableWhisperAdapter().load(
        ModelConfig(model_name="small", download_root=root)
    )

    assert model == "model"
    assert captured["name"] == "small"
    assert captured["device"] == "cpu"
    assert captured["download_root"] == str(root)
    assert root.is_dir()


def test_stable_adapter_wraps_load_failures(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    def load_model(**kwargs: object) -> str:
        raise RuntimeError("checksum mismatch")

    monkeypatch.setattr(
        stable_backend,
        "_import_stable_whisper",
        lambda: SimpleNamespace(load_model=load_model),
    )

    with pytest.raises(ModelLoadError, match="checksum mismatch"):
        stable_backend.StableWhisperAdapter().load(ModelConfig(download_root=tmp_path))


def test_stable_adapter_returns_stripped_text() -> None:
    model = _StableModel()

    result = stable_backend.StableWhisperAdapter().transcribe(
        model, "/tmp/a.wav", TranscriptionOptions(language="de")
    )

    assert result.text == "hello world"
    assert model.calls[0]["audio"] == "/tmp/a.wav"
    assert model.calls[0]["language"] == "de"


def test_stable_adapter_maps_decode_failures_to_corrupt_audio() -> None:
    model = _StableModel(RuntimeError("Failed to load audio: moov atom not found"))

    with pytest.raises(CorruptAudioError):
        stable_backend.StableWhisperAdapter().transcribe(
            model, "/tmp/a.wav", TranscriptionOptions()
        )


def test_stable_adapter_propagates_other_errors() -> None:
    model = _StableModel(RuntimeError("decoder state invalid"))

    with pytest.raises(RuntimeError, match="decoder state invalid"):
        stable_backend.StableWhisperAdapter().transcribe(
            model, "/tmp/a.wav", TranscriptionOptions()
        )


def test_faster_adapter_reports_missing_dependency(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    def missing() -> object:
        raise ModelLoadError("Missing faster-whisper dependencies")

    monkeypatch.setattr(faster_backend, "_import_faster_whisper", missing)

    with pytest.raises(ModelLoadError, match="Missing faster-whisper"):
        faster_backend.FasterWhisperAdapter().load(ModelConfig(download_root=tmp_path))


def test_faster_adapter_joins_segment_text(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """Segments from the lazy generator should be joined with single spaces."""

    class _WhisperModel:
        def __init__(self, name: str, **kwargs: object) -> None:
            self.name = name
            self.kwargs = kwargs

        def transcribe(self, audio_path: str, **kwargs: object) -> tuple[object, object]:
            segments = (SimpleNamespace(text=part) for part in (" one", "two ", " "))
            return segments, SimpleNamespace(language="en")

    monkeypatch.setattr(
        faster_backend,
        "_import_faster_whisper",
        lambda: SimpleNamespace(WhisperModel=_WhisperModel),
    )
    adapter = faster_backend.FasterWhisperAdapter()

    model = adapter.load(ModelConfig(model_name="base", download_root=tmp_path))
    result = adapter.transcribe(model, "/tmp/a.wav", TranscriptionOptions())

    assert isinstance(model, _WhisperModel)
    assert model.kwargs["compute_type"] == "int8"
    assert result.text == "one two"


def test_faster_adapter_maps_invalid_data_to_corrupt_audio() -> None:
    class _BrokenModel:
        def transcribe(self, audio_path: str, **kwargs: object) -> tuple[object, object]:
            raise ValueError("Invalid data found when processing input")

    with pytest.raises(CorruptAudioError):
        faster_backend.FasterWhisperAdapter().transcribe(
            _BrokenModel(), "/tmp/a.wav", TranscriptionOptions()
        )

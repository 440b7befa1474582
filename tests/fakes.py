"""Test doubles shared across the test modules."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from capture_bridge.config import (
    AppConfig,
    ModelConfig,
    QueueConfig,
    ResourceConfig,
    TimeoutConfig,
)
from capture_bridge.domain import (
    BackendId,
    ModelTranscription,
    TranscriptionOptions,
)

GIB = 1024**3

type ScriptStep = str | BaseException | Callable[[str], str]
@dataclass
class FakeAdapter:
    """Model adapter that replays a script of texts, errors, or callables."""

    script: list[ScriptStep] = field(default_factory=list)
    default_text: str = "hello from the fake model"
    load_error: BaseException | None = None
    load_delay_seconds: float = 0.0
    backend: BackendId = "stable_whisper"
    load_calls: int = 0
    transcribe_calls: list[str] = field(default_factory=list)
    seen_existing_paths: list[bool] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def backend_id(self) -> BackendId:
        return self.backend

    def load(self, config: ModelConfig) -> object:
        with self._lock:
            self.load_calls += 1
        if self.load_delay_seconds:
            time.sleep(self.load_delay_seconds)
        if self.load_error is not None:
            raise self.load_error
        return {"model": config.model_name}

    def transcribe(
        self,
        model: object,
        audio_path: str,
        options: TranscriptionOptions,
    ) -> ModelTranscription:
        with self._lock:
            self.transcribe_calls.append(audio_path)
            self.seen_existing_paths.append(Path(audio_path).exists())
            step: ScriptStep = self.script.pop(0) if self.script else self.default_text
        if isinstance(step, BaseException):
            raise step
        text = step(audio_path) if callable(step) else step
        return ModelTranscription(text=text, duration_ms=1.0)


class FakeRss:
    """Settable RSS reader used in place of psutil sampling."""

    def __init__(self, rss_bytes: int = 512 * 1024 * 1024) -> None:
        self.rss_bytes = rss_bytes

    def __call__(self) -> int:
        return self.rss_bytes


def block_until(event: threading.Event, text: str = "late text") -> Callable[[str], str]:
    """Returns a script step that blocks until `event` is set."""

    def _step(audio_path: str) -> str:
        del audio_path
        event.wait(timeout=5.0)
        return text

    return _step


def make_settings(
    tmp_path: Path,
    *,
    timeout_seconds: float = 5.0,
    memory_ceiling_gb: float = 3.0,
    max_depth: int = 256,
    retry_backoff_seconds: float = 0.0,
    model_load_timeout_seconds: float = 5.0,
) -> AppConfig:
    """Builds fast test settings rooted under `tmp_path`."""
    return AppConfig(
        tmp_folder=tmp_path / "scratch",
        escalation_log_path=tmp_path / "logs" / "transcription-errors.jsonl",
        models=ModelConfig(
            download_root=tmp_path / "models",
            load_timeout_seconds=model_load_timeout_seconds,
        ),
        timeouts=TimeoutConfig(
            base_seconds=timeout_seconds,
            max_extra_seconds=0.0,
        ),
        resources=ResourceConfig(
            memory_ceiling_gb=memory_ceiling_gb,
            sample_interval_seconds=0.02,
            poll_interval_seconds=0.01,
            settle_timeout_seconds=0.0,
        ),
        queue=QueueConfig(
            max_depth=max_depth,
            retry_backoff_seconds=retry_backoff_seconds,
        ),
    )



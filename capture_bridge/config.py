"""Environment-driven settings for the capture-bridge transcription engine.

Settings are resolved once from ``CAPTURE_*`` environment variables layered over
code defaults. ``get_settings`` returns the cached instance; ``reload_settings``
re-reads the environment and replaces the cache.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock

from capture_bridge.domain import BackendId

logger = logging.getLogger(__name__)

_SUPPORTED_BACKENDS: frozenset[str] = frozenset({"stable_whisper", "faster_whisper"})
_BYTES_PER_GB = 1024**3


@dataclass(frozen=True, slots=True)
class ModelConfig:
    """Speech-to-text backend selection and load options."""

    backend_id: BackendId = "stable_whisper"
    model_name: str = "medium"
    device: str = "cpu"
    download_root: Path = Path("./models/whisper")
    language: str = "en"
    load_timeout_seconds: float = 30.0


@dataclass(frozen=True, slots=True)
class TimeoutConfig:
    """Inputs of the per-attempt wall-clock budget."""

    base_seconds: float = 30.0
    max_extra_seconds: float = 240.0
    estimate_multiplier: float = 2.0
    audio_bytes_per_second: float = 16_000.0
    processing_realtime_factor: float = 0.5


@dataclass(frozen=True, slots=True)
class ResourceConfig:
    """Process memory ceiling and sampling cadence."""

    memory_ceiling_gb: float = 3.0
    sample_interval_seconds: float = 10.0
    poll_interval_seconds: float = 1.0
    settle_timeout_seconds: float = 30.0

    @property
    def memory_ceiling_bytes(self) -> int:
        """Returns the configured ceiling in bytes."""
        return int(self.memory_ceiling_gb * _BYTES_PER_GB)


@dataclass(frozen=True, slots=True)
class QueueConfig:
    """Admission limits for the sequential job queue."""

    max_depth: int = 256
    retry_backoff_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Complete engine settings."""

    tmp_folder: Path = Path("./tmp/transcription")
    escalation_log_path: Path = Path("./logs/transcription-errors.jsonl")
    models: ModelConfig = field(default_factory=ModelConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    resources: ResourceConfig = field(default_factory=ResourceConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_float(name: str, default: float, *, minimum: float = 0.0) -> float:
    """Reads one float setting, falling back to default on invalid values."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using default %s.", name, raw, default)
        return default
    if value < minimum:
        logger.warning(
            "Ignoring out-of-range %s=%r (minimum %s); using default %s.",
            name,
            raw,
            minimum,
            default,
        )
        return default
    return value


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    """Reads one integer setting, falling back to default on invalid values."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using default %s.", name, raw, default)
        return default
    if value < minimum:
        logger.warning(
            "Ignoring out-of-range %s=%r (minimum %s); using default %s.",
            name,
            raw,
            minimum,
            default,
        )
        return default
    return value


def _env_backend(name: str, default: BackendId) -> BackendId:
    raw = _env_str(name, default).lower()
    if raw not in _SUPPORTED_BACKENDS:
        logger.warning(
            "Unsupported %s=%r; falling back to %s.", name, raw, default
        )
        return default
    return "faster_whisper" if raw == "faster_whisper" else "stable_whisper"


def _build_settings() -> AppConfig:
    """Builds settings from the current environment."""
    app_default = AppConfig()
    models_default = app_default.models
    timeouts_default = app_default.timeouts
    resources_default = app_default.resources
    queue_default = app_default.queue
    return AppConfig(
        tmp_folder=Path(
            _env_str("CAPTURE_TMP_FOLDER", str(app_default.tmp_folder))
        ),
        escalation_log_path=Path(
            _env_str(
                "CAPTURE_ESCALATION_LOG_PATH", str(app_default.escalation_log_path)
            )
        ),
        models=ModelConfig(
            backend_id=_env_backend(
                "CAPTURE_WHISPER_BACKEND", models_default.backend_id
            ),
            model_name=_env_str("CAPTURE_WHISPER_MODEL", models_default.model_name),
            device=_env_str("CAPTURE_WHISPER_DEVICE", models_default.device),
            download_root=Path(
                _env_str(
                    "CAPTURE_WHISPER_DOWNLOAD_ROOT", str(models_default.download_root)
                )
            ),
            language=_env_str(
                "CAPTURE_TRANSCRIPTION_LANGUAGE", models_default.language
            ),
            load_timeout_seconds=_env_float(
                "CAPTURE_MODEL_LOAD_TIMEOUT_SECONDS",
                models_default.load_timeout_seconds,
                minimum=0.01,
            ),
        ),
        timeouts=TimeoutConfig(
            base_seconds=_env_float(
                "CAPTURE_TIMEOUT_BASE_SECONDS", timeouts_default.base_seconds
            ),
            max_extra_seconds=_env_float(
                "CAPTURE_TIMEOUT_MAX_EXTRA_SECONDS",
                timeouts_default.max_extra_seconds,
            ),
            estimate_multiplier=_env_float(
                "CAPTURE_TIMEOUT_ESTIMATE_MULTIPLIER",
                timeouts_default.estimate_multiplier,
            ),
            audio_bytes_per_second=_env_float(
                "CAPTURE_AUDIO_BYTES_PER_SECOND",
                timeouts_default.audio_bytes_per_second,
                minimum=1.0,
            ),
            processing_realtime_factor=_env_float(
                "CAPTURE_PROCESSING_REALTIME_FACTOR",
                timeouts_default.processing_realtime_factor,
            ),
        ),
        resources=ResourceConfig(
            memory_ceiling_gb=_env_float(
                "CAPTURE_MEMORY_CEILING_GB",
                resources_default.memory_ceiling_gb,
                minimum=0.01,
            ),
            sample_interval_seconds=_env_float(
                "CAPTURE_MEMORY_SAMPLE_INTERVAL_SECONDS",
                resources_default.sample_interval_seconds,
                minimum=0.01,
            ),
            poll_interval_seconds=_env_float(
                "CAPTURE_MEMORY_POLL_INTERVAL_SECONDS",
                resources_default.poll_interval_seconds,
                minimum=0.001,
            ),
            settle_timeout_seconds=_env_float(
                "CAPTURE_MEMORY_SETTLE_TIMEOUT_SECONDS",
                resources_default.settle_timeout_seconds,
            ),
        ),
        queue=QueueConfig(
            max_depth=_env_int("CAPTURE_QUEUE_MAX_DEPTH", queue_default.max_depth),
            retry_backoff_seconds=_env_float(
                "CAPTURE_RETRY_BACKOFF_SECONDS", queue_default.retry_backoff_seconds
            ),
        ),
    )


_settings: AppConfig | None = None
_settings_lock = Lock()


def get_settings() -> AppConfig:
    """Returns cached settings, building them on first access."""
    global _settings
    with _settings_lock:
        if _settings is None:
            _settings = _build_settings()
        return _settings


def reload_settings() -> AppConfig:
    """Re-reads the environment and replaces cached settings."""
    global _settings
    with _settings_lock:
        _settings = _build_settings()
        return _settings

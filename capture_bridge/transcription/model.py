"""Process-wide speech-to-text model, loaded lazily and at most once."""

from __future__ import annotations

import gc
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from datetime import datetime
from time import perf_counter

from capture_bridge.config import ModelConfig
from capture_bridge.domain import (
    BackendId,
    ModelTranscription,
    TranscriptionOptions,
    utc_now,
)
from capture_bridge.metrics import MODEL_LOAD_DURATION_MS, MetricsSink, NullMetrics
from capture_bridge.transcription.backends import (
    ModelAdapter,
    ModelHandle,
    resolve_model_adapter,
)
from capture_bridge.transcription.errors import ModelLoadError
from capture_bridge.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ModelStatus:
    """Point-in-time view of the shared model for health reporting."""

    loaded: bool
    backend_id: BackendId
    model_name: str
    loaded_at: datetime | None
    load_duration_ms: float | None
    last_error: str | None


class SharedModel:
    """Owns the single loaded model handle shared read-only by every job.

    Concurrent callers of `ensure_loaded` during a load wait on the same
    in-flight future instead of starting a second load. A failed load leaves
    the model unloaded so the next call retries it.
    """

    def __init__(
        self,
        config: ModelConfig,
        *,
        adapter: ModelAdapter | None = None,
        metrics: MetricsSink | None = None,
        options: TranscriptionOptions | None = None,
    ) -> None:
        self.config = config
        self.options = options or TranscriptionOptions(language=config.language)
        self._adapter = adapter
        self._metrics = metrics or NullMetrics()
        self._lock = threading.Lock()
        self._handle: ModelHandle | None = None
        self._loading: Future[ModelHandle] | None = None
        self._last_error: str | None = None

    def is_loaded(self) -> bool:
        with self._lock:
            return self._handle is not None

    def status(self) -> ModelStatus:
        with self._lock:
            handle = self._handle
            last_error = self._last_error
        return ModelStatus(
            loaded=handle is not None,
            backend_id=self.config.backend_id,
            model_name=self.config.model_name,
            loaded_at=handle.loaded_at if handle is not None else None,
            load_duration_ms=handle.load_duration_ms if handle is not None else None,
            last_error=last_error,
        )

    def ensure_loaded(self) -> ModelHandle:
        """Returns the loaded handle, loading it on first use.

        The load runs on its own thread; callers wait at most
        `config.load_timeout_seconds` for it. An abandoned load that finishes
        later still installs its handle for the next caller.

        Raises:
            ModelLoadError: If the backend cannot be resolved or loaded, or the
                load does not finish in time.
        """
        with self._lock:
            if self._handle is not None:
                return self._handle
            pending = self._loading
            if pending is None:
                pending = Future()
                self._loading = pending
                threading.Thread(
                    target=self._load_into,
                    args=(pending,),
                    name="capture-bridge-model-load",
                    daemon=True,
                ).start()
        timeout_seconds = self.config.load_timeout_seconds
        try:
            return pending.result(timeout=timeout_seconds)
        except FuturesTimeoutError:
            if pending.done():
                return pending.result()
            message = (
                f"Model load exceeded timeout ({timeout_seconds:.2f}s) for "
                f"{self.config.backend_id} model {self.config.model_name!r}."
            )
            with self._lock:
                if self._loading is pending:
                    self._loading = None
                self._last_error = message
            logger.error("Model load failed: %s", message)
            raise ModelLoadError(message) from None

    def transcribe(
        self,
        audio_path: str,
        options: TranscriptionOptions | None = None,
    ) -> ModelTranscription:
        """Transcribes one local audio file with the shared model."""
        handle = self.ensure_loaded()
        return self._resolve_adapter().transcribe(
            handle.model, audio_path, options or self.options
        )

    def shutdown(self) -> None:
        """Releases the loaded model so its memory can be reclaimed."""
        with self._lock:
            handle = self._handle
            self._handle = None
        if handle is None:
            return
        del handle
        gc.collect()
        logger.info(
            "Released %s model %r.", self.config.backend_id, self.config.model_name
        )

    def _resolve_adapter(self) -> ModelAdapter:
        if self._adapter is None:
            self._adapter = resolve_model_adapter(self.config.backend_id)
        return self._adapter

    def _load_into(self, pending: Future[ModelHandle]) -> None:
        started_at = perf_counter()
        logger.info(
            "Loading %s model %r on %s.",
            self.config.backend_id,
            self.config.model_name,
            self.config.device,
        )
        try:
            adapter = self._resolve_adapter()
            model = adapter.load(self.config)
        except Exception as err:
            error = (
                err
                if isinstance(err, ModelLoadError)
                else ModelLoadError(f"Failed to load model: {err}")
            )
            if error is not err:
                error.__cause__ = err
            with self._lock:
                self._last_error = str(error)
                if self._loading is pending:
                    self._loading = None
            logger.error("Model load failed: %s", error)
            pending.set_exception(error)
            return

        load_duration_ms = (perf_counter() - started_at) * 1000.0
        handle = ModelHandle(
            backend_id=adapter.backend_id,
            model_name=self.config.model_name,
            device=self.config.device,
            model=model,
            loaded_at=utc_now(),
            load_duration_ms=load_duration_ms,
        )
        with self._lock:
            if self._handle is None:
                self._handle = handle
                self._last_error = None
            else:
                handle = self._handle
            if self._loading is pending:
                self._loading = None
        self._metrics.duration(
            MODEL_LOAD_DURATION_MS,
            load_duration_ms,
            {"backend": adapter.backend_id, "model": self.config.model_name},
        )
        logger.info("Model loaded in %.0f ms.", load_duration_ms)
        pending.set_result(handle)

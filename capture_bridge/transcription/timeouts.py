"""Per-attempt wall-clock budgets and deadline enforcement for model calls."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from time import monotonic

from capture_bridge.config import TimeoutConfig
from capture_bridge.transcription.errors import (
    MemoryCeilingExceededError,
    TranscriptionTimeoutError,
)
from capture_bridge.transcription.resource_monitor import ResourceMonitor
from capture_bridge.utils.logger import get_logger

logger = get_logger(__name__)


def estimate_processing_seconds(size_bytes: int, settings: TimeoutConfig) -> float:
    """Estimates model processing time from audio byte size."""
    audio_seconds = max(size_bytes, 0) / settings.audio_bytes_per_second
    return audio_seconds * settings.processing_realtime_factor


def compute_timeout_seconds(size_bytes: int, settings: TimeoutConfig) -> float:
    """Returns `base + min(multiplier * estimate, max_extra)` in seconds."""
    estimate = estimate_processing_seconds(size_bytes, settings)
    return settings.base_seconds + min(
        settings.estimate_multiplier * estimate, settings.max_extra_seconds
    )


class AttemptGuard:
    """Issues attempt generations so late completions can be told apart.

    Only the current generation may publish results. A model call abandoned
    after its deadline completes under a retired generation and is dropped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self._active: int | None = None

    def begin(self) -> int:
        with self._lock:
            self._generation += 1
            self._active = self._generation
            return self._generation

    def retire(self, generation: int) -> None:
        with self._lock:
            if self._active == generation:
                self._active = None

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return self._active == generation


def run_model_with_deadline[ResultT](
    operation: Callable[[], ResultT],
    *,
    timeout_seconds: float,
    monitor: ResourceMonitor,
    poll_interval_seconds: float,
    guard: AttemptGuard,
    generation: int,
    label: str,
) -> ResultT:
    """Races one model call against its deadline and the memory ceiling.

    The call runs on a one-shot thread. On deadline expiry or a memory breach
    the call is abandoned without waiting; its eventual completion is
    discarded by the generation check.
    """
    executor = ThreadPoolExecutor(
        max_workers=1, thread_name_prefix="capture-bridge-model"
    )
    future: Future[ResultT] = executor.submit(operation)
    future.add_done_callback(
        lambda done: _discard_if_stale(
            done, guard=guard, generation=generation, label=label
        )
    )
    deadline = monotonic() + timeout_seconds
    try:
        while True:
            remaining = deadline - monotonic()
            if remaining <= 0.0:
                future.cancel()
                raise TranscriptionTimeoutError(
                    f"Transcription of {label} exceeded timeout budget "
                    f"({timeout_seconds:.2f}s)."
                )
            try:
                return future.result(timeout=min(poll_interval_seconds, remaining))
            except FuturesTimeoutError:
                # Same class as the builtin TimeoutError; a finished call raised it.
                if future.done():
                    raise
            if monitor.is_over_ceiling():
                reading = monitor.latest
                future.cancel()
                rss_mb = reading.rss_mb if reading is not None else float("nan")
                raise MemoryCeilingExceededError(
                    f"Process memory {rss_mb:.1f} MB exceeded ceiling "
                    f"{monitor.ceiling_bytes / (1024.0 * 1024.0):.1f} MB "
                    f"while transcribing {label}."
                )
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _discard_if_stale(
    future: Future[object],
    *,
    guard: AttemptGuard,
    generation: int,
    label: str,
) -> None:
    if future.cancelled() or guard.is_current(generation):
        return
    error = future.exception()
    if error is None:
        logger.info(
            "Discarding late model result for %s (attempt generation %s).",
            label,
            generation,
        )
    else:
        logger.info(
            "Discarding late model failure for %s (attempt generation %s): %s",
            label,
            generation,
            error,
        )

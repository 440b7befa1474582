"""Process memory sampling for transcription attempts.

The monitor only observes. It publishes the latest reading through a single
attribute that readers access without locking; the worker decides whether to
abort an attempt.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import psutil

from capture_bridge.domain import MemoryReading
from capture_bridge.metrics import PROCESS_MEMORY_USAGE_MB, MetricsSink, NullMetrics
from capture_bridge.utils.logger import get_logger

logger = get_logger(__name__)

type RssReader = Callable[[], int]


def read_process_rss_bytes() -> int:
    """Returns the current process resident set size in bytes."""
    return int(psutil.Process().memory_info().rss)


class ResourceMonitor:
    """Samples process RSS on a fixed interval while the worker is active."""

    def __init__(
        self,
        *,
        ceiling_bytes: int,
        interval_seconds: float = 10.0,
        metrics: MetricsSink | None = None,
        rss_reader: RssReader = read_process_rss_bytes,
    ) -> None:
        self.ceiling_bytes = ceiling_bytes
        self.interval_seconds = interval_seconds
        self._metrics = metrics or NullMetrics()
        self._rss_reader = rss_reader
        self._latest: MemoryReading | None = None
        self._active_users = 0
        self._users_lock = threading.Lock()
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def latest(self) -> MemoryReading | None:
        """Returns the most recent reading, if any sample was taken."""
        return self._latest

    def sample(self) -> MemoryReading:
        """Takes one reading now and publishes it as the latest."""
        reading = MemoryReading(rss_bytes=self._rss_reader())
        self._latest = reading
        self._metrics.gauge(PROCESS_MEMORY_USAGE_MB, reading.rss_mb)
        return reading

    def is_over_ceiling(self, threshold_bytes: int | None = None) -> bool:
        """Returns whether the latest reading exceeds the threshold."""
        reading = self._latest
        if reading is None:
            return False
        threshold = self.ceiling_bytes if threshold_bytes is None else threshold_bytes
        return reading.exceeds(threshold)

    def wait_for_headroom(
        self,
        *,
        settle_timeout_seconds: float,
        poll_interval_seconds: float,
    ) -> MemoryReading:
        """Samples until memory is under the ceiling or the settle budget ends.

        Returns the last reading; callers check `exceeds` on it.
        """
        deadline = time.monotonic() + max(settle_timeout_seconds, 0.0)
        reading = self.sample()
        while reading.exceeds(self.ceiling_bytes):
            remaining = deadline - time.monotonic()
            if remaining <= 0.0:
                break
            logger.info(
                "Memory at %.1f MB exceeds ceiling %.1f MB; waiting for headroom.",
                reading.rss_mb,
                self.ceiling_bytes / (1024.0 * 1024.0),
            )
            time.sleep(min(poll_interval_seconds, remaining))
            reading = self.sample()
        return reading

    @contextmanager
    def active(self) -> Iterator[ResourceMonitor]:
        """Runs periodic sampling for the duration of the context."""
        self._acquire()
        try:
            yield self
        finally:
            self._release()

    def _acquire(self) -> None:
        with self._users_lock:
            self._active_users += 1
            if self._thread is not None:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="capture-bridge-memory-monitor",
                daemon=True,
            )
            self._thread.start()

    def _release(self) -> None:
        with self._users_lock:
            self._active_users -= 1
            if self._active_users > 0 or self._thread is None:
                return
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        if stop_event is not None:
            stop_event.set()
        thread.join(timeout=max(self.interval_seconds, 1.0))

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                self.sample()
            except (psutil.Error, OSError) as err:
                logger.warning("Memory sampling failed: %s", err)
            stop_event.wait(self.interval_seconds)

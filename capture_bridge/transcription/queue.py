"""Sequential transcription queue with concurrency 1 and backpressure.

`enqueue` appends under a lock and triggers a drain thread only when none is
running, so at most one job is ever processing. Retries go to the tail.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from capture_bridge.domain import (
    TranscriptionFailure,
    TranscriptionJob,
    TranscriptionOutcome,
    utc_now,
)
from capture_bridge.transcription.errors import BackpressureError, QueueClosedError
from capture_bridge.utils.logger import get_logger

logger = get_logger(__name__)

MAX_QUEUE_DEPTH = 256

type JobRunner = Callable[[TranscriptionJob], TranscriptionOutcome]


@dataclass(frozen=True, slots=True)
class QueueTotals:
    """Cumulative counters since the queue was created."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    placeholders: int = 0
    last_completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class QueueStatus:
    """Snapshot returned by `TranscriptionQueue.get_status`."""

    is_processing: bool
    queue_depth: int
    current_job_id: str | None
    totals: QueueTotals


class TranscriptionQueue:
    """FIFO admission queue feeding one job runner at a time."""

    def __init__(
        self,
        runner: JobRunner,
        *,
        max_depth: int = MAX_QUEUE_DEPTH,
        retry_backoff_seconds: float = 0.0,
    ) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1.")
        self.max_depth = max_depth
        self.retry_backoff_seconds = retry_backoff_seconds
        self._runner = runner
        self._lock = threading.Lock()
        self._pending: deque[TranscriptionJob] = deque()
        self._processing = False
        self._current: TranscriptionJob | None = None
        self._closed = False
        self._totals = QueueTotals()
        self._retry_timers: set[threading.Timer] = set()
        self._idle = threading.Event()
        self._idle.set()

    def enqueue(self, job: TranscriptionJob) -> None:
        """Appends one job and starts draining if the queue is idle.

        Raises:
            QueueClosedError: After `shutdown` was called.
            BackpressureError: When queued plus in-flight jobs reach max depth.
        """
        with self._lock:
            if self._closed:
                raise QueueClosedError("Transcription queue is shut down.")
            depth = len(self._pending) + (1 if self._current is not None else 0)
            if depth >= self.max_depth:
                raise BackpressureError(self.max_depth)
            self._pending.append(job)
            self._idle.clear()
        self._trigger()

    def get_status(self) -> QueueStatus:
        with self._lock:
            return QueueStatus(
                is_processing=self._processing,
                queue_depth=len(self._pending),
                current_job_id=(
                    self._current.capture_id if self._current is not None else None
                ),
                totals=self._totals,
            )

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Blocks until nothing is pending, running, or scheduled for retry."""
        return self._idle.wait(timeout)

    def shutdown(self, timeout: float | None = 5.0) -> bool:
        """Stops draining after the in-flight job and rejects new jobs.

        Pending jobs are left unprocessed; their captures keep a non-terminal
        ledger status and are picked up again by recovery. Returns whether the
        in-flight job finished within `timeout`.
        """
        with self._lock:
            self._closed = True
            timers = list(self._retry_timers)
            self._retry_timers.clear()
            dropped = len(self._pending)
            self._update_idle_locked()
        for timer in timers:
            timer.cancel()
        if dropped or timers:
            logger.warning(
                "Queue shut down with %d pending and %d scheduled retry job(s).",
                dropped,
                len(timers),
            )
        finished = self._idle.wait(timeout)
        if not finished:
            logger.warning("Timed out waiting for the in-flight transcription job.")
        return finished

    def _trigger(self) -> None:
        with self._lock:
            if self._processing or self._closed or not self._pending:
                return
            self._processing = True
            self._idle.clear()
        threading.Thread(
            target=self._drain, name="capture-bridge-transcription", daemon=True
        ).start()

    def _drain(self) -> None:
        while True:
            with self._lock:
                if self._closed or not self._pending:
                    self._processing = False
                    self._update_idle_locked()
                    return
                job = self._pending.popleft()
                self._current = job
            outcome = self._run_one(job)
            with self._lock:
                self._current = None
                self._record_locked(outcome)
                retry_job = (
                    outcome.retry_job
                    if isinstance(outcome, TranscriptionFailure)
                    else None
                )
                if retry_job is not None:
                    self._schedule_retry_locked(retry_job)

    def _run_one(self, job: TranscriptionJob) -> TranscriptionOutcome | None:
        try:
            return self._runner(job)
        except Exception:
            # Runner failures must not stall the remaining jobs.
            logger.exception("Transcription runner raised for %s.", job.capture_id)
            return None

    def _record_locked(self, outcome: TranscriptionOutcome | None) -> None:
        totals = self._totals
        processed = totals.processed + 1
        succeeded = totals.succeeded
        failed = totals.failed
        retried = totals.retried
        placeholders = totals.placeholders
        if outcome is None:
            failed += 1
        elif outcome.success:
            succeeded += 1
        elif outcome.retry_job is not None:
            retried += 1
        else:
            failed += 1
            placeholders += int(outcome.placeholder_exported)
        self._totals = QueueTotals(
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            retried=retried,
            placeholders=placeholders,
            last_completed_at=utc_now(),
        )

    def _schedule_retry_locked(self, job: TranscriptionJob) -> None:
        # Retries held a slot already, so they skip the depth check.
        if self._closed:
            logger.warning(
                "Dropping retry for %s; queue is shut down.", job.capture_id
            )
            return
        if self.retry_backoff_seconds <= 0.0:
            self._pending.append(job)
            return
        timer: threading.Timer

        def fire() -> None:
            self._requeue(job, timer)

        timer = threading.Timer(self.retry_backoff_seconds, fire)
        timer.daemon = True
        self._retry_timers.add(timer)
        timer.start()

    def _requeue(self, job: TranscriptionJob, timer: threading.Timer) -> None:
        with self._lock:
            self._retry_timers.discard(timer)
            if self._closed:
                self._update_idle_locked()
                return
            self._pending.append(job)
            self._idle.clear()
        self._trigger()

    def _update_idle_locked(self) -> None:
        idle = not self._processing and (
            self._closed or (not self._pending and not self._retry_timers)
        )
        if idle:
            self._idle.set()
        else:
            self._idle.clear()

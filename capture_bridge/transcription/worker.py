"""Single-job transcription executor.

`TranscriptionWorker.run` processes one job end to end and always returns an
outcome. A retriable failure within budget carries the follow-up job in
`TranscriptionFailure.retry_job`; the queue decides where it goes.
"""

from __future__ import annotations

from collections.abc import Mapping
from time import perf_counter

from capture_bridge.config import AppConfig, get_settings
from capture_bridge.domain import (
    CaptureLedgerStatus,
    ErrorKind,
    ModelTranscription,
    TranscriptionFailure,
    TranscriptionJob,
    TranscriptionOutcome,
    TranscriptionSuccess,
    utc_now,
)
from capture_bridge.ledger import (
    EscalationEntry,
    EscalationLog,
    LedgerStatusWriter,
    PlaceholderExporter,
    build_placeholder_reason,
    is_terminal_status,
)
from capture_bridge.metrics import (
    PLACEHOLDER_EXPORT_TOTAL,
    TRANSCRIPTION_DURATION_MS,
    TRANSCRIPTION_JOB_TOTAL,
    TRANSCRIPTION_RETRY_TOTAL,
    MetricsSink,
    NullMetrics,
)
from capture_bridge.transcription.classifier import classify_transcription_failure
from capture_bridge.transcription.errors import (
    MemoryCeilingExceededError,
    ModelInvocationError,
    TranscriptionEngineError,
)
from capture_bridge.transcription.failure_policy import (
    FailureDecision,
    decide_failure_action,
)
from capture_bridge.transcription.model import SharedModel
from capture_bridge.transcription.resource_monitor import ResourceMonitor
from capture_bridge.transcription.temp_artifacts import (
    TempArtifactManager,
    verify_audio_source,
)
from capture_bridge.transcription.timeouts import (
    AttemptGuard,
    compute_timeout_seconds,
    run_model_with_deadline,
)
from capture_bridge.utils.hashing import content_fingerprint
from capture_bridge.utils.logger import get_logger

logger = get_logger(__name__)


class TranscriptionWorker:
    """Runs transcription attempts and records their outcome."""

    def __init__(
        self,
        *,
        model: SharedModel,
        status_writer: LedgerStatusWriter,
        exporter: PlaceholderExporter,
        escalation_log: EscalationLog,
        monitor: ResourceMonitor,
        artifacts: TempArtifactManager,
        settings: AppConfig | None = None,
        metrics: MetricsSink | None = None,
        guard: AttemptGuard | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.model = model
        self.status_writer = status_writer
        self.monitor = monitor
        self._exporter = exporter
        self._escalation_log = escalation_log
        self._artifacts = artifacts
        self._metrics = metrics or NullMetrics()
        self._guard = guard or AttemptGuard()

    def run(self, job: TranscriptionJob) -> TranscriptionOutcome:
        """Processes one job and returns its outcome; never raises."""
        started_at = perf_counter()
        current = self.status_writer.current(job.capture_id)
        if is_terminal_status(current):
            message = f"Capture already in terminal status {current.value}."
            logger.warning("Skipping job for %s: %s", job.capture_id, message)
            job.mark_failed(message)
            return TranscriptionFailure(
                capture_id=job.capture_id,
                error_kind=ErrorKind.UNKNOWN,
                error_message=message,
                duration_ms=0.0,
                attempt_count=job.attempt_count,
                placeholder_exported=False,
            )

        job.mark_processing()
        self._write_status(
            job.capture_id,
            CaptureLedgerStatus.TRANSCRIBING,
            {"attempt_count": job.attempt_count},
        )
        logger.info(
            "Transcribing capture %s (attempt %d).", job.capture_id, job.attempt_count
        )
        generation = self._guard.begin()
        try:
            with self.monitor.active():
                transcription = self._attempt(job, generation)
        except Exception as err:
            self._guard.retire(generation)
            return self._on_failure(job, err, _elapsed_ms(started_at))
        self._guard.retire(generation)
        return self._on_success(job, transcription, _elapsed_ms(started_at))

    def _attempt(self, job: TranscriptionJob, generation: int) -> ModelTranscription:
        source = verify_audio_source(job.audio_path)
        timeout_seconds = compute_timeout_seconds(
            source.stat().st_size, self.settings.timeouts
        )
        resources = self.settings.resources
        with self._artifacts.scratch_copy(
            source, capture_id=job.capture_id
        ) as temp_path:
            # A call abandoned by an earlier attempt may still hold memory.
            reading = self.monitor.wait_for_headroom(
                settle_timeout_seconds=resources.settle_timeout_seconds,
                poll_interval_seconds=resources.poll_interval_seconds,
            )
            if reading.exceeds(self.monitor.ceiling_bytes):
                raise MemoryCeilingExceededError(
                    f"Process memory {reading.rss_mb:.1f} MB is above the ceiling "
                    "before the attempt could start."
                )
            self.model.ensure_loaded()
            try:
                return run_model_with_deadline(
                    lambda: self.model.transcribe(str(temp_path)),
                    timeout_seconds=timeout_seconds,
                    monitor=self.monitor,
                    poll_interval_seconds=resources.poll_interval_seconds,
                    guard=self._guard,
                    generation=generation,
                    label=job.capture_id,
                )
            except (TranscriptionEngineError, MemoryError):
                raise
            except Exception as err:
                raise ModelInvocationError(f"Model invocation failed: {err}") from err

    def _on_success(
        self,
        job: TranscriptionJob,
        transcription: ModelTranscription,
        duration_ms: float,
    ) -> TranscriptionSuccess:
        fingerprint = content_fingerprint(transcription.text)
        job.mark_completed()
        self._write_status(
            job.capture_id,
            CaptureLedgerStatus.TRANSCRIBED,
            {"raw_content": transcription.text, "content_hash": fingerprint},
        )
        self._metrics.counter(TRANSCRIPTION_JOB_TOTAL, {"result": "success"})
        self._metrics.duration(
            TRANSCRIPTION_DURATION_MS, duration_ms, {"result": "success"}
        )
        logger.info(
            "Transcribed capture %s in %.0f ms (attempt %d).",
            job.capture_id,
            duration_ms,
            job.attempt_count,
        )
        return TranscriptionSuccess(
            capture_id=job.capture_id,
            transcript=transcription.text,
            fingerprint=fingerprint,
            duration_ms=duration_ms,
            attempt_count=job.attempt_count,
        )

    def _on_failure(
        self,
        job: TranscriptionJob,
        err: Exception,
        duration_ms: float,
    ) -> TranscriptionFailure:
        message = str(err) or type(err).__name__
        job.mark_failed(message)
        error_kind = classify_transcription_failure(
            err, self.monitor.latest, ceiling_bytes=self.monitor.ceiling_bytes
        )
        decision = decide_failure_action(
            error_kind=error_kind, attempt_count=job.attempt_count
        )
        self._metrics.duration(
            TRANSCRIPTION_DURATION_MS, duration_ms, {"result": "failure"}
        )
        if decision.will_retry:
            return self._schedule_retry(job, error_kind, message, duration_ms)
        return self._fail_permanently(
            job, error_kind, message, duration_ms, decision
        )

    def _schedule_retry(
        self,
        job: TranscriptionJob,
        error_kind: ErrorKind,
        message: str,
        duration_ms: float,
    ) -> TranscriptionFailure:
        self._write_status(
            job.capture_id,
            CaptureLedgerStatus.TRANSCRIPTION_FAILED,
            {"attempt_count": job.attempt_count},
        )
        self._metrics.counter(
            TRANSCRIPTION_RETRY_TOTAL, {"error_kind": error_kind.value}
        )
        self._metrics.counter(TRANSCRIPTION_JOB_TOTAL, {"result": "retry"})
        logger.warning(
            "Attempt %d for capture %s failed with %s; retrying: %s",
            job.attempt_count,
            job.capture_id,
            error_kind.value,
            message,
        )
        return TranscriptionFailure(
            capture_id=job.capture_id,
            error_kind=error_kind,
            error_message=message,
            duration_ms=duration_ms,
            attempt_count=job.attempt_count,
            placeholder_exported=False,
            retry_job=job.next_attempt(),
        )

    def _fail_permanently(
        self,
        job: TranscriptionJob,
        error_kind: ErrorKind,
        message: str,
        duration_ms: float,
        decision: FailureDecision,
    ) -> TranscriptionFailure:
        exported = self._export_placeholder(job, error_kind, message)
        self._write_status(job.capture_id, decision.ledger_status)
        if decision.escalate:
            self._escalate(job, error_kind, message)
        self._metrics.counter(TRANSCRIPTION_JOB_TOTAL, {"result": "failure"})
        logger.error(
            "Transcription failed permanently for capture %s after %d attempt(s) "
            "(%s, %s): %s",
            job.capture_id,
            job.attempt_count,
            error_kind.value,
            decision.reason_code,
            message,
        )
        return TranscriptionFailure(
            capture_id=job.capture_id,
            error_kind=error_kind,
            error_message=message,
            duration_ms=duration_ms,
            attempt_count=job.attempt_count,
            placeholder_exported=exported,
        )

    def _export_placeholder(
        self, job: TranscriptionJob, error_kind: ErrorKind, message: str
    ) -> bool:
        reason = build_placeholder_reason(
            error_kind=error_kind,
            error_message=message,
            attempt_count=job.attempt_count,
            audio_path=job.audio_path,
            failed_at=job.completed_at,
        )
        try:
            self._exporter.export_placeholder(job.capture_id, error_kind, reason)
        except Exception as err:
            logger.error(
                "Placeholder export failed for capture %s: %s",
                job.capture_id,
                err,
                exc_info=True,
            )
            return False
        self._metrics.counter(
            PLACEHOLDER_EXPORT_TOTAL, {"error_kind": error_kind.value}
        )
        return True

    def _escalate(
        self, job: TranscriptionJob, error_kind: ErrorKind, message: str
    ) -> None:
        entry = EscalationEntry(
            capture_id=job.capture_id,
            error_kind=error_kind,
            message=message,
            attempt_count=job.attempt_count,
            timestamp=job.completed_at or utc_now(),
        )
        try:
            self._escalation_log.record(entry)
        except Exception as err:
            logger.error(
                "Escalation log write failed for capture %s: %s",
                job.capture_id,
                err,
                exc_info=True,
            )

    def _write_status(
        self,
        capture_id: str,
        status: CaptureLedgerStatus,
        fields: Mapping[str, object] | None = None,
    ) -> None:
        try:
            self.status_writer.transition(capture_id, status, fields)
        except Exception as err:
            logger.error(
                "Ledger status write %s failed for capture %s: %s",
                status.value,
                capture_id,
                err,
                exc_info=True,
            )


def _elapsed_ms(started_at: float) -> float:
    return (perf_counter() - started_at) * 1000.0

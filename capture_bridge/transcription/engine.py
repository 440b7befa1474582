"""Facade wiring settings, model, worker, and queue into one engine."""

from __future__ import annotations

from dataclasses import dataclass

from capture_bridge.config import AppConfig, get_settings
from capture_bridge.domain import (
    CaptureLedgerStatus,
    MemoryReading,
    TranscriptionJob,
)
from capture_bridge.ledger import (
    CaptureLedger,
    EscalationLog,
    JsonlEscalationLog,
    LedgerStatusWriter,
    PlaceholderExporter,
    assert_valid_transition,
)
from capture_bridge.metrics import LoggingMetrics, MetricsSink
from capture_bridge.transcription.backends import ModelAdapter
from capture_bridge.transcription.model import ModelStatus, SharedModel
from capture_bridge.transcription.queue import QueueStatus, TranscriptionQueue
from capture_bridge.transcription.resource_monitor import (
    ResourceMonitor,
    RssReader,
    read_process_rss_bytes,
)
from capture_bridge.transcription.temp_artifacts import TempArtifactManager
from capture_bridge.transcription.worker import TranscriptionWorker
from capture_bridge.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class EngineHealth:
    """Combined queue, model, and memory view for operators."""

    queue: QueueStatus
    model: ModelStatus
    memory: MemoryReading | None
    memory_ceiling_bytes: int

    @property
    def memory_over_ceiling(self) -> bool:
        return self.memory is not None and self.memory.exceeds(
            self.memory_ceiling_bytes
        )


class TranscriptionEngine:
    """Programmatic entry point used by the capture orchestrator.

    Args:
        ledger: Capture ledger receiving status writes.
        exporter: Collaborator that writes placeholder documents.
        escalation_log: Durable failure log. Defaults to a JSONL file at
            ``settings.escalation_log_path``.
        settings: Engine settings. Defaults to `get_settings()`.
        metrics: Metric sink. Defaults to DEBUG log lines.
        adapter: Model adapter override; resolved from settings when omitted.
        rss_reader: Memory reader override for the resource monitor.
    """

    def __init__(
        self,
        *,
        ledger: CaptureLedger,
        exporter: PlaceholderExporter,
        escalation_log: EscalationLog | None = None,
        settings: AppConfig | None = None,
        metrics: MetricsSink | None = None,
        adapter: ModelAdapter | None = None,
        rss_reader: RssReader = read_process_rss_bytes,
    ) -> None:
        self.settings = settings or get_settings()
        self.metrics = metrics or LoggingMetrics()
        self.status_writer = LedgerStatusWriter(ledger)
        self.monitor = ResourceMonitor(
            ceiling_bytes=self.settings.resources.memory_ceiling_bytes,
            interval_seconds=self.settings.resources.sample_interval_seconds,
            metrics=self.metrics,
            rss_reader=rss_reader,
        )
        self.model = SharedModel(
            self.settings.models, adapter=adapter, metrics=self.metrics
        )
        self.worker = TranscriptionWorker(
            model=self.model,
            status_writer=self.status_writer,
            exporter=exporter,
            escalation_log=escalation_log
            or JsonlEscalationLog(self.settings.escalation_log_path),
            monitor=self.monitor,
            artifacts=TempArtifactManager(self.settings.tmp_folder),
            settings=self.settings,
            metrics=self.metrics,
        )
        self.queue = TranscriptionQueue(
            self.worker.run,
            max_depth=self.settings.queue.max_depth,
            retry_backoff_seconds=self.settings.queue.retry_backoff_seconds,
        )

    def submit(self, capture_id: str, audio_path: str) -> TranscriptionJob:
        """Queues a first transcription attempt for one capture.

        Raises:
            InvalidStatusTransitionError: If the capture is already terminal.
            BackpressureError: If the queue is full.
            QueueClosedError: After `shutdown`.
        """
        assert_valid_transition(
            self.status_writer.current(capture_id), CaptureLedgerStatus.TRANSCRIBING
        )
        job = TranscriptionJob(capture_id=capture_id, audio_path=audio_path)
        self.enqueue(job)
        return job

    def enqueue(self, job: TranscriptionJob) -> None:
        self.queue.enqueue(job)
        logger.debug(
            "Queued capture %s (attempt %d).", job.capture_id, job.attempt_count
        )

    def status(self) -> QueueStatus:
        return self.queue.get_status()

    def health(self) -> EngineHealth:
        return EngineHealth(
            queue=self.queue.get_status(),
            model=self.model.status(),
            memory=self.monitor.latest,
            memory_ceiling_bytes=self.monitor.ceiling_bytes,
        )

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        return self.queue.wait_until_idle(timeout)

    def shutdown(self, timeout: float | None = 5.0) -> bool:
        """Stops the queue, then releases the shared model."""
        finished = self.queue.shutdown(timeout)
        self.model.shutdown()
        logger.info("Transcription engine shut down.")
        return finished

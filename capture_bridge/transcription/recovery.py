"""Rebuilds the job queue from the ledger after a restart."""

from __future__ import annotations

from typing import TYPE_CHECKING

from capture_bridge.domain import CaptureLedgerStatus, TranscriptionJob
from capture_bridge.ledger import CaptureRecord, RecoverableCaptureLedger
from capture_bridge.transcription.errors import BackpressureError
from capture_bridge.utils.logger import get_logger

if TYPE_CHECKING:
    from capture_bridge.transcription.engine import TranscriptionEngine

logger = get_logger(__name__)

RECOVERABLE_STATUSES: tuple[CaptureLedgerStatus, ...] = (
    CaptureLedgerStatus.DISCOVERED,
    CaptureLedgerStatus.TRANSCRIBING,
    CaptureLedgerStatus.TRANSCRIPTION_FAILED,
)


def _next_attempt_count(record: CaptureRecord) -> int:
    """Returns the attempt number a recovered capture resumes at.

    ``record.attempt_count`` is the number of the latest attempt the worker
    started. A capture left in ``transcribing`` crashed mid-attempt, so that
    attempt is rerun; a ``transcription_failed`` one moves to the next.
    """
    if record.status is CaptureLedgerStatus.TRANSCRIBING:
        return max(record.attempt_count, 1)
    return record.attempt_count + 1


def recover_pending_jobs(
    ledger: RecoverableCaptureLedger,
    engine: TranscriptionEngine,
) -> list[TranscriptionJob]:
    """Enqueues one job per non-terminal capture, in ledger order.

    Stops at the first backpressure rejection; the remaining captures keep
    their ledger status and are recovered on the next call.
    """
    records = ledger.list_captures_by_status(RECOVERABLE_STATUSES)
    recovered: list[TranscriptionJob] = []
    for record in records:
        engine.status_writer.seed(record.capture_id, record.status)
        job = TranscriptionJob(
            capture_id=record.capture_id,
            audio_path=record.audio_path,
            attempt_count=_next_attempt_count(record),
        )
        try:
            engine.enqueue(job)
        except BackpressureError:
            logger.warning(
                "Recovery stopped by backpressure after %d of %d capture(s).",
                len(recovered),
                len(records),
            )
            break
        recovered.append(job)
    if recovered:
        logger.info("Recovered %d pending capture(s) from the ledger.", len(recovered))
    return recovered

from .domain import CaptureLedgerStatus, ErrorKind, TranscriptionJob
from .transcription import TranscriptionEngine, recover_pending_jobs

__all__ = [
    "CaptureLedgerStatus",
    "ErrorKind",
    "TranscriptionEngine",
    "TranscriptionJob",
    "recover_pending_jobs",
]

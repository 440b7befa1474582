"""Sequential transcription engine: queue, worker, and failure handling."""

from .engine import EngineHealth, TranscriptionEngine
from .errors import (
    AudioSourceNotFoundError,
    AudioSourceUnreadableError,
    BackpressureError,
    CorruptAudioError,
    MemoryCeilingExceededError,
    ModelInvocationError,
    ModelLoadError,
    QueueClosedError,
    TranscriptionEngineError,
    TranscriptionTimeoutError,
)
from .queue import QueueStatus, QueueTotals, TranscriptionQueue
from .recovery import recover_pending_jobs

__all__ = [
    "AudioSourceNotFoundError",
    "AudioSourceUnreadableError",
    "BackpressureError",
    "CorruptAudioError",
    "EngineHealth",
    "MemoryCeilingExceededError",
    "ModelInvocationError",
    "ModelLoadError",
    "QueueClosedError",
    "QueueStatus",
    "QueueTotals",
    "TranscriptionEngine",
    "TranscriptionEngineError",
    "TranscriptionQueue",
    "TranscriptionTimeoutError",
    "recover_pending_jobs",
]

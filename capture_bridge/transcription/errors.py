"""Exception types raised inside the transcription engine."""

from __future__ import annotations


class TranscriptionEngineError(Exception):
    """Base class for engine errors."""


class AudioSourceNotFoundError(TranscriptionEngineError, FileNotFoundError):
    """Raised when a job's source audio does not exist."""


class AudioSourceUnreadableError(TranscriptionEngineError, PermissionError):
    """Raised when a job's source audio exists but cannot be read."""


class TranscriptionTimeoutError(TranscriptionEngineError, TimeoutError):
    """Raised when one model invocation exceeds its wall-clock budget."""


class MemoryCeilingExceededError(TranscriptionEngineError, MemoryError):
    """Raised when process memory breaches the ceiling during an attempt."""


class CorruptAudioError(TranscriptionEngineError):
    """Raised when the model rejects audio as malformed or unsupported."""


class ModelLoadError(TranscriptionEngineError):
    """Raised when the speech-to-text model cannot be loaded."""


class ModelInvocationError(TranscriptionEngineError):
    """Raised for any other failure surfaced by a model invocation."""


class BackpressureError(TranscriptionEngineError):
    """Raised when the pending queue is at its maximum depth."""

    def __init__(self, max_depth: int) -> None:
        super().__init__(f"Queue depth exceeded: maximum {max_depth} jobs allowed.")
        self.max_depth = max_depth


class QueueClosedError(TranscriptionEngineError):
    """Raised when enqueueing after the queue has been shut down."""

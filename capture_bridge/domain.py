"""Domain data structures for transcription jobs, readings, and outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

type BackendId = Literal["stable_whisper", "faster_whisper"]


def utc_now() -> datetime:
    """Returns the current timezone-aware UTC time."""
    return datetime.now(UTC)


class JobStatus(StrEnum):
    """Transient in-memory state of one transcription job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CaptureLedgerStatus(StrEnum):
    """Durable lifecycle status written back to the capture ledger."""

    DISCOVERED = "discovered"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    TRANSCRIPTION_FAILED = "transcription_failed"
    EXPORTED_PLACEHOLDER = "exported_placeholder"


class ErrorKind(StrEnum):
    """Closed set of transcription failure classifications."""

    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FILE_UNREADABLE = "FILE_UNREADABLE"
    OOM = "OOM"
    TIMEOUT = "TIMEOUT"
    CORRUPT_AUDIO = "CORRUPT_AUDIO"
    MODEL_LOAD_FAILURE = "MODEL_LOAD_FAILURE"
    WHISPER_ERROR = "WHISPER_ERROR"
    UNKNOWN = "UNKNOWN"


@dataclass(slots=True)
class TranscriptionJob:
    """One unit of transcription work tied to an external capture record.

    Jobs are mutated only by the worker currently processing them. A retry
    never mutates the failed job; it is replaced by ``next_attempt()``.
    """

    capture_id: str
    audio_path: str
    attempt_count: int = 1
    status: JobStatus = JobStatus.QUEUED
    queued_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.attempt_count < 1:
            raise ValueError("attempt_count starts at 1.")

    def mark_processing(self) -> None:
        self.status = JobStatus.PROCESSING
        self.started_at = utc_now()

    def mark_completed(self) -> None:
        self.status = JobStatus.COMPLETED
        self.completed_at = utc_now()

    def mark_failed(self, message: str) -> None:
        self.status = JobStatus.FAILED
        self.completed_at = utc_now()
        self.error_message = message

    def next_attempt(self) -> TranscriptionJob:
        """Returns a fresh queued job for the next retriable attempt."""
        return replace(
            self,
            attempt_count=self.attempt_count + 1,
            status=JobStatus.QUEUED,
            queued_at=utc_now(),
            started_at=None,
            completed_at=None,
            error_message=None,
        )


@dataclass(frozen=True, slots=True)
class MemoryReading:
    """One process memory sample."""

    rss_bytes: int
    sampled_at: datetime = field(default_factory=utc_now)

    @property
    def rss_mb(self) -> float:
        return self.rss_bytes / (1024.0 * 1024.0)

    def exceeds(self, ceiling_bytes: int) -> bool:
        """Returns whether this reading is strictly above the ceiling."""
        return self.rss_bytes > ceiling_bytes


@dataclass(frozen=True, slots=True)
class TranscriptionOptions:
    """Fixed model invocation options shared by every job."""

    language: str = "en"
    word_timestamps: bool = False
    verbose: bool = False


@dataclass(frozen=True, slots=True)
class ModelTranscription:
    """Raw text returned by one model invocation."""

    text: str
    duration_ms: float


@dataclass(frozen=True, slots=True)
class TranscriptionSuccess:
    """Outcome of a run that produced a transcript."""

    capture_id: str
    transcript: str
    fingerprint: str
    duration_ms: float
    attempt_count: int
    success: Literal[True] = True


@dataclass(frozen=True, slots=True)
class TranscriptionFailure:
    """Outcome of a run that failed.

    ``retry_job`` is set when the failure is retriable within budget; the
    queue appends it to its tail.
    """

    capture_id: str
    error_kind: ErrorKind
    error_message: str
    duration_ms: float
    attempt_count: int
    placeholder_exported: bool
    retry_job: TranscriptionJob | None = None
    success: Literal[False] = False

    @property
    def is_terminal(self) -> bool:
        return self.retry_job is None


type TranscriptionOutcome = TranscriptionSuccess | TranscriptionFailure

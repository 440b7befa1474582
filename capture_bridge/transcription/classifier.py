"""Failure classification for transcription attempts.

`classify_transcription_failure` is total and deterministic: every exception
maps to exactly one `ErrorKind`, falling back to `UNKNOWN`. Rules are applied
in precedence order; memory pressure is checked before generic model errors
because an out-of-memory condition often surfaces as an opaque crash.
"""

from __future__ import annotations

import errno

from capture_bridge.config import ResourceConfig
from capture_bridge.domain import ErrorKind, MemoryReading
from capture_bridge.transcription.errors import (
    AudioSourceNotFoundError,
    AudioSourceUnreadableError,
    CorruptAudioError,
    MemoryCeilingExceededError,
    ModelInvocationError,
    ModelLoadError,
    TranscriptionTimeoutError,
)

DEFAULT_MEMORY_CEILING_BYTES: int = ResourceConfig().memory_ceiling_bytes

_OOM_MARKERS: tuple[str, ...] = (
    "out of memory",
    "cannot allocate memory",
    "memory allocation failed",
    "failed to allocate",
    "heap out of memory",
)
_CORRUPT_AUDIO_MARKERS: tuple[str, ...] = (
    "failed to load audio",
    "invalid data found when processing input",
    "invalid audio format",
    "unsupported format",
    "could not decode",
    "error opening input",
    "corrupt",
)
_MODEL_LOAD_MARKERS: tuple[str, ...] = (
    "model_load_failure",
    "failed to load model",
    "model file not found",
    "sha256 checksum does not",
)


def classify_transcription_failure(
    err: BaseException,
    memory_reading: MemoryReading | None,
    *,
    ceiling_bytes: int = DEFAULT_MEMORY_CEILING_BYTES,
) -> ErrorKind:
    """Maps one attempt failure and the latest memory reading to an ErrorKind."""
    message = _normalized_message(err)

    source_kind = _classify_source_error(err)
    if source_kind is not None:
        return source_kind
    if _is_memory_failure(err, message, memory_reading, ceiling_bytes):
        return ErrorKind.OOM
    if isinstance(err, TranscriptionTimeoutError | TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(err, CorruptAudioError) or _has_marker(
        _chain_messages(err), _CORRUPT_AUDIO_MARKERS
    ):
        return ErrorKind.CORRUPT_AUDIO
    if isinstance(err, ModelLoadError) or _has_marker(message, _MODEL_LOAD_MARKERS):
        return ErrorKind.MODEL_LOAD_FAILURE
    if isinstance(err, ModelInvocationError):
        return ErrorKind.WHISPER_ERROR
    return ErrorKind.UNKNOWN


def _classify_source_error(err: BaseException) -> ErrorKind | None:
    """Returns FILE_* kinds for missing or unreadable source audio."""
    if isinstance(err, AudioSourceNotFoundError):
        return ErrorKind.FILE_NOT_FOUND
    if isinstance(err, AudioSourceUnreadableError):
        return ErrorKind.FILE_UNREADABLE
    if isinstance(err, FileNotFoundError):
        return ErrorKind.FILE_NOT_FOUND
    if isinstance(err, PermissionError | IsADirectoryError):
        return ErrorKind.FILE_UNREADABLE
    if isinstance(err, OSError) and err.errno == errno.EACCES:
        return ErrorKind.FILE_UNREADABLE
    return None


def _is_memory_failure(
    err: BaseException,
    message: str,
    memory_reading: MemoryReading | None,
    ceiling_bytes: int,
) -> bool:
    if memory_reading is not None and memory_reading.exceeds(ceiling_bytes):
        return True
    if isinstance(err, MemoryCeilingExceededError | MemoryError):
        return True
    return _has_marker(message, _OOM_MARKERS)


def _normalized_message(err: BaseException) -> str:
    return " ".join(str(err).split()).lower()


def _chain_messages(err: BaseException) -> str:
    """Joins messages of the exception and its explicit causes."""
    parts: list[str] = []
    current: BaseException | None = err
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        parts.append(_normalized_message(current))
        current = current.__cause__
    return " | ".join(parts)


def _has_marker(message: str, markers: tuple[str, ...]) -> bool:
    return any(marker in message for marker in markers)

"""Tests for transcription failure classification precedence."""

from __future__ import annotations

import errno

import pytest

from capture_bridge.domain import ErrorKind, MemoryReading
from capture_bridge.transcription.classifier import classify_transcription_failure
from capture_bridge.transcription.errors import (
    AudioSourceNotFoundError,
    AudioSourceUnreadableError,
    CorruptAudioError,
    MemoryCeilingExceededError,
    ModelInvocationError,
    ModelLoadError,
    TranscriptionTimeoutError,
)

CEILING = 3 * 1024**3
UNDER = MemoryReading(rss_bytes=CEILING - 1)
OVER = MemoryReading(rss_bytes=CEILING + 1)


def _classify(err: BaseException, reading: MemoryReading | None = None) -> ErrorKind:
    return classify_transcription_failure(err, reading, ceiling_bytes=CEILING)


@pytest.mark.parametrize(
    ("err", "expected"),
    [
        (AudioSourceNotFoundError("gone"), ErrorKind.FILE_NOT_FOUND),
        (FileNotFoundError("gone"), ErrorKind.FILE_NOT_FOUND),
        (AudioSourceUnreadableError("locked"), ErrorKind.FILE_UNREADABLE),
        (PermissionError("denied"), ErrorKind.FILE_UNREADABLE),
        (OSError(errno.EACCES, "denied"), ErrorKind.FILE_UNREADABLE),
        (MemoryCeilingExceededError("too big"), ErrorKind.OOM),
        (MemoryError(), ErrorKind.OOM),
        (RuntimeError("CUDA out of memory. Tried to allocate"), ErrorKind.OOM),
        (TranscriptionTimeoutError("slow"), ErrorKind.TIMEOUT),
        (TimeoutError("slow"), ErrorKind.TIMEOUT),
        (CorruptAudioError("bad header"), ErrorKind.CORRUPT_AUDIO),
        (ModelLoadError("missing weights"), ErrorKind.MODEL_LOAD_FAILURE),
        (ModelInvocationError("decoder blew up"), ErrorKind.WHISPER_ERROR),
        (ValueError("something else"), ErrorKind.UNKNOWN),
    ],
)
def test_classifies_each_error_family(err: BaseException, expected: ErrorKind) -> None:
    """Every error family should map to its documented kind."""
    assert _classify(err, UNDER) is expected


def test_source_errors_win_over_memory_pressure() -> None:
    """A missing file is reported as such even while memory is over the ceiling."""
    assert _classify(AudioSourceNotFoundError("gone"), OVER) is ErrorKind.FILE_NOT_FOUND


@pytest.mark.parametrize(
    "err",
    [
        TranscriptionTimeoutError("slow"),
        ModelInvocationError("segfault in decoder"),
        RuntimeError("opaque crash"),
    ],
)
def test_memory_over_ceiling_wins_over_model_errors(err: BaseException) -> None:
    """OOM is checked before timeouts and generic model failures."""
    assert _classify(err, OVER) is ErrorKind.OOM


def test_reading_exactly_at_ceiling_is_not_oom() -> None:
    reading = MemoryReading(rss_bytes=CEILING)

    assert _classify(ModelInvocationError("boom"), reading) is ErrorKind.WHISPER_ERROR


def test_corrupt_audio_marker_in_cause_chain() -> None:
    """Wrapped decoder failures should still classify as corrupt audio."""
    try:
        try:
            raise RuntimeError(
                "Failed to load audio: Invalid data found when processing input"
            )
        except RuntimeError as inner:
            raise ModelInvocationError("Model invocation failed") from inner
    except ModelInvocationError as err:
        wrapped = err

    assert _classify(wrapped, UNDER) is ErrorKind.CORRUPT_AUDIO


def test_model_load_marker_in_message() -> None:
    err = RuntimeError(
        "Model has been downloaded but the SHA256 checksum does not not match."
    )

    assert _classify(err, None) is ErrorKind.MODEL_LOAD_FAILURE


def test_classification_is_deterministic() -> None:
    """Identical inputs must always yield the same kind."""
    err = ModelInvocationError("decoder blew up")

    assert {_classify(err, UNDER) for _ in range(20)} == {ErrorKind.WHISPER_ERROR}


def test_missing_reading_falls_through_to_error_rules() -> None:
    assert _classify(TranscriptionTimeoutError("slow"), None) is ErrorKind.TIMEOUT

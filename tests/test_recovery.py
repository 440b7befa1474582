"""Tests for rebuilding the queue from the ledger after a restart."""

from __future__ import annotations

import threading
import time
from pathlib import Path

from capture_bridge.domain import CaptureLedgerStatus as Status
from capture_bridge.ledger import (
    CaptureRecord,
    InMemoryCaptureLedger,
    InMemoryEscalationLog,
    RecordingPlaceholderExporter,
)
from capture_bridge.transcription import TranscriptionEngine, recover_pending_jobs
from fakes import FakeAdapter, FakeRss, block_until, make_settings


def _engine(
    tmp_path: Path,
    ledger: InMemoryCaptureLedger,
    adapter: FakeAdapter,
    **settings_kwargs: float,
) -> TranscriptionEngine:
    return TranscriptionEngine(
        ledger=ledger,
        exporter=RecordingPlaceholderExporter(),
        escalation_log=InMemoryEscalationLog(),
        settings=make_settings(tmp_path, **settings_kwargs),  # type: ignore[arg-type]
        adapter=adapter,
        rss_reader=FakeRss(),
    )


def test_recovers_non_terminal_captures_in_ledger_order(
    tmp_path: Path, audio_file: Path
) -> None:
    """Discovered, interrupted, and retry-pending captures are re-queued."""
    ledger = InMemoryCaptureLedger(
        [
            CaptureRecord("done", str(audio_file), Status.TRANSCRIBED, 1),
            CaptureRecord("new", str(audio_file), Status.DISCOVERED),
            CaptureRecord("crashed", str(audio_file), Status.TRANSCRIBING, 1),
            CaptureRecord("retrying", str(audio_file), Status.TRANSCRIPTION_FAILED, 1),
            CaptureRecord("gave-up", str(audio_file), Status.EXPORTED_PLACEHOLDER, 1),
        ]
    )
    engine = _engine(tmp_path, ledger, FakeAdapter())
    try:
        jobs = recover_pending_jobs(ledger, engine)
        assert engine.wait_until_idle(timeout=5.0)
    finally:
        engine.shutdown(timeout=1.0)

    assert [(job.capture_id, job.attempt_count) for job in jobs] == [
        ("new", 1),
        ("crashed", 1),
        ("retrying", 2),
    ]
    for capture_id in ("new", "crashed", "retrying"):
        assert ledger.status_of(capture_id) is Status.TRANSCRIBED
    assert ledger.writes_for("done") == []
    assert ledger.writes_for("gave-up") == []


def test_recovered_retry_uses_remaining_budget(tmp_path: Path, audio_file: Path) -> None:
    """A capture that already used one TIMEOUT attempt gets exactly one more."""
    release = threading.Event()
    ledger = InMemoryCaptureLedger(
        [CaptureRecord("retrying", str(audio_file), Status.TRANSCRIPTION_FAILED, 1)]
    )
    adapter = FakeAdapter(script=[block_until(release), "unused"])
    engine = _engine(tmp_path, ledger, adapter, timeout_seconds=0.05)
    try:
        recover_pending_jobs(ledger, engine)
        assert engine.wait_until_idle(timeout=5.0)
    finally:
        release.set()
        engine.shutdown(timeout=1.0)

    assert len(adapter.transcribe_calls) == 1
    assert ledger.status_of("retrying") is Status.EXPORTED_PLACEHOLDER


def test_recovery_stops_at_backpressure(tmp_path: Path, audio_file: Path) -> None:
    release = threading.Event()
    records = [
        CaptureRecord(f"cap-{index}", str(audio_file), Status.DISCOVERED)
        for index in range(5)
    ]
    ledger = InMemoryCaptureLedger(records)
    adapter = FakeAdapter(script=[block_until(release, "text")])
    engine = _engine(tmp_path, ledger, adapter, max_depth=2)
    try:
        jobs = recover_pending_jobs(ledger, engine)
    finally:
        release.set()
        engine.wait_until_idle(timeout=5.0)
        engine.shutdown(timeout=1.0)

    assert [job.capture_id for job in jobs] == ["cap-0", "cap-1"]


def test_retry_budget_survives_a_restart(tmp_path: Path, audio_file: Path) -> None:
    """An attempt that failed before shutdown counts against the budget after it."""
    ledger = InMemoryCaptureLedger()
    ledger.add_capture("cap-1", str(audio_file))
    first = _engine(
        tmp_path,
        ledger,
        FakeAdapter(script=[RuntimeError("beam search")]),
        retry_backoff_seconds=60.0,
    )
    try:
        first.submit("cap-1", str(audio_file))
        deadline = time.monotonic() + 5.0
        while (
            ledger.status_of("cap-1") is not Status.TRANSCRIPTION_FAILED
            and time.monotonic() < deadline
        ):
            time.sleep(0.01)
    finally:
        first.shutdown(timeout=1.0)

    (record,) = ledger.list_captures_by_status([Status.TRANSCRIPTION_FAILED])
    assert record.attempt_count == 1

    adapter = FakeAdapter(script=[RuntimeError("beam search"), "unused"])
    second = _engine(tmp_path, ledger, adapter)
    try:
        (job,) = recover_pending_jobs(ledger, second)
        assert second.wait_until_idle(timeout=5.0)
    finally:
        second.shutdown(timeout=1.0)

    assert job.attempt_count == 2
    assert len(adapter.transcribe_calls) == 1
    assert ledger.status_of("cap-1") is Status.EXPORTED_PLACEHOLDER

"""Tests for metric sinks."""

import logging

import pytest

from capture_bridge.metrics import (
    PLACEHOLDER_EXPORT_TOTAL,
    TRANSCRIPTION_JOB_TOTAL,
    InMemoryMetrics,
    LoggingMetrics,
    NullMetrics,
)


def test_in_memory_metrics_counts_by_tags() -> None:
    """count() should filter events by every provided tag."""
    metrics = InMemoryMetrics()
    metrics.counter(TRANSCRIPTION_JOB_TOTAL, {"result": "success"})
    metrics.counter(TRANSCRIPTION_JOB_TOTAL, {"result": "retry"})
    metrics.counter(TRANSCRIPTION_JOB_TOTAL, {"result": "success"})
    metrics.counter(PLACEHOLDER_EXPORT_TOTAL, {"error_kind": "OOM"})

    assert metrics.count(TRANSCRIPTION_JOB_TOTAL) == 3
    assert metrics.count(TRANSCRIPTION_JOB_TOTAL, result="success") == 2
    assert metrics.count(PLACEHOLDER_EXPORT_TOTAL, error_kind="TIMEOUT") == 0


def test_in_memory_metrics_records_type_and_value() -> None:
    metrics = InMemoryMetrics()
    metrics.gauge("process_memory_usage_mb", 512.0)
    metrics.duration("transcription_duration_ms", 42.5, {"result": "success"})

    gauge, duration = metrics.events()

    assert (gauge.metric_type, gauge.value) == ("gauge", pytest.approx(512.0))
    assert duration.metric_type == "duration"
    assert duration.tags == {"result": "success"}


def test_logging_metrics_writes_debug_lines(caplog: pytest.LogCaptureFixture) -> None:
    """LoggingMetrics should describe each metric in one DEBUG line."""
    with caplog.at_level(logging.DEBUG, logger="capture_bridge.metrics"):
        LoggingMetrics().counter(TRANSCRIPTION_JOB_TOTAL, {"result": "failure"})

    assert "name=transcription_job_total" in caplog.text
    assert "'result': 'failure'" in caplog.text


def test_null_metrics_accepts_every_call() -> None:
    sink = NullMetrics()
    sink.counter("x")
    sink.gauge("y", 1.0, {"a": "b"})
    sink.duration("z", 2.0)

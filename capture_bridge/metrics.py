"""Metric names and sinks emitted by the transcription engine.

Only the shape of each metric is defined here; shipping events anywhere is
the embedding application's concern.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Literal, Protocol

from capture_bridge.domain import utc_now

TRANSCRIPTION_JOB_TOTAL = "transcription_job_total"
TRANSCRIPTION_DURATION_MS = "transcription_duration_ms"
TRANSCRIPTION_RETRY_TOTAL = "transcription_retry_total"
PLACEHOLDER_EXPORT_TOTAL = "placeholder_export_total"
MODEL_LOAD_DURATION_MS = "model_load_duration_ms"
PROCESS_MEMORY_USAGE_MB = "process_memory_usage_mb"

type MetricType = Literal["counter", "gauge", "duration"]
type MetricTags = dict[str, str]


@dataclass(frozen=True, slots=True)
class MetricEvent:
    """One emitted metric sample."""

    name: str
    value: float
    metric_type: MetricType
    tags: MetricTags = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)


class MetricsSink(Protocol):
    """Receiver for engine metrics."""

    def counter(self, name: str, tags: MetricTags | None = None) -> None: ...

    def gauge(
        self, name: str, value: float, tags: MetricTags | None = None
    ) -> None: ...

    def duration(
        self, name: str, value_ms: float, tags: MetricTags | None = None
    ) -> None: ...


class NullMetrics:
    """Discards every metric."""

    def counter(self, name: str, tags: MetricTags | None = None) -> None:
        del name, tags

    def gauge(self, name: str, value: float, tags: MetricTags | None = None) -> None:
        del name, value, tags

    def duration(
        self, name: str, value_ms: float, tags: MetricTags | None = None
    ) -> None:
        del name, value_ms, tags


class InMemoryMetrics:
    """Thread-safe in-memory metric recorder with simple queries."""

    def __init__(self) -> None:
        self._events: list[MetricEvent] = []
        self._lock = Lock()

    def _record(
        self,
        name: str,
        value: float,
        metric_type: MetricType,
        tags: MetricTags | None,
    ) -> None:
        event = MetricEvent(
            name=name,
            value=float(value),
            metric_type=metric_type,
            tags=dict(tags or {}),
        )
        with self._lock:
            self._events.append(event)

    def counter(self, name: str, tags: MetricTags | None = None) -> None:
        self._record(name, 1.0, "counter", tags)

    def gauge(self, name: str, value: float, tags: MetricTags | None = None) -> None:
        self._record(name, value, "gauge", tags)

    def duration(
        self, name: str, value_ms: float, tags: MetricTags | None = None
    ) -> None:
        self._record(name, value_ms, "duration", tags)

    def events(self, name: str | None = None) -> list[MetricEvent]:
        """Returns recorded events, optionally filtered by name."""
        with self._lock:
            snapshot = list(self._events)
        if name is None:
            return snapshot
        return [event for event in snapshot if event.name == name]

    def count(self, name: str, **tags: str) -> int:
        """Returns how many events of `name` carry all the given tags."""
        return sum(
            1
            for event in self.events(name)
            if all(event.tags.get(key) == value for key, value in tags.items())
        )


class LoggingMetrics:
    """Writes each metric as one DEBUG log line."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("capture_bridge.metrics")

    def _log(
        self,
        name: str,
        value: float,
        metric_type: MetricType,
        tags: MetricTags | None,
    ) -> None:
        self._logger.debug(
            "metric type=%s name=%s value=%.3f tags=%s",
            metric_type,
            name,
            value,
            dict(tags or {}),
        )

    def counter(self, name: str, tags: MetricTags | None = None) -> None:
        self._log(name, 1.0, "counter", tags)

    def gauge(self, name: str, value: float, tags: MetricTags | None = None) -> None:
        self._log(name, value, "gauge", tags)

    def duration(
        self, name: str, value_ms: float, tags: MetricTags | None = None
    ) -> None:
        self._log(name, value_ms, "duration", tags)

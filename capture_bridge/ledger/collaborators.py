"""Contracts for the external collaborators the engine writes to.

The ledger, the placeholder exporter, and the escalation log are owned by the
embedding application. The in-memory and JSONL implementations here are
reference implementations for tests and for embedders without storage.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Protocol, runtime_checkable

from capture_bridge.domain import CaptureLedgerStatus, ErrorKind, utc_now
from capture_bridge.ledger.status import assert_valid_transition


class CaptureLedger(Protocol):
    """Durable store of capture lifecycle status."""

    def update_status(
        self,
        capture_id: str,
        status: CaptureLedgerStatus,
        fields: Mapping[str, object] | None = None,
    ) -> None: ...


@runtime_checkable
class RecoverableCaptureLedger(CaptureLedger, Protocol):
    """Ledger that can list captures for rebuilding the queue after restart."""

    def list_captures_by_status(
        self, statuses: Iterable[CaptureLedgerStatus]
    ) -> list[CaptureRecord]: ...


class PlaceholderExporter(Protocol):
    """Writes the fallback document for a permanently failed capture."""

    def export_placeholder(
        self, capture_id: str, error_kind: ErrorKind, reason_text: str
    ) -> None: ...


@dataclass(frozen=True, slots=True)
class EscalationEntry:
    """One operator-visible failure record."""

    capture_id: str
    error_kind: ErrorKind
    message: str
    attempt_count: int
    timestamp: datetime = field(default_factory=utc_now)

    def to_record(self) -> dict[str, object]:
        record = asdict(self)
        record["error_kind"] = self.error_kind.value
        record["timestamp"] = self.timestamp.isoformat()
        return record


class EscalationLog(Protocol):
    """Durable error log distinct from metrics."""

    def record(self, entry: EscalationEntry) -> None: ...


@dataclass(frozen=True, slots=True)
class CaptureRecord:
    """Minimal view of a ledger row needed to rebuild jobs."""

    capture_id: str
    audio_path: str
    status: CaptureLedgerStatus
    attempt_count: int = 0


@dataclass(frozen=True, slots=True)
class StatusWrite:
    """One recorded ledger write."""

    capture_id: str
    status: CaptureLedgerStatus
    fields: dict[str, object] | None


class InMemoryCaptureLedger:
    """In-memory ledger that enforces the status state machine on writes."""

    def __init__(self, records: Iterable[CaptureRecord] = ()) -> None:
        self._lock = Lock()
        self._records: dict[str, CaptureRecord] = {}
        self._fields: dict[str, dict[str, object]] = {}
        self.writes: list[StatusWrite] = []
        for record in records:
            self._records[record.capture_id] = record

    def add_capture(
        self,
        capture_id: str,
        audio_path: str,
        status: CaptureLedgerStatus = CaptureLedgerStatus.DISCOVERED,
    ) -> None:
        with self._lock:
            self._records[capture_id] = CaptureRecord(
                capture_id=capture_id, audio_path=audio_path, status=status
            )

    def update_status(
        self,
        capture_id: str,
        status: CaptureLedgerStatus,
        fields: Mapping[str, object] | None = None,
    ) -> None:
        content = dict(fields or {})
        attempt_count = content.pop("attempt_count", None)
        with self._lock:
            record = self._records.get(capture_id)
            if record is not None:
                assert_valid_transition(record.status, status)
                self._records[capture_id] = CaptureRecord(
                    capture_id=capture_id,
                    audio_path=record.audio_path,
                    status=status,
                    attempt_count=(
                        attempt_count
                        if isinstance(attempt_count, int)
                        else record.attempt_count
                    ),
                )
            if content:
                self._fields.setdefault(capture_id, {}).update(content)
            self.writes.append(
                StatusWrite(
                    capture_id=capture_id,
                    status=status,
                    fields=dict(fields) if fields else None,
                )
            )

    def status_of(self, capture_id: str) -> CaptureLedgerStatus | None:
        with self._lock:
            record = self._records.get(capture_id)
            return record.status if record is not None else None

    def fields_of(self, capture_id: str) -> dict[str, object]:
        with self._lock:
            return dict(self._fields.get(capture_id, {}))

    def writes_for(self, capture_id: str) -> list[StatusWrite]:
        with self._lock:
            return [write for write in self.writes if write.capture_id == capture_id]

    def list_captures_by_status(
        self, statuses: Iterable[CaptureLedgerStatus]
    ) -> list[CaptureRecord]:
        wanted = frozenset(statuses)
        with self._lock:
            return [
                record for record in self._records.values() if record.status in wanted
            ]


@dataclass(frozen=True, slots=True)
class PlaceholderExport:
    """One recorded placeholder export call."""

    capture_id: str
    error_kind: ErrorKind
    reason_text: str


class RecordingPlaceholderExporter:
    """Placeholder exporter that keeps every call in memory."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.exports: list[PlaceholderExport] = []

    def export_placeholder(
        self, capture_id: str, error_kind: ErrorKind, reason_text: str
    ) -> None:
        with self._lock:
            self.exports.append(
                PlaceholderExport(
                    capture_id=capture_id,
                    error_kind=error_kind,
                    reason_text=reason_text,
                )
            )


class InMemoryEscalationLog:
    """Escalation log kept in memory."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.entries: list[EscalationEntry] = []

    def record(self, entry: EscalationEntry) -> None:
        with self._lock:
            self.entries.append(entry)


class JsonlEscalationLog:
    """Appends escalation entries to a JSON Lines file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = Lock()

    def record(self, entry: EscalationEntry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(entry.to_record(), ensure_ascii=False, sort_keys=True)
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def read_entries(self) -> list[dict[str, object]]:
        """Returns all entries written so far, oldest first."""
        if not self.path.exists():
            return []
        entries: list[dict[str, object]] = []
        with self.path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                raw = line.strip()
                if not raw:
                    continue
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError as err:
                    raise ValueError(
                        f"Invalid JSON in escalation log {self.path} "
                        f"at line {line_number}: {err}"
                    ) from err
                entries.append(payload)
        return entries


def build_placeholder_reason(
    *,
    error_kind: ErrorKind,
    error_message: str,
    attempt_count: int,
    audio_path: str,
    failed_at: datetime | None = None,
) -> str:
    """Builds the human-readable failure reason carried by a placeholder."""
    timestamp = (failed_at or utc_now()).isoformat()
    return "\n".join(
        (
            f"[TRANSCRIPTION_FAILED: {error_kind.value}]",
            f"Audio file: {audio_path}",
            f"Error: {error_message}",
            f"Attempt count: {attempt_count}",
            f"Failed at: {timestamp}",
        )
    )

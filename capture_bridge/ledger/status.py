"""Capture ledger status state machine and the validated status writer."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from threading import Lock
from typing import TYPE_CHECKING

from capture_bridge.domain import CaptureLedgerStatus
from capture_bridge.utils.logger import get_logger

if TYPE_CHECKING:
    from capture_bridge.ledger.collaborators import CaptureLedger

logger = get_logger(__name__)

_VALID_TRANSITIONS: Mapping[CaptureLedgerStatus, frozenset[CaptureLedgerStatus]] = {
    CaptureLedgerStatus.DISCOVERED: frozenset({CaptureLedgerStatus.TRANSCRIBING}),
    # Self-transition re-marks a capture recovered after a crash mid-attempt.
    CaptureLedgerStatus.TRANSCRIBING: frozenset(
        {
            CaptureLedgerStatus.TRANSCRIBING,
            CaptureLedgerStatus.TRANSCRIBED,
            CaptureLedgerStatus.TRANSCRIPTION_FAILED,
            CaptureLedgerStatus.EXPORTED_PLACEHOLDER,
        }
    ),
    CaptureLedgerStatus.TRANSCRIPTION_FAILED: frozenset(
        {
            CaptureLedgerStatus.TRANSCRIBING,
            CaptureLedgerStatus.EXPORTED_PLACEHOLDER,
        }
    ),
    CaptureLedgerStatus.TRANSCRIBED: frozenset(),
    CaptureLedgerStatus.EXPORTED_PLACEHOLDER: frozenset(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when a ledger status write would violate the state machine."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"Invalid capture status transition: '{current}' -> '{requested}'."
        )
        self.current = current
        self.requested = requested


def _coerce(status: str) -> CaptureLedgerStatus | None:
    try:
        return CaptureLedgerStatus(status)
    except ValueError:
        return None


def valid_transitions(status: str) -> frozenset[CaptureLedgerStatus]:
    """Returns statuses reachable from `status` (empty for terminal/unknown)."""
    current = _coerce(status)
    if current is None:
        return frozenset()
    return _VALID_TRANSITIONS[current]


def validate_transition(current: str, requested: str) -> bool:
    """Returns whether `current -> requested` is an allowed transition."""
    target = _coerce(requested)
    return target is not None and target in valid_transitions(current)


def assert_valid_transition(current: str, requested: str) -> None:
    """Raises InvalidStatusTransitionError for a disallowed transition."""
    if not validate_transition(current, requested):
        raise InvalidStatusTransitionError(current, requested)


def is_terminal_status(status: str) -> bool:
    """Returns whether no transcription attempt may follow `status`."""
    current = _coerce(status)
    return current is not None and not _VALID_TRANSITIONS[current]


def validate_status_path(path: Sequence[str]) -> bool:
    """Returns whether every consecutive pair in `path` is a valid transition."""
    if len(path) < 2:
        return len(path) == 1 and _coerce(path[0]) is not None
    return all(
        validate_transition(current, requested)
        for current, requested in zip(path, path[1:], strict=False)
    )


class LedgerStatusWriter:
    """Validates and writes capture status transitions, one row at a time.

    The writer remembers the last status it wrote for each capture. Captures it
    has not seen are assumed to be ``discovered`` unless seeded otherwise.
    """

    def __init__(self, ledger: CaptureLedger) -> None:
        self._ledger = ledger
        self._known: dict[str, CaptureLedgerStatus] = {}
        self._lock = Lock()

    def seed(self, capture_id: str, status: CaptureLedgerStatus) -> None:
        """Records the ledger's current status for a recovered capture."""
        with self._lock:
            self._known[capture_id] = status

    def current(self, capture_id: str) -> CaptureLedgerStatus:
        with self._lock:
            return self._known.get(capture_id, CaptureLedgerStatus.DISCOVERED)

    def transition(
        self,
        capture_id: str,
        status: CaptureLedgerStatus,
        fields: Mapping[str, object] | None = None,
    ) -> None:
        """Validates then writes one status transition to the ledger."""
        current = self.current(capture_id)
        assert_valid_transition(current, status)
        self._ledger.update_status(capture_id, status, dict(fields) if fields else None)
        with self._lock:
            self._known[capture_id] = status
        logger.debug(
            "Capture %s status %s -> %s.", capture_id, current.value, status.value
        )

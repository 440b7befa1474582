"""Capture ledger status machine and collaborator contracts."""

from .collaborators import (
    CaptureLedger,
    CaptureRecord,
    EscalationEntry,
    EscalationLog,
    InMemoryCaptureLedger,
    InMemoryEscalationLog,
    JsonlEscalationLog,
    PlaceholderExporter,
    RecordingPlaceholderExporter,
    RecoverableCaptureLedger,
    build_placeholder_reason,
)
from .status import (
    InvalidStatusTransitionError,
    LedgerStatusWriter,
    assert_valid_transition,
    is_terminal_status,
    valid_transitions,
    validate_status_path,
    validate_transition,
)

__all__ = [
    "CaptureLedger",
    "CaptureRecord",
    "EscalationEntry",
    "EscalationLog",
    "InMemoryCaptureLedger",
    "InMemoryEscalationLog",
    "InvalidStatusTransitionError",
    "JsonlEscalationLog",
    "LedgerStatusWriter",
    "PlaceholderExporter",
    "RecordingPlaceholderExporter",
    "RecoverableCaptureLedger",
    "assert_valid_transition",
    "build_placeholder_reason",
    "is_terminal_status",
    "valid_transitions",
    "validate_status_path",
    "validate_transition",
]

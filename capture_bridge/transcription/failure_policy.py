"""Static retry/terminal policy per transcription error kind."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

from capture_bridge.domain import CaptureLedgerStatus, ErrorKind


class FailureDisposition(StrEnum):
    """Action the worker takes after one classified failure."""

    RETRY = "retry"
    EXPORT_PLACEHOLDER = "export_placeholder"


@dataclass(frozen=True, slots=True)
class FailurePolicy:
    """Retry budget and terminal handling for one error kind."""

    retriable: bool
    max_attempts: int
    terminal_ledger_status: CaptureLedgerStatus
    escalate: bool


@dataclass(frozen=True, slots=True)
class FailureDecision:
    """Resolved action for one failed attempt."""

    disposition: FailureDisposition
    ledger_status: CaptureLedgerStatus
    escalate: bool
    reason_code: str

    @property
    def will_retry(self) -> bool:
        return self.disposition is FailureDisposition.RETRY


_PERMANENT = FailurePolicy(
    retriable=False,
    max_attempts=0,
    terminal_ledger_status=CaptureLedgerStatus.EXPORTED_PLACEHOLDER,
    escalate=True,
)
# Retriable kinds escalate only once their budget is exhausted.
_TRANSIENT = FailurePolicy(
    retriable=True,
    max_attempts=2,
    terminal_ledger_status=CaptureLedgerStatus.EXPORTED_PLACEHOLDER,
    escalate=False,
)

FAILURE_POLICIES: Mapping[ErrorKind, FailurePolicy] = MappingProxyType(
    {
        ErrorKind.FILE_NOT_FOUND: _PERMANENT,
        ErrorKind.FILE_UNREADABLE: _PERMANENT,
        ErrorKind.CORRUPT_AUDIO: _PERMANENT,
        ErrorKind.OOM: _PERMANENT,
        ErrorKind.MODEL_LOAD_FAILURE: _PERMANENT,
        ErrorKind.TIMEOUT: _TRANSIENT,
        ErrorKind.WHISPER_ERROR: _TRANSIENT,
        ErrorKind.UNKNOWN: _PERMANENT,
    }
)


def policy_for(error_kind: ErrorKind) -> FailurePolicy:
    """Returns the static policy for one error kind."""
    return FAILURE_POLICIES[error_kind]


def decide_failure_action(
    *,
    error_kind: ErrorKind,
    attempt_count: int,
) -> FailureDecision:
    """Decides retry versus placeholder export for one failed attempt."""
    policy = policy_for(error_kind)
    if policy.retriable and attempt_count < policy.max_attempts:
        return FailureDecision(
            disposition=FailureDisposition.RETRY,
            ledger_status=CaptureLedgerStatus.TRANSCRIPTION_FAILED,
            escalate=False,
            reason_code="retriable_within_budget",
        )
    return FailureDecision(
        disposition=FailureDisposition.EXPORT_PLACEHOLDER,
        ledger_status=policy.terminal_ledger_status,
        escalate=True if policy.retriable else policy.escalate,
        reason_code=(
            "retry_budget_exhausted" if policy.retriable else "non_retriable_failure"
        ),
    )

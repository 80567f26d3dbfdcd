"""Request, per-attempt outcome and final result models for a lookup.

``AttemptOutcome`` is a tagged union: ``Success``, ``RetryableFailure`` or
``TerminalFailure``.  ``LookupResult`` is what callers (API, CLI) receive.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from vrlookup.evidence.artifacts import ScreenshotArtifact
from vrlookup.exceptions import LookupFailedError, LookupValidationError
from vrlookup.models.states import LookupState


def _new_request_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class LookupRequest:
    """A plate + sticker query.  Use ``create`` to get a validated instance."""

    license_plate: str
    sticker_number: str
    request_id: str = field(default_factory=_new_request_id)

    @classmethod
    def create(cls, license_plate: str | None, sticker_number: str | None) -> "LookupRequest":
        """Strip both fields and reject blanks.

        Raises:
            LookupValidationError: If either field is missing or blank.
        """
        plate = (license_plate or "").strip()
        sticker = (sticker_number or "").strip()
        missing = [name for name, value in (("licensePlate", plate), ("stickerNumber", sticker)) if not value]
        if missing:
            raise LookupValidationError(missing)
        return cls(license_plate=plate, sticker_number=sticker)


# ---------------------------------------------------------------------------
# Attempt outcomes
# ---------------------------------------------------------------------------


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class Success:
    record: dict[str, str]
    artifact: ScreenshotArtifact
    state: LookupState = LookupState.EXTRACTED
    reached: LookupState = LookupState.EXTRACTED
    kind: OutcomeKind = OutcomeKind.SUCCESS


@dataclass(frozen=True)
class RetryableFailure:
    reason: str
    state: LookupState = LookupState.RETRY
    # Last step completed before the failure
    reached: LookupState = LookupState.INIT
    kind: OutcomeKind = OutcomeKind.RETRYABLE


@dataclass(frozen=True)
class TerminalFailure:
    reason: str
    state: LookupState = LookupState.FAILED
    reached: LookupState = LookupState.CLASSIFIED
    kind: OutcomeKind = OutcomeKind.TERMINAL


AttemptOutcome = Union[Success, RetryableFailure, TerminalFailure]


@dataclass
class RetryBudget:
    """Outer attempt counter, owned by the workflow loop."""

    max_attempts: int
    attempts_made: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts_made >= self.max_attempts

    def consume(self) -> int:
        """Count a new attempt and return its 1-based index."""
        self.attempts_made += 1
        return self.attempts_made


@dataclass
class AttemptRecord:
    """What happened in one attempt (kept for diagnostics)."""

    attempt: int
    state: LookupState
    kind: OutcomeKind
    reason: str = ""
    elapsed_ms: float = 0.0
    reached: LookupState | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt,
            "state": self.state.value,
            "reached": self.reached.value if self.reached else None,
            "outcome": self.kind.value,
            "reason": self.reason,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


class LookupStatus(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class LookupResult:
    """Final outcome of a lookup after all attempts."""

    request_id: str
    status: LookupStatus
    data: dict[str, str] = field(default_factory=dict)
    artifact: ScreenshotArtifact | None = None
    attempts: int = 0
    error: str = ""
    elapsed_ms: float = 0.0
    history: list[AttemptRecord] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == LookupStatus.SUCCESS

    def raise_for_status(self) -> None:
        """Raise ``LookupFailedError`` unless the lookup succeeded."""
        if not self.success:
            raise LookupFailedError(
                self.error,
                attempts=self.attempts,
                terminal=self.status == LookupStatus.NOT_FOUND,
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "status": self.status.value,
            "success": self.success,
            "data": self.data,
            "screenshot": self.artifact.to_dict() if self.artifact else None,
            "attempts": self.attempts,
            "error": self.error,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "history": [h.to_dict() for h in self.history],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False, default=str)

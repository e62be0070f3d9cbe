"""
Error taxonomy for the safety core.

Every failure raised by the ledger, snapshot store, validation gates and
handover controller derives from AionError, so callers can halt an
orchestration step on any of them with a single except clause.
"""

from __future__ import annotations

from typing import Any, Sequence


class AionError(Exception):
    """Base class for all safety-core errors."""


class ValidationError(AionError, ValueError):
    """A change set was rejected before any mutation happened."""

    def __init__(self, validator: str, reason: str):
        self.validator = validator
        self.reason = reason
        super().__init__(f"[{validator}] {reason}")


class SnapshotError(AionError):
    """
    Capturing or restoring file state failed.

    `failures` maps each failed relative path to an error message;
    `restored` lists the paths that were handled successfully before
    and after the failures.
    """

    def __init__(
        self,
        message: str,
        *,
        failures: dict[str, str] | None = None,
        restored: Sequence[str] = (),
    ):
        self.failures = dict(failures or {})
        self.restored = list(restored)
        super().__init__(message)


class CommitError(AionError):
    """
    A validated change set could not be captured or applied.

    `snapshot` holds the pre-image captured before application (None if
    capture itself failed), so the caller can restore partially applied
    state explicitly.
    """

    def __init__(self, reason: str, *, snapshot: Any = None):
        self.reason = reason
        self.snapshot = snapshot
        super().__init__(reason)


class PersistenceError(AionError):
    """
    A durable write (or read) of a persisted document failed.

    In-memory state has been reverted to what it was before the call.
    `record` carries the payload that could not be recorded, if any.
    """

    def __init__(self, message: str, *, path: Any = None, record: Any = None):
        self.path = path
        self.record = record
        super().__init__(message)


class NotFoundError(AionError, LookupError):
    """An unknown commit or snapshot id was requested."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class InvalidStateError(AionError):
    """The requested operation is not allowed in the current state."""


class IllegalTransitionError(AionError, ValueError):
    """A handover was rejected by the transition graph."""

    def __init__(self, from_persona: str, to_persona: str, allowed: Sequence[str] = ()):
        self.from_persona = from_persona
        self.to_persona = to_persona
        self.allowed = tuple(allowed)
        hint = ", ".join(self.allowed) if self.allowed else "none"
        super().__init__(
            f"Invalid transition from {from_persona} to {to_persona} (allowed: {hint})"
        )

"""
Micro-commit safety protocol.

Every file mutation made by a persona is validated, snapshotted, applied and
recorded as an immutable commit that can be rolled back exactly once.
"""

from __future__ import annotations

from .changeset import Action, ChangeSet, FileOperation
from .ledger import Commit, CommitLedger, CommitStatus, LedgerStatistics
from .protocol import SafetyController
from .reconcile import ReconciliationFinding, ReconciliationReport, reconcile
from .snapshot import Snapshot, SnapshotEntry, SnapshotStore
from .validators import (
    ValidationGates,
    ValidationResult,
    Validator,
    ValidatorKind,
    default_gates,
)

__all__ = [
    # Change sets
    "Action",
    "ChangeSet",
    "FileOperation",
    # Ledger
    "Commit",
    "CommitLedger",
    "CommitStatus",
    "LedgerStatistics",
    # Snapshots
    "Snapshot",
    "SnapshotEntry",
    "SnapshotStore",
    # Gates
    "ValidationGates",
    "ValidationResult",
    "Validator",
    "ValidatorKind",
    "default_gates",
    # Protocol
    "SafetyController",
    "ReconciliationFinding",
    "ReconciliationReport",
    "reconcile",
]

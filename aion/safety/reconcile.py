"""
Startup reconciliation between the ledger and persisted snapshots.

A snapshot is persisted before its change set is applied; the commit that
references it is appended only after application succeeds. A snapshot no
commit references is therefore an orphan left by a crash or a failed
application. Reconciliation compares each orphan's pre-image with the
current files:

- files unchanged   -> "unapplied": nothing happened, safe to retry
- files changed     -> "apply_status_unknown": files were mutated but no
                       commit records it; an operator must inspect

Findings are reported and logged. Nothing is repaired automatically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from ..errors import PersistenceError, SnapshotError
from .ledger import CommitLedger
from .snapshot import SnapshotStore

logger = logging.getLogger(__name__)

FindingKind = Literal["unapplied", "apply_status_unknown", "unreadable"]


@dataclass(frozen=True)
class ReconciliationFinding:
    snapshot_id: str
    kind: FindingKind
    changed_paths: tuple[str, ...] = ()
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshot_id": self.snapshot_id,
            "kind": self.kind,
            "changed_paths": list(self.changed_paths),
            "detail": self.detail,
        }


@dataclass
class ReconciliationReport:
    snapshots_checked: int = 0
    findings: list[ReconciliationFinding] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not any(f.kind != "unapplied" for f in self.findings)

    def unknown(self) -> list[ReconciliationFinding]:
        return [f for f in self.findings if f.kind == "apply_status_unknown"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshots_checked": self.snapshots_checked,
            "clean": self.clean,
            "findings": [f.to_dict() for f in self.findings],
        }


def reconcile(ledger: CommitLedger, snapshots: SnapshotStore) -> ReconciliationReport:
    """Compare orphan snapshots against current file state."""
    referenced = ledger.snapshot_refs()
    report = ReconciliationReport()

    for snapshot_id in snapshots.list_ids():
        if snapshot_id in referenced:
            continue
        report.snapshots_checked += 1
        try:
            snapshot = snapshots.load(snapshot_id)
        except PersistenceError as exc:
            logger.warning("Orphan snapshot %s is unreadable: %s", snapshot_id, exc)
            report.findings.append(ReconciliationFinding(snapshot_id, "unreadable", detail=str(exc)))
            continue

        try:
            changed = snapshots.diff(snapshot)
        except SnapshotError as exc:
            logger.warning("Orphan snapshot %s has an invalid path: %s", snapshot_id, exc)
            report.findings.append(ReconciliationFinding(snapshot_id, "unreadable", detail=str(exc)))
            continue

        if changed:
            logger.warning(
                "Commit record apply status unknown: snapshot %s has no commit but %d path(s) changed: %s",
                snapshot_id,
                len(changed),
                ", ".join(changed),
            )
            report.findings.append(
                ReconciliationFinding(snapshot_id, "apply_status_unknown", changed_paths=tuple(changed))
            )
        else:
            logger.debug("Orphan snapshot %s was never applied", snapshot_id)
            report.findings.append(ReconciliationFinding(snapshot_id, "unapplied"))

    return report

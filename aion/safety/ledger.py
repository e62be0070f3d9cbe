"""
Commit ledger.

The ledger is the ordered record of every micro-commit. It is append-only
with one exception: a commit's status may flip from `committed` to
`rolled_back`, exactly once.

Storage format: a single JSON document, rewritten in full (temp file +
rename) after every mutation, so a crash mid-write leaves the previous
valid document in place:

    {"version": 1, "commits": [{...}, {...}]}
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from ..errors import InvalidStateError, NotFoundError, PersistenceError
from ..state.personas import normalize_persona
from ..util import atomic_write_json
from .changeset import ChangeSet

logger = logging.getLogger(__name__)

LEDGER_VERSION = 1


class CommitStatus(str, Enum):
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class Commit:
    """One micro-commit. Immutable; status changes produce a new record."""

    id: str
    persona: str
    step_id: str
    description: str
    change_set: ChangeSet
    digest: str
    created_at: datetime
    snapshot_ref: str
    status: CommitStatus = CommitStatus.COMMITTED
    rolled_back_at: datetime | None = None

    @property
    def short_digest(self) -> str:
        return self.digest[:8]

    @property
    def is_rolled_back(self) -> bool:
        return self.status is CommitStatus.ROLLED_BACK

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "id": self.id,
            "persona": self.persona,
            "step_id": self.step_id,
            "description": self.description,
            "change_set": self.change_set.to_dict(),
            "digest": self.digest,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
            "snapshot_ref": self.snapshot_ref,
            "rolled_back_at": self.rolled_back_at.isoformat() if self.rolled_back_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Commit:
        """Reconstruct from JSON dict."""
        rolled_back_at = data.get("rolled_back_at")
        return cls(
            id=data["id"],
            persona=data["persona"],
            step_id=data["step_id"],
            description=data.get("description", ""),
            change_set=ChangeSet.from_dict(data.get("change_set", {})),
            digest=data["digest"],
            created_at=datetime.fromisoformat(data["created_at"]),
            status=CommitStatus(data.get("status", CommitStatus.COMMITTED.value)),
            snapshot_ref=data.get("snapshot_ref") or "",
            rolled_back_at=datetime.fromisoformat(rolled_back_at) if rolled_back_at else None,
        )


@dataclass
class LedgerStatistics:
    """Derived aggregate over the ledger. Computed, not stored."""

    total_commits: int = 0
    counts_by_persona: dict[str, int] = field(default_factory=dict)
    counts_by_status: dict[str, int] = field(default_factory=dict)
    rollback_rate_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_commits": self.total_commits,
            "counts_by_persona": dict(self.counts_by_persona),
            "counts_by_status": dict(self.counts_by_status),
            "rollback_rate_percent": self.rollback_rate_percent,
        }


class CommitLedger:
    """
    Ordered, durable record of commits for one project root.

    INVARIANT: in-memory state always matches the last successfully
    persisted document. A failed write reverts the in-memory change.
    """

    def __init__(self, ledger_path: Path):
        """
        Initialize ledger, replaying any persisted document.

        Args:
            ledger_path: Path to the ledger JSON document
        """
        self.ledger_path = ledger_path
        self._commits: list[Commit] = []
        self._by_id: dict[str, int] = {}
        self._load()

    def _load(self) -> None:
        if not self.ledger_path.exists():
            return
        try:
            data = json.loads(self.ledger_path.read_text(encoding="utf-8"))
            records = data["commits"] if isinstance(data, dict) else data
            commits = [Commit.from_dict(raw) for raw in records]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise PersistenceError(f"Unreadable commit ledger {self.ledger_path}: {exc}", path=self.ledger_path) from exc

        for commit in commits:
            if commit.id in self._by_id:
                raise PersistenceError(
                    f"Duplicate commit id {commit.id} in {self.ledger_path}", path=self.ledger_path
                )
            self._by_id[commit.id] = len(self._commits)
            self._commits.append(commit)
        logger.debug("Loaded %d commits from %s", len(self._commits), self.ledger_path)

    def _persist(self) -> None:
        document = {
            "version": LEDGER_VERSION,
            "commits": [c.to_dict() for c in self._commits],
        }
        atomic_write_json(self.ledger_path, document)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def append(self, commit: Commit) -> None:
        """
        Append a commit and persist the ledger.

        Raises:
            InvalidStateError: if the commit id is already recorded
            PersistenceError: if the durable write fails (the in-memory
                append is undone; the attempted commit is attached)
        """
        if commit.id in self._by_id:
            raise InvalidStateError(f"Commit {commit.id} already recorded")

        self._by_id[commit.id] = len(self._commits)
        self._commits.append(commit)
        try:
            self._persist()
        except OSError as exc:
            self._commits.pop()
            del self._by_id[commit.id]
            raise PersistenceError(
                f"Failed to persist commit {commit.id}: {exc}",
                path=self.ledger_path,
                record=commit,
            ) from exc

    def mark_rolled_back(self, commit_id: str, timestamp: datetime) -> Commit:
        """
        Flip a commit's status to rolled_back and persist.

        Double rollback is rejected, not silently accepted.
        """
        idx = self._by_id.get(commit_id)
        if idx is None:
            raise NotFoundError("commit", commit_id)
        previous = self._commits[idx]
        if previous.is_rolled_back:
            raise InvalidStateError(f"Commit {commit_id} is already rolled back")

        updated = replace(previous, status=CommitStatus.ROLLED_BACK, rolled_back_at=timestamp)
        self._commits[idx] = updated
        try:
            self._persist()
        except OSError as exc:
            self._commits[idx] = previous
            raise PersistenceError(
                f"Failed to persist rollback of {commit_id}: {exc}",
                path=self.ledger_path,
                record=updated,
            ) from exc
        return updated

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._commits)

    def __iter__(self) -> Iterator[Commit]:
        return iter(list(self._commits))

    def find_by_id(self, commit_id: str) -> Commit | None:
        idx = self._by_id.get(commit_id)
        return self._commits[idx] if idx is not None else None

    def find_by_persona(self, persona: str, limit: int | None = 10) -> list[Commit]:
        """Most recent `limit` commits by `persona`, in append order."""
        try:
            persona = normalize_persona(persona)
        except ValueError:
            return []
        matches = [c for c in self._commits if c.persona == persona]
        return _tail(matches, limit)

    def history(self, limit: int | None = 20) -> list[Commit]:
        """Most recent `limit` commits, in append order."""
        return _tail(self._commits, limit)

    def snapshot_refs(self) -> set[str]:
        return {c.snapshot_ref for c in self._commits if c.snapshot_ref}

    def statistics(self) -> LedgerStatistics:
        """Aggregate counts. Pure; no I/O."""
        by_persona = Counter(c.persona for c in self._commits)
        by_status = Counter(c.status.value for c in self._commits)
        total = len(self._commits)
        rolled_back = by_status.get(CommitStatus.ROLLED_BACK.value, 0)
        return LedgerStatistics(
            total_commits=total,
            counts_by_persona=dict(by_persona),
            counts_by_status=dict(by_status),
            rollback_rate_percent=(rolled_back / total * 100.0) if total else 0.0,
        )


def _tail(items: list[Commit], limit: int | None) -> list[Commit]:
    if limit is None:
        return list(items)
    if limit <= 0:
        return []
    return items[-limit:]

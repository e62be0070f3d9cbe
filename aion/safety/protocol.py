"""
Micro-commit safety protocol.

Orchestrates: validate → digest → capture (+persist) snapshot → apply → append

Key invariants:
- Validation failures never reach the ledger or the filesystem
- The snapshot is captured and persisted before any file is touched
- A ledger entry exists only if application succeeded
- Rollback is caller-initiated and happens at most once per commit
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

from ..errors import (
    CommitError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    SnapshotError,
    ValidationError,
)
from ..state.personas import normalize_persona
from ..util import MonotonicUlid, utc_now
from .changeset import Action, ChangeSet, FileOperation
from .ledger import Commit, CommitLedger, CommitStatus
from .snapshot import Snapshot, SnapshotStore
from .validators import ValidationGates, resolve_inside

logger = logging.getLogger(__name__)


class SafetyController:
    """
    Single chokepoint for file mutations made by personas.

    Operations are sequential: a second micro_commit or rollback waits for
    the first to finish, and re-entering from the same thread (e.g. from a
    validator) raises InvalidStateError.
    """

    def __init__(
        self,
        root: Path,
        ledger: CommitLedger,
        snapshots: SnapshotStore,
        gates: ValidationGates,
        *,
        id_factory: Callable[[], str] | None = None,
    ):
        self.root = root.resolve()
        self.ledger = ledger
        self.snapshots = snapshots
        self.gates = gates
        self._new_id = id_factory or MonotonicUlid()
        self._lock = threading.Lock()
        self._active = threading.local()

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        if getattr(self._active, "operation", None):
            raise InvalidStateError(
                f"{operation} called while {self._active.operation} is in progress"
            )
        with self._lock:
            self._active.operation = operation
            try:
                yield
            finally:
                self._active.operation = None

    # -------------------------------------------------------------------------
    # micro_commit
    # -------------------------------------------------------------------------

    def micro_commit(
        self,
        persona: str,
        step_id: str,
        description: str,
        change_set: ChangeSet,
    ) -> Commit:
        """
        Validate, snapshot, apply and record one change set.

        Raises:
            ValidationError: a gate rejected the change set (no side effects)
            CommitError: capture or application failed (no ledger entry)
            PersistenceError: files were changed but the ledger write failed;
                the attempted Commit is attached as `record`
        """
        try:
            persona = normalize_persona(persona)
        except ValueError as exc:
            raise ValidationError("persona", str(exc)) from None

        with self._exclusive("micro_commit"):
            logger.info("Micro-commit: [%s] [%s] %s", persona, step_id, description)

            self.gates.validate(change_set)
            digest = change_set.digest()

            commit_id = self._new_id()
            try:
                snapshot = self.snapshots.capture(change_set.paths(), snapshot_id=f"snap-{commit_id}")
            except SnapshotError as exc:
                raise CommitError(f"Snapshot capture failed: {exc}") from exc
            try:
                self.snapshots.save(snapshot)
            except PersistenceError as exc:
                raise CommitError(f"Snapshot could not be persisted: {exc}") from exc

            try:
                for op in change_set:
                    self._apply(op)
            except OSError as exc:
                logger.error("Applying %s failed; snapshot %s holds the pre-image", commit_id, snapshot.id)
                raise CommitError(f"Applying change set failed: {exc}", snapshot=snapshot) from exc

            commit = Commit(
                id=commit_id,
                persona=persona,
                step_id=step_id,
                description=description,
                change_set=change_set,
                digest=digest,
                created_at=utc_now(),
                snapshot_ref=snapshot.id,
                status=CommitStatus.COMMITTED,
            )
            self.ledger.append(commit)

            logger.info("Micro-commit successful: %s (%s)", commit.id, commit.short_digest)
            return commit

    def _apply(self, op: FileOperation) -> None:
        target = resolve_inside(self.root, op.path)
        if op.action is Action.CREATE:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(op.data or b"")
        elif op.action is Action.UPDATE:
            target.write_bytes(op.data or b"")
        elif op.action is Action.DELETE:
            target.unlink(missing_ok=True)

    # -------------------------------------------------------------------------
    # rollback
    # -------------------------------------------------------------------------

    def rollback(self, commit_id: str) -> Snapshot:
        """
        Restore the pre-image of a commit and mark it rolled back.

        Raises:
            NotFoundError: unknown commit id
            InvalidStateError: already rolled back, or no usable snapshot
            SnapshotError: restore failed for some paths
            PersistenceError: the status change could not be persisted
        """
        with self._exclusive("rollback"):
            logger.info("Rolling back commit: %s", commit_id)

            commit = self.ledger.find_by_id(commit_id)
            if commit is None:
                raise NotFoundError("commit", commit_id)
            if commit.is_rolled_back:
                raise InvalidStateError(f"Commit {commit_id} is already rolled back")
            if not commit.snapshot_ref:
                raise InvalidStateError(f"Commit {commit_id} has no snapshot reference")

            try:
                snapshot = self.snapshots.load(commit.snapshot_ref)
            except NotFoundError:
                raise InvalidStateError(
                    f"Snapshot {commit.snapshot_ref} for commit {commit_id} is missing"
                ) from None

            self._warn_on_overlap(commit)
            self.snapshots.restore(snapshot)
            self.ledger.mark_rolled_back(commit_id, utc_now())

            logger.info("Rollback completed: %s", commit_id)
            return snapshot

    def _warn_on_overlap(self, commit: Commit) -> None:
        paths = set(commit.change_set.paths())
        seen = False
        for later in self.ledger:
            if later.id == commit.id:
                seen = True
                continue
            if not seen or later.is_rolled_back:
                continue
            overlap = paths & set(later.change_set.paths())
            if overlap:
                logger.warning(
                    "Rolling back %s overwrites later commit %s on: %s",
                    commit.id,
                    later.id,
                    ", ".join(sorted(overlap)),
                )

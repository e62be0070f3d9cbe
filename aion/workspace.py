"""
Per-root facade over the safety protocol and persona state machine.

One Workspace owns the ledger, snapshot store, gates, handover log and
controllers for a project root. Nothing is shared between roots.
"""

from __future__ import annotations

import fcntl
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

from .config import AionSettings, load_settings
from .render import render_commit_markdown, render_handover_markdown
from .safety.changeset import ChangeSet
from .safety.ledger import Commit, CommitLedger, LedgerStatistics
from .safety.protocol import SafetyController
from .safety.reconcile import ReconciliationReport, reconcile
from .safety.snapshot import Snapshot, SnapshotStore
from .safety.validators import ValidationGates, default_gates
from .state.handover import (
    Handover,
    HandoverController,
    HandoverLog,
    HandoverStatistics,
    PersonaState,
)
from .state.transitions import TransitionGraph
from .util import atomic_write_text

logger = logging.getLogger(__name__)


class Workspace:
    def __init__(
        self,
        root: Path,
        settings: AionSettings,
        *,
        ledger: CommitLedger,
        snapshots: SnapshotStore,
        gates: ValidationGates,
        graph: TransitionGraph,
        handover_log: HandoverLog,
    ):
        self.root = root
        self.settings = settings
        self.ledger = ledger
        self.snapshots = snapshots
        self.gates = gates
        self.graph = graph
        self.handover_log = handover_log
        self.safety = SafetyController(root, ledger, snapshots, gates)
        self.handovers = HandoverController(handover_log, graph, strict=settings.strict_handover)

    @classmethod
    def open(cls, root: Path | str, settings: AionSettings | None = None) -> Workspace:
        """
        Open (or initialise) the workspace rooted at `root`.

        Loads `.aion/config.toml` when no settings are passed. Existing
        ledger and handover documents are loaded; missing ones start empty.
        """
        root = Path(root).resolve()
        if not root.is_dir():
            raise ValueError(f"Workspace root is not a directory: {root}")
        settings = settings or load_settings(root)

        protected = list(settings.protected_paths)
        state_glob = f"{Path(settings.state_dir).as_posix().rstrip('/')}/**"
        if not Path(settings.state_dir).is_absolute() and state_glob not in protected:
            protected.append(state_glob)

        workspace = cls(
            root,
            settings,
            ledger=CommitLedger(settings.ledger_path(root)),
            snapshots=SnapshotStore(root, settings.snapshots_path(root)),
            gates=default_gates(
                root,
                max_file_bytes=settings.max_file_bytes,
                protected_paths=protected,
                secret_scan=settings.secret_scan,
            ),
            graph=TransitionGraph.with_extra(settings.transitions),
            handover_log=HandoverLog(settings.handover_path(root)),
        )
        logger.debug(
            "Opened workspace %s (%d commits, state %s)",
            root,
            len(workspace.ledger),
            workspace.handover_log.current_state,
        )
        return workspace

    # -------------------------------------------------------------------------
    # Safety protocol
    # -------------------------------------------------------------------------

    def micro_commit(self, persona: str, step_id: str, description: str, change_set: ChangeSet) -> Commit:
        return self.safety.micro_commit(persona, step_id, description, change_set)

    def rollback(self, commit_id: str) -> Snapshot:
        return self.safety.rollback(commit_id)

    def get_commit_history(self, limit: int | None = 20) -> list[Commit]:
        return self.ledger.history(limit)

    def get_commits_by_persona(self, persona: str, limit: int | None = 10) -> list[Commit]:
        return self.ledger.find_by_persona(persona, limit)

    def get_statistics(self) -> LedgerStatistics:
        return self.ledger.statistics()

    def reconcile(self) -> ReconciliationReport:
        return reconcile(self.ledger, self.snapshots)

    # -------------------------------------------------------------------------
    # Persona state machine
    # -------------------------------------------------------------------------

    def handover(
        self,
        from_persona: str,
        to_persona: str,
        artifacts: Sequence[Any] = (),
        *,
        notes: str = "",
    ) -> Handover:
        return self.handovers.handover(from_persona, to_persona, artifacts, notes=notes)

    def get_current_state(self) -> PersonaState:
        return self.handovers.current_state()

    def get_handover_history(self, limit: int | None = 10) -> list[Handover]:
        return self.handovers.history(limit)

    def get_handover_statistics(self) -> HandoverStatistics:
        return self.handovers.statistics()

    def reset_state(self) -> HandoverStatistics:
        """Clear handover history. The commit ledger is not touched."""
        return self.handovers.reset()

    # -------------------------------------------------------------------------
    # Projection
    # -------------------------------------------------------------------------

    def render_handover_log(self) -> str:
        return render_handover_markdown(self.handover_log, self.graph)

    def render_commit_log(self) -> str:
        return render_commit_markdown(self.ledger)

    def write_projection(self, path: Path | None = None) -> Path:
        """Write the handover markdown to `path` (default: settings.projection_path)."""
        target = path or self.settings.projection_file(self.root)
        atomic_write_text(target, self.render_handover_log())
        logger.info("Wrote handover projection: %s", target)
        return target

    # -------------------------------------------------------------------------
    # Cross-process exclusion
    # -------------------------------------------------------------------------

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Hold an exclusive advisory lock on the workspace state directory.

        Only cooperating processes that also call lock() are excluded.
        """
        lock_path = self.settings.lock_path(self.root)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with lock_path.open("a+", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

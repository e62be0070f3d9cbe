"""Micro-commit CLI commands: status, history, commit, rollback, reconcile."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..errors import AionError, PersistenceError, ValidationError
from ..safety.changeset import ChangeSet
from ..workspace import Workspace


def _fail(message: str) -> int:
    Console(stderr=True).print(message, style="bold red", markup=False)
    return 1


def run_status(root: Path) -> int:
    console = Console()
    ws = Workspace.open(root)
    stats = ws.get_statistics()
    state = ws.get_current_state()

    console.print(f"[bold]Root[/bold]: {ws.root}")
    console.print(f"[bold]Current persona[/bold]: [cyan]{state.state}[/cyan] ({state.handover_count} handovers)")
    console.print(
        f"[bold]Commits[/bold]: {stats.total_commits} "
        f"(rollback rate {stats.rollback_rate_percent:.1f}%)"
    )
    for persona, count in sorted(stats.counts_by_persona.items()):
        console.print(f"  {persona}: {count}", style="dim")
    return 0


def run_history(
    root: Path,
    *,
    persona: str | None = None,
    limit: int = 20,
    output_json: bool = False,
) -> int:
    ws = Workspace.open(root)
    commits = ws.get_commits_by_persona(persona, limit) if persona else ws.get_commit_history(limit)

    if output_json:
        print(json.dumps([c.to_dict() for c in commits], indent=2, sort_keys=True))
        return 0

    table = Table(title="Micro-commits")
    table.add_column("commit", style="cyan", no_wrap=True)
    table.add_column("persona", style="magenta")
    table.add_column("step")
    table.add_column("description")
    table.add_column("files", justify="right")
    table.add_column("digest", style="dim")
    table.add_column("status")

    for c in commits:
        table.add_row(
            c.id,
            c.persona,
            c.step_id,
            c.description,
            str(len(c.change_set)),
            c.short_digest,
            c.status.value,
        )

    Console().print(table)
    return 0


def run_commit(
    root: Path,
    changeset_path: Path,
    *,
    persona: str,
    step_id: str,
    description: str,
) -> int:
    try:
        raw = json.loads(changeset_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        return _fail(f"Cannot read change set {changeset_path}: {exc}")

    ws = Workspace.open(root)
    try:
        change_set = ChangeSet.from_dict(raw)
        commit = ws.micro_commit(persona, step_id, description, change_set)
    except ValidationError as exc:
        return _fail(f"Rejected: {exc}")
    except PersistenceError as exc:
        # Files are already changed at this point.
        return _fail(f"Applied but not recorded: {exc}")
    except AionError as exc:
        return _fail(f"Commit failed: {exc}")

    Console().print(f"{commit.id} [{commit.short_digest}] {len(commit.change_set)} file(s)", markup=False)
    return 0


def run_rollback(root: Path, commit_id: str) -> int:
    ws = Workspace.open(root)
    try:
        snapshot = ws.rollback(commit_id)
    except AionError as exc:
        return _fail(f"Rollback failed: {exc}")

    console = Console()
    console.print(f"Rolled back {commit_id}")
    for path in snapshot.paths():
        console.print(f"  restored {path}", style="dim")
    return 0


def run_reconcile(root: Path, *, output_json: bool = False) -> int:
    """Exit code 2 when some commit's apply status is unknown."""
    ws = Workspace.open(root)
    report = ws.reconcile()

    if output_json:
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    elif report.clean:
        Console().print(f"Clean ({report.snapshots_checked} orphan snapshot(s) checked)")
    else:
        table = Table(title="Reconciliation findings")
        table.add_column("snapshot", style="cyan", no_wrap=True)
        table.add_column("kind")
        table.add_column("changed paths")
        table.add_column("detail", style="dim")
        for f in report.findings:
            table.add_row(f.snapshot_id, f.kind, ", ".join(f.changed_paths), f.detail)
        Console().print(table)

    return 2 if report.unknown() else 0

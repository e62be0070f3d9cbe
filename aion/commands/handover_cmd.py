"""Persona state machine CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.table import Table

from ..errors import AionError
from ..render import render_state_flow
from ..state.personas import is_builtin
from ..util import atomic_write_text
from ..workspace import Workspace


def run_handover(
    root: Path,
    from_persona: str,
    to_persona: str,
    *,
    artifact_types: Sequence[str] = (),
    notes: str = "",
) -> int:
    ws = Workspace.open(root)
    artifacts = [{"type": t} for t in artifact_types]
    try:
        record = ws.handover(from_persona, to_persona, artifacts, notes=notes)
    except (AionError, ValueError) as exc:
        Console(stderr=True).print(f"Handover failed: {exc}", style="bold red", markup=False)
        return 1

    Console().print(f"{record.id}: {record.from_persona} → {record.to_persona}")
    return 0


def run_handovers(root: Path, *, limit: int = 10, output_json: bool = False) -> int:
    ws = Workspace.open(root)
    history = ws.get_handover_history(limit)

    if output_json:
        data = {
            "current_state": ws.get_current_state().state,
            "handovers": [h.to_dict() for h in history],
            "statistics": ws.get_handover_statistics().to_dict(),
        }
        print(json.dumps(data, indent=2, sort_keys=True))
        return 0

    table = Table(title=f"Handovers (current: {ws.get_current_state().state})")
    table.add_column("id", style="cyan", no_wrap=True)
    table.add_column("when", style="dim")
    table.add_column("from", style="magenta")
    table.add_column("to", style="magenta")
    table.add_column("artifacts")
    table.add_column("notes")

    for h in history:
        table.add_row(
            h.id,
            h.timestamp.isoformat(timespec="seconds"),
            h.from_persona,
            h.to_persona,
            ", ".join(h.artifact_types()),
            h.notes,
        )

    Console().print(table)
    return 0


def run_transitions(root: Path, *, mermaid: bool = False) -> int:
    ws = Workspace.open(root)
    if mermaid:
        print(render_state_flow(ws.graph))
        return 0

    table = Table(title="Persona transitions")
    table.add_column("from", style="magenta")
    table.add_column("allowed targets")
    table.add_column("kind", style="dim")
    for persona in ws.graph.personas():
        table.add_row(
            persona,
            ", ".join(ws.graph.successors(persona)) or "-",
            "built-in" if is_builtin(persona) else "custom",
        )
    Console().print(table)
    return 0


def run_reset(root: Path) -> int:
    ws = Workspace.open(root)
    before = ws.reset_state()
    Console().print(f"State machine reset: cleared {before.total_handovers} handover(s), state is now Init")
    return 0


def run_render(root: Path, *, out: Path | None = None, commits: bool = False) -> int:
    ws = Workspace.open(root)
    if commits:
        text = ws.render_commit_log()
        if out is None:
            print(text, end="")
            return 0
        atomic_write_text(out, text)
        Console().print(f"Wrote {out}")
        return 0

    target = ws.write_projection(out)
    Console().print(f"Wrote {target}")
    return 0

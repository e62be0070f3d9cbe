"""
Markdown projections of the handover log and commit ledger.

The JSON documents under .aion/ are the source of truth. These renderings
are for operators only: they carry YAML front matter for tooling that
indexes markdown, but nothing in this package ever parses them back.
"""

from __future__ import annotations

from typing import Iterable

import frontmatter

from .safety.ledger import Commit, CommitLedger
from .state.handover import HandoverLog
from .state.personas import Persona
from .state.transitions import TransitionGraph

HISTORY_ROWS = 20


def _cell(value: object) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def render_state_flow(graph: TransitionGraph) -> str:
    """Mermaid stateDiagram-v2 for the transition graph."""
    lines = ["stateDiagram-v2", f"    [*] --> {Persona.INIT.value}"]
    for source, target in graph.edges():
        lines.append(f"    {source} --> {target}")
    return "\n".join(lines)


def render_handover_markdown(log: HandoverLog, graph: TransitionGraph) -> str:
    recent = log.history(HISTORY_ROWS)
    last = log.last

    body: list[str] = [
        "# Handover Protocol",
        "",
        "## Current State",
        f"**Phase**: {log.current_state}",
        f"**Active Agent**: {log.current_state}",
        "",
        "## Handover History",
        "| Date | From | To | Artifacts | Notes |",
        "|------|------|----|-----------|-------|",
    ]
    for handover in recent:
        artifacts = ", ".join(handover.artifact_types()) or "None"
        body.append(
            f"| {handover.timestamp.date().isoformat()} | {_cell(handover.from_persona)} "
            f"| {_cell(handover.to_persona)} | {_cell(artifacts)} | {_cell(handover.notes)} |"
        )

    body += [
        "",
        "## State Flow",
        "```mermaid",
        render_state_flow(graph),
        "```",
        "",
        "## Metrics",
        f"- **Handover Count**: {len(log)}",
        f"- **Current State**: {log.current_state}",
        f"- **Last Activity**: {last.timestamp.isoformat() if last else 'None'}",
    ]

    post = frontmatter.Post(
        "\n".join(body),
        generated_by="aion",
        current_state=log.current_state,
        handover_count=len(log),
        last_handover=last.id if last else None,
    )
    return frontmatter.dumps(post) + "\n"


def _commit_rows(commits: Iterable[Commit]) -> list[str]:
    rows = []
    for commit in commits:
        rows.append(
            f"| {commit.id} | {_cell(commit.persona)} | {_cell(commit.step_id)} | {_cell(commit.description)} "
            f"| {len(commit.change_set)} | `{commit.short_digest}` | {commit.status.value} |"
        )
    return rows


def render_commit_markdown(ledger: CommitLedger, *, limit: int = HISTORY_ROWS) -> str:
    stats = ledger.statistics()
    body: list[str] = [
        "# Micro-commit Log",
        "",
        "| Commit | Persona | Step | Description | Files | Digest | Status |",
        "|--------|---------|------|-------------|-------|--------|--------|",
        *_commit_rows(ledger.history(limit)),
        "",
        "## Statistics",
        f"- **Total Commits**: {stats.total_commits}",
        f"- **Rollback Rate**: {stats.rollback_rate_percent:.1f}%",
    ]
    for persona, count in sorted(stats.counts_by_persona.items()):
        body.append(f"- **{persona}**: {count}")

    post = frontmatter.Post(
        "\n".join(body),
        generated_by="aion",
        total_commits=stats.total_commits,
        rollback_rate_percent=round(stats.rollback_rate_percent, 2),
    )
    return frontmatter.dumps(post) + "\n"

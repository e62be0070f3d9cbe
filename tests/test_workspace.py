"""
End-to-end tests for the Workspace facade.

Exercises a full persona workflow the way an orchestrator drives it:
commit work as the active persona, then hand over to the next one.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from aion.config import AionSettings, load_settings
from aion.errors import IllegalTransitionError, ValidationError
from aion.safety.changeset import ChangeSet, FileOperation
from aion.workspace import Workspace

WORKFLOW = [
    ("PM", "docs/prd.md", "# PRD\n", "PRD"),
    ("Architect", "docs/architecture.md", "# Architecture\n", "Architecture"),
    ("Developer", "src/feature.py", "def feature():\n    return 1\n", "Code"),
    ("QA", "tests/test_feature.py", "def test_feature():\n    assert True\n", "TestReport"),
    ("Release", "CHANGELOG.md", "## 0.1.0\n", "ReleaseNotes"),
]


def run_workflow(ws: Workspace) -> None:
    previous = "Init"
    for persona, path, content, artifact in WORKFLOW:
        ws.handover(previous, persona, [{"type": artifact, "path": path}])
        ws.micro_commit(persona, f"{persona.lower()}-1", f"{artifact} draft", ChangeSet([FileOperation.create(path, content)]))
        previous = persona


def test_full_workflow(workspace: Workspace, project_root: Path) -> None:
    run_workflow(workspace)

    stats = workspace.get_statistics()
    assert stats.total_commits == 5
    assert stats.rollback_rate_percent == 0.0
    assert stats.counts_by_persona == {p: 1 for p, *_ in WORKFLOW}

    state = workspace.get_current_state()
    assert state.state == "Release"
    assert state.handover_count == 5

    assert [c.persona for c in workspace.get_commit_history()] == [p for p, *_ in WORKFLOW]
    assert [h.to_persona for h in workspace.get_handover_history(limit=2)] == ["QA", "Release"]
    assert len(workspace.get_commits_by_persona("QA")) == 1

    for _, path, content, _ in WORKFLOW:
        assert (project_root / path).read_text(encoding="utf-8") == content


def test_state_survives_reopen(workspace: Workspace, project_root: Path) -> None:
    run_workflow(workspace)
    dev_commit = workspace.get_commits_by_persona("Developer")[0]

    reopened = Workspace.open(project_root, AionSettings())

    assert reopened.get_current_state().state == "Release"
    assert reopened.get_statistics().total_commits == 5

    reopened.rollback(dev_commit.id)
    assert not (project_root / "src" / "feature.py").exists()
    assert reopened.get_statistics().rollback_rate_percent == pytest.approx(20.0)


def test_illegal_handover_through_facade(workspace: Workspace) -> None:
    with pytest.raises(IllegalTransitionError):
        workspace.handover("Init", "Developer")


def test_reset_state_keeps_commits(workspace: Workspace) -> None:
    run_workflow(workspace)

    before = workspace.reset_state()

    assert before.total_handovers == 5
    assert workspace.get_current_state().state == "Init"
    assert workspace.get_statistics().total_commits == 5


def test_config_file_is_applied(project_root: Path) -> None:
    state_dir = project_root / ".aion"
    state_dir.mkdir()
    (state_dir / "config.toml").write_text(
        'max_file_bytes = 8\nprotected_paths = ["secrets/**"]\nstrict_handover = true\n\n'
        '[transitions]\nQA = ["Reviewer"]\n',
        encoding="utf-8",
    )

    ws = Workspace.open(project_root)

    assert ws.settings.strict_handover
    with pytest.raises(ValidationError):
        ws.micro_commit("Developer", "S-1", "too big", ChangeSet([FileOperation.create("a.txt", "123456789")]))
    with pytest.raises(ValidationError):
        ws.micro_commit("Developer", "S-1", "protected", ChangeSet([FileOperation.create("secrets/k", "x")]))
    # The state directory stays protected even when the list omits it.
    with pytest.raises(ValidationError):
        ws.micro_commit("Developer", "S-1", "state", ChangeSet([FileOperation.create(".aion/x", "x")]))
    assert ws.graph.is_legal("QA", "Reviewer")
    with pytest.raises(IllegalTransitionError):
        ws.handover("PM", "Architect")


def test_invalid_config_fails_fast(project_root: Path) -> None:
    (project_root / ".aion").mkdir()
    (project_root / ".aion" / "config.toml").write_text("max_file_bytes = -1\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(project_root)


def test_open_rejects_missing_root(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        Workspace.open(tmp_path / "nope")


def test_write_projection(workspace: Workspace, project_root: Path) -> None:
    run_workflow(workspace)

    target = workspace.write_projection()

    assert target == workspace.root / ".github" / "BMAD_HANDOVER.md"
    assert "**Phase**: Release" in target.read_text(encoding="utf-8")


def test_lock_can_be_taken_repeatedly(workspace: Workspace, project_root: Path) -> None:
    with workspace.lock():
        workspace.micro_commit("PM", "S-1", "locked", ChangeSet([FileOperation.create("a.txt", "x")]))
    with workspace.lock():
        pass
    assert (workspace.root / ".aion" / "aion.lock").exists()

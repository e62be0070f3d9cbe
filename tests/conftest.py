"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from aion.config import AionSettings
from aion.safety.changeset import ChangeSet, FileOperation
from aion.workspace import Workspace


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """An empty project root with one source file."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("print('v1')\n", encoding="utf-8")
    return root


@pytest.fixture
def workspace(project_root: Path) -> Workspace:
    """Workspace over `project_root` with default settings."""
    return Workspace.open(project_root, AionSettings())


@pytest.fixture
def change_set() -> ChangeSet:
    return ChangeSet(
        [
            FileOperation.update("src/app.py", "print('v2')\n"),
            FileOperation.create("docs/README.md", "# Project\n"),
        ]
    )

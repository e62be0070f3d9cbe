"""aion - micro-commit safety protocol and persona handover state machine."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import AionSettings, load_settings
from .errors import (
    AionError,
    CommitError,
    IllegalTransitionError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    SnapshotError,
    ValidationError,
)
from .safety import ChangeSet, Commit, FileOperation
from .state import Handover, Persona, PersonaState
from .workspace import Workspace

__all__ = [
    "__version__",
    "AionError",
    "AionSettings",
    "ChangeSet",
    "Commit",
    "CommitError",
    "FileOperation",
    "Handover",
    "IllegalTransitionError",
    "InvalidStateError",
    "NotFoundError",
    "Persona",
    "PersonaState",
    "PersistenceError",
    "SnapshotError",
    "ValidationError",
    "Workspace",
    "load_settings",
]

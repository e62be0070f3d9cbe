"""
Persona handover log and controller.

The handover log is the ordered record of transitions of control between
personas, plus the current persona. It is persisted as one JSON document,
rewritten in full (temp file + rename) after every change:

    {"version": 1, "current_state": "Developer", "handovers": [{...}]}

The latest handover's `to` defines the current state. On load, a stored
current_state that disagrees with the log is repaired by replaying the last
entry.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Sequence

from ..errors import IllegalTransitionError, PersistenceError, ValidationError
from ..util import MonotonicUlid, atomic_write_json, utc_now
from .personas import Persona, normalize_persona
from .transitions import TransitionGraph

logger = logging.getLogger(__name__)

HANDOVER_LOG_VERSION = 1
INITIAL_STATE = Persona.INIT.value


@dataclass(frozen=True)
class Handover:
    """One recorded transition of control."""

    id: str
    from_persona: str
    to_persona: str
    timestamp: datetime
    artifacts: tuple[Any, ...] = ()
    previous_state: str | None = None
    notes: str = ""

    def artifact_types(self) -> list[str]:
        types: list[str] = []
        for artifact in self.artifacts:
            if isinstance(artifact, dict) and artifact.get("type"):
                types.append(str(artifact["type"]))
            else:
                types.append("Unknown")
        return types

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_persona,
            "to": self.to_persona,
            "timestamp": self.timestamp.isoformat(),
            "artifacts": list(self.artifacts),
            "previous_state": self.previous_state,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Handover:
        return cls(
            id=data["id"],
            from_persona=data["from"],
            to_persona=data["to"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            artifacts=tuple(data.get("artifacts", [])),
            previous_state=data.get("previous_state"),
            notes=data.get("notes", ""),
        )


@dataclass(frozen=True)
class PersonaState:
    """Read-only view of the current persona."""

    state: str
    timestamp: datetime
    handover_count: int
    last_handover: Handover | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "timestamp": self.timestamp.isoformat(),
            "handover_count": self.handover_count,
            "last_handover": self.last_handover.to_dict() if self.last_handover else None,
        }


@dataclass
class HandoverStatistics:
    total_handovers: int = 0
    current_state: str = INITIAL_STATE
    persona_transitions: dict[str, int] = field(default_factory=dict)
    artifact_types: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_handovers": self.total_handovers,
            "current_state": self.current_state,
            "persona_transitions": dict(self.persona_transitions),
            "artifact_types": dict(self.artifact_types),
        }


class HandoverLog:
    """Durable handover sequence plus current persona."""

    def __init__(self, log_path: Path):
        self.log_path = log_path
        self._handovers: list[Handover] = []
        self._current_state = INITIAL_STATE
        self._load()

    def _load(self) -> None:
        if not self.log_path.exists():
            return
        try:
            data = json.loads(self.log_path.read_text(encoding="utf-8"))
            handovers = [Handover.from_dict(raw) for raw in data.get("handovers", [])]
            stored_state = str(data.get("current_state") or INITIAL_STATE)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise PersistenceError(f"Unreadable handover log {self.log_path}: {exc}", path=self.log_path) from exc

        self._handovers = handovers
        self._current_state = stored_state
        if handovers and handovers[-1].to_persona != stored_state:
            logger.warning(
                "Handover log state %s disagrees with last handover (%s); replaying last entry",
                stored_state,
                handovers[-1].to_persona,
            )
            self._current_state = handovers[-1].to_persona

    def _document(self, handovers: Sequence[Handover], current_state: str) -> dict[str, Any]:
        return {
            "version": HANDOVER_LOG_VERSION,
            "current_state": current_state,
            "handovers": [h.to_dict() for h in handovers],
        }

    def _write(self, handovers: Sequence[Handover], current_state: str, *, record: Any = None) -> None:
        try:
            atomic_write_json(self.log_path, self._document(handovers, current_state))
        except OSError as exc:
            raise PersistenceError(
                f"Failed to persist handover log {self.log_path}: {exc}",
                path=self.log_path,
                record=record,
            ) from exc

    @property
    def current_state(self) -> str:
        return self._current_state

    def __len__(self) -> int:
        return len(self._handovers)

    def __iter__(self) -> Iterator[Handover]:
        return iter(list(self._handovers))

    @property
    def last(self) -> Handover | None:
        return self._handovers[-1] if self._handovers else None

    def append(self, handover: Handover) -> None:
        """
        Durably append a handover, then move the current state.

        The in-memory state changes only after the write succeeded.
        """
        self._write([*self._handovers, handover], handover.to_persona, record=handover)
        self._handovers.append(handover)
        self._current_state = handover.to_persona

    def reset(self) -> None:
        """Clear history and return to the initial state."""
        self._write([], INITIAL_STATE)
        self._handovers = []
        self._current_state = INITIAL_STATE

    def history(self, limit: int | None = 10) -> list[Handover]:
        if limit is None:
            return list(self._handovers)
        if limit <= 0:
            return []
        return self._handovers[-limit:]


class HandoverController:
    """
    Validates and records persona-to-persona transitions.

    In strict mode the `from` persona must also be the current state.
    """

    def __init__(self, log: HandoverLog, graph: TransitionGraph, *, strict: bool = False):
        self.log = log
        self.graph = graph
        self.strict = strict
        self._new_id = MonotonicUlid()

    def handover(
        self,
        from_persona: str,
        to_persona: str,
        artifacts: Sequence[Any] = (),
        *,
        notes: str = "",
    ) -> Handover:
        """
        Move control from one persona to another.

        Raises:
            IllegalTransitionError: the graph does not allow the transition
                (or, in strict mode, `from_persona` is not current)
            ValidationError: artifacts are not JSON-serialisable
            PersistenceError: the log could not be written (state unchanged)
        """
        source = normalize_persona(from_persona)
        target = normalize_persona(to_persona)
        logger.info("Handover: %s → %s", source, target)

        if not self.graph.is_legal(source, target):
            raise IllegalTransitionError(source, target, self.graph.successors(source))
        if self.strict and source != self.log.current_state:
            raise IllegalTransitionError(
                source,
                target,
                self.graph.successors(self.log.current_state),
            )

        artifact_list = list(artifacts)
        try:
            json.dumps(artifact_list)
        except (TypeError, ValueError) as exc:
            raise ValidationError("artifacts", f"handover artifacts must be JSON-serialisable: {exc}") from exc

        record = Handover(
            id=f"HANDOVER-{self._new_id()}",
            from_persona=source,
            to_persona=target,
            timestamp=utc_now(),
            artifacts=tuple(artifact_list),
            previous_state=self.log.current_state,
            notes=notes,
        )
        self.log.append(record)

        logger.info("Handover completed: %s → %s (%s)", source, target, record.id)
        return record

    def current_state(self) -> PersonaState:
        return PersonaState(
            state=self.log.current_state,
            timestamp=utc_now(),
            handover_count=len(self.log),
            last_handover=self.log.last,
        )

    def history(self, limit: int | None = 10) -> list[Handover]:
        return self.log.history(limit)

    def reset(self) -> HandoverStatistics:
        """Clear handover history; returns the statistics from before the reset."""
        before = self.statistics()
        self.log.reset()
        logger.info("State machine reset (cleared %d handovers)", before.total_handovers)
        return before

    def statistics(self) -> HandoverStatistics:
        transitions: Counter[str] = Counter()
        artifact_types: Counter[str] = Counter()
        for handover in self.log:
            transitions[f"{handover.from_persona} → {handover.to_persona}"] += 1
            artifact_types.update(handover.artifact_types())
        return HandoverStatistics(
            total_handovers=len(self.log),
            current_state=self.log.current_state,
            persona_transitions=dict(transitions),
            artifact_types=dict(artifact_types),
        )

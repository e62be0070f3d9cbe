"""
Persona transition graph.

A static adjacency table answering "is X -> Y legal" and "where can X go".
The table may be extended at runtime, never shrunk.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from .personas import Persona, normalize_persona

P = Persona

DEFAULT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    P.INIT.value: (P.PM.value, P.SYSTEM.value),
    P.PM.value: (P.ARCHITECT.value, P.SYSTEM.value),
    P.ARCHITECT.value: (P.DEVELOPER.value, P.PM.value, P.SYSTEM.value),
    P.DEVELOPER.value: (P.QA.value, P.ARCHITECT.value, P.SYSTEM.value),
    P.QA.value: (P.RELEASE.value, P.DEVELOPER.value, P.SYSTEM.value),
    P.RELEASE.value: (P.SYSTEM.value, P.PM.value),
    P.SYSTEM.value: (P.PM.value, P.INIT.value),
}


class TransitionGraph:
    """Directed graph over persona names. Additive only."""

    def __init__(self, transitions: Mapping[str, Iterable[str]] | None = None):
        self._edges: dict[str, list[str]] = {}
        table = DEFAULT_TRANSITIONS if transitions is None else transitions
        for source, targets in table.items():
            for target in targets:
                self.add_transition(source, target)

    @classmethod
    def with_extra(cls, extra: Mapping[str, Iterable[str]]) -> TransitionGraph:
        """Default table plus `extra` edges."""
        graph = cls()
        for source, targets in extra.items():
            for target in targets:
                graph.add_transition(source, target)
        return graph

    def add_transition(self, from_persona: str, to_persona: str) -> None:
        source = normalize_persona(from_persona)
        target = normalize_persona(to_persona)
        targets = self._edges.setdefault(source, [])
        if target not in targets:
            targets.append(target)
        self._edges.setdefault(target, [])

    def is_legal(self, from_persona: str, to_persona: str) -> bool:
        source = normalize_persona(from_persona)
        target = normalize_persona(to_persona)
        return target in self._edges.get(source, ())

    def successors(self, from_persona: str) -> tuple[str, ...]:
        return tuple(self._edges.get(normalize_persona(from_persona), ()))

    def personas(self) -> list[str]:
        return list(self._edges)

    def edges(self) -> list[tuple[str, str]]:
        return [(source, target) for source, targets in self._edges.items() for target in targets]

    def to_dict(self) -> dict[str, list[str]]:
        return {source: list(targets) for source, targets in self._edges.items()}

"""Tests for personas and the transition graph."""

from __future__ import annotations

import pytest

from aion.state.personas import Persona, is_builtin, normalize_persona
from aion.state.transitions import DEFAULT_TRANSITIONS, TransitionGraph


@pytest.mark.parametrize(
    ("source", "target"),
    [
        ("Init", "PM"),
        ("PM", "Architect"),
        ("Architect", "Developer"),
        ("Architect", "PM"),
        ("Developer", "QA"),
        ("Developer", "Architect"),
        ("QA", "Release"),
        ("QA", "Developer"),
        ("Release", "System"),
        ("Release", "PM"),
        ("System", "Init"),
    ],
)
def test_default_edges_are_legal(source: str, target: str) -> None:
    assert TransitionGraph().is_legal(source, target)


@pytest.mark.parametrize(
    ("source", "target"),
    [
        ("QA", "Init"),
        ("Init", "Developer"),
        ("PM", "QA"),
        ("Release", "Developer"),
        ("Developer", "Developer"),
        ("Unknown", "PM"),
    ],
)
def test_illegal_edges(source: str, target: str) -> None:
    assert not TransitionGraph().is_legal(source, target)


def test_every_builtin_persona_has_successors() -> None:
    graph = TransitionGraph()
    for persona in Persona:
        successors = graph.successors(persona.value)
        assert successors, persona


def test_successors_preserve_table_order() -> None:
    assert TransitionGraph().successors("QA") == ("Release", "Developer", "System")
    assert TransitionGraph().successors("Nobody") == ()


def test_persona_names_match_case_insensitively() -> None:
    graph = TransitionGraph()
    assert graph.is_legal("qa", "RELEASE")
    assert normalize_persona(" developer ") == "Developer"
    assert normalize_persona(Persona.PM) == "PM"


def test_custom_personas_are_kept_verbatim() -> None:
    assert normalize_persona("Reviewer") == "Reviewer"
    assert not is_builtin("Reviewer")
    assert is_builtin("qa")
    with pytest.raises(ValueError):
        normalize_persona("   ")


def test_add_transition_is_additive_and_idempotent() -> None:
    graph = TransitionGraph()
    graph.add_transition("QA", "Reviewer")
    graph.add_transition("QA", "Reviewer")
    graph.add_transition("Reviewer", "Developer")

    assert graph.successors("QA") == ("Release", "Developer", "System", "Reviewer")
    assert graph.is_legal("Reviewer", "Developer")
    assert "Reviewer" in graph.personas()


def test_with_extra_keeps_defaults() -> None:
    graph = TransitionGraph.with_extra({"Developer": ["Release"]})
    assert graph.is_legal("Developer", "Release")
    for source, targets in DEFAULT_TRANSITIONS.items():
        for target in targets:
            assert graph.is_legal(source, target)


def test_explicit_table_replaces_defaults() -> None:
    graph = TransitionGraph({"A": ["B"]})
    assert graph.is_legal("A", "B")
    assert not graph.is_legal("Init", "PM")
    assert graph.to_dict() == {"A": ["B"], "B": []}
    assert graph.edges() == [("A", "B")]

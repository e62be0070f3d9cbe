"""Tests for the handover log and controller."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from aion.errors import IllegalTransitionError, PersistenceError, ValidationError
from aion.state.handover import HandoverController, HandoverLog
from aion.state.transitions import TransitionGraph


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    return tmp_path / ".aion" / "handover-log.json"


@pytest.fixture
def controller(log_path: Path) -> HandoverController:
    return HandoverController(HandoverLog(log_path), TransitionGraph())


def walk(controller: HandoverController, *personas: str) -> None:
    for source, target in zip(personas, personas[1:]):
        controller.handover(source, target, [{"type": f"{target}-input"}])


def test_initial_state_is_init(controller: HandoverController) -> None:
    state = controller.current_state()
    assert state.state == "Init"
    assert state.handover_count == 0
    assert state.last_handover is None


def test_legal_handover_moves_state(controller: HandoverController) -> None:
    record = controller.handover("Init", "PM", [{"type": "Brief", "path": "docs/brief.md"}], notes="kickoff")

    assert record.id.startswith("HANDOVER-")
    assert record.from_persona == "Init"
    assert record.to_persona == "PM"
    assert record.previous_state == "Init"
    assert record.notes == "kickoff"
    assert controller.current_state().state == "PM"
    assert controller.current_state().last_handover == record


def test_illegal_handover_leaves_state_unchanged(controller: HandoverController, log_path: Path) -> None:
    walk(controller, "Init", "PM", "Architect", "Developer", "QA")

    with pytest.raises(IllegalTransitionError) as excinfo:
        controller.handover("QA", "Init")

    assert excinfo.value.allowed == ("Release", "Developer", "System")
    assert "Invalid transition from QA to Init" in str(excinfo.value)
    assert controller.current_state().state == "QA"
    assert len(controller.history(limit=None)) == 4


def test_qa_can_send_work_back_to_developer(controller: HandoverController) -> None:
    walk(controller, "Init", "PM", "Architect", "Developer", "QA", "Developer")
    assert controller.current_state().state == "Developer"


def test_non_strict_mode_does_not_check_source(controller: HandoverController) -> None:
    record = controller.handover("Developer", "QA")
    assert record.previous_state == "Init"
    assert controller.current_state().state == "QA"


def test_strict_mode_requires_source_to_be_current(log_path: Path) -> None:
    strict = HandoverController(HandoverLog(log_path), TransitionGraph(), strict=True)
    with pytest.raises(IllegalTransitionError):
        strict.handover("Developer", "QA")

    strict.handover("init", "pm")
    assert strict.current_state().state == "PM"


def test_artifacts_must_be_json_serialisable(controller: HandoverController) -> None:
    with pytest.raises(ValidationError) as excinfo:
        controller.handover("Init", "PM", [object()])
    assert excinfo.value.validator == "artifacts"
    assert controller.current_state().state == "Init"


def test_history_is_persisted_and_replayed(controller: HandoverController, log_path: Path) -> None:
    walk(controller, "Init", "PM", "Architect")

    document = json.loads(log_path.read_text(encoding="utf-8"))
    assert document["version"] == 1
    assert document["current_state"] == "Architect"
    assert [(h["from"], h["to"]) for h in document["handovers"]] == [("Init", "PM"), ("PM", "Architect")]

    reloaded = HandoverLog(log_path)
    assert reloaded.current_state == "Architect"
    assert [h.id for h in reloaded] == [h.id for h in controller.history(limit=None)]


def test_inconsistent_current_state_is_repaired_on_load(controller: HandoverController, log_path: Path) -> None:
    walk(controller, "Init", "PM", "Architect")
    document = json.loads(log_path.read_text(encoding="utf-8"))
    document["current_state"] = "QA"
    log_path.write_text(json.dumps(document), encoding="utf-8")

    assert HandoverLog(log_path).current_state == "Architect"


def test_unreadable_log_raises(log_path: Path) -> None:
    log_path.parent.mkdir(parents=True)
    log_path.write_text("not json", encoding="utf-8")
    with pytest.raises(PersistenceError):
        HandoverLog(log_path)


def test_write_failure_leaves_state_unchanged(controller: HandoverController, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(path: Path, data: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr("aion.state.handover.atomic_write_json", boom)

    with pytest.raises(PersistenceError) as excinfo:
        controller.handover("Init", "PM")

    assert excinfo.value.record.to_persona == "PM"
    assert controller.current_state().state == "Init"
    assert controller.history() == []


def test_history_limit(controller: HandoverController) -> None:
    walk(controller, "Init", "PM", "Architect", "Developer", "QA", "Release")
    assert [h.to_persona for h in controller.history(limit=2)] == ["QA", "Release"]
    assert len(controller.history()) == 5
    assert controller.history(limit=0) == []


def test_statistics(controller: HandoverController) -> None:
    walk(controller, "Init", "PM", "Architect", "Developer", "QA", "Developer", "QA")

    stats = controller.statistics()
    assert stats.total_handovers == 6
    assert stats.current_state == "QA"
    assert stats.persona_transitions["Developer → QA"] == 2
    assert stats.persona_transitions["QA → Developer"] == 1
    assert stats.artifact_types["QA-input"] == 2


def test_artifact_without_type_counts_as_unknown(controller: HandoverController) -> None:
    controller.handover("Init", "PM", ["loose note", {"path": "x.md"}])
    assert controller.statistics().artifact_types == {"Unknown": 2}


def test_reset_clears_history(controller: HandoverController, log_path: Path) -> None:
    walk(controller, "Init", "PM", "Architect")

    before = controller.reset()

    assert before.total_handovers == 2
    assert before.current_state == "Architect"
    assert controller.current_state().state == "Init"
    assert controller.history() == []
    assert HandoverLog(log_path).current_state == "Init"


def test_custom_persona_via_extra_edges(log_path: Path) -> None:
    graph = TransitionGraph.with_extra({"QA": ["Reviewer"], "Reviewer": ["Developer"]})
    controller = HandoverController(HandoverLog(log_path), graph)

    controller.handover("QA", "Reviewer")
    controller.handover("Reviewer", "Developer")
    assert controller.current_state().state == "Developer"

"""
Persona state machine.

Handover of control between personas is validated against a transition
graph and recorded in a durable handover log.
"""

from __future__ import annotations

from .handover import (
    INITIAL_STATE,
    Handover,
    HandoverController,
    HandoverLog,
    HandoverStatistics,
    PersonaState,
)
from .personas import Persona, normalize_persona
from .transitions import DEFAULT_TRANSITIONS, TransitionGraph

__all__ = [
    "DEFAULT_TRANSITIONS",
    "INITIAL_STATE",
    "Handover",
    "HandoverController",
    "HandoverLog",
    "HandoverStatistics",
    "Persona",
    "PersonaState",
    "TransitionGraph",
    "normalize_persona",
]

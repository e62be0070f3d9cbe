"""Persona identifiers."""

from __future__ import annotations

from enum import Enum


class Persona(str, Enum):
    INIT = "Init"
    PM = "PM"
    ARCHITECT = "Architect"
    DEVELOPER = "Developer"
    QA = "QA"
    RELEASE = "Release"
    SYSTEM = "System"


_BUILTIN_BY_KEY = {p.value.lower(): p.value for p in Persona}


def normalize_persona(name: str | Persona) -> str:
    """
    Canonical persona name.

    Built-in personas match case-insensitively ("QA", "qa", "INIT").
    Any other non-empty name is a custom persona and is kept as given
    (whitespace stripped).
    """
    if isinstance(name, Persona):
        return name.value
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Persona name must be a non-empty string, got: {name!r}")
    stripped = name.strip()
    return _BUILTIN_BY_KEY.get(stripped.lower(), stripped)


def is_builtin(name: str) -> bool:
    return normalize_persona(name) in _BUILTIN_BY_KEY.values()

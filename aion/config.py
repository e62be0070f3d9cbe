"""
Settings for one project root.

Settings live in `<root>/.aion/config.toml`. The file is optional; every
key has a default. Invalid values fail fast with ValueError.

Example:

    max_file_bytes = 1048576
    protected_paths = [".aion/**", ".git/**", "secrets/**"]
    secret_scan = true
    strict_handover = false

    [transitions]
    Reviewer = ["Developer", "System"]
    QA = ["Reviewer"]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


CONFIG_FILENAME = "config.toml"
DEFAULT_STATE_DIR = ".aion"
DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class AionSettings:
    state_dir: str = DEFAULT_STATE_DIR
    ledger_file: str = "commit-ledger.json"
    handover_file: str = "handover-log.json"
    snapshots_dir: str = "snapshots"
    lock_file: str = "aion.lock"
    projection_path: str = ".github/BMAD_HANDOVER.md"
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    protected_paths: tuple[str, ...] = (".aion/**", ".git/**")
    secret_scan: bool = True
    strict_handover: bool = False
    transitions: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def state_path(self, root: Path) -> Path:
        path = Path(self.state_dir)
        return path if path.is_absolute() else root / path

    def ledger_path(self, root: Path) -> Path:
        return self.state_path(root) / self.ledger_file

    def handover_path(self, root: Path) -> Path:
        return self.state_path(root) / self.handover_file

    def snapshots_path(self, root: Path) -> Path:
        return self.state_path(root) / self.snapshots_dir

    def lock_path(self, root: Path) -> Path:
        return self.state_path(root) / self.lock_file

    def projection_file(self, root: Path) -> Path:
        path = Path(self.projection_path)
        return path if path.is_absolute() else root / path


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _require_str(data: dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value.strip()


def _require_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false, got: {value!r}")
    return value


def parse_settings(data: dict[str, Any]) -> AionSettings:
    """Build settings from an already-parsed TOML mapping."""
    defaults = AionSettings()

    max_file_bytes = data.get("max_file_bytes", defaults.max_file_bytes)
    if isinstance(max_file_bytes, bool) or not isinstance(max_file_bytes, int) or max_file_bytes <= 0:
        raise ValueError(f"max_file_bytes must be a positive integer, got: {max_file_bytes!r}")

    protected = data.get("protected_paths", list(defaults.protected_paths))
    if not isinstance(protected, list) or not all(isinstance(p, str) and p.strip() for p in protected):
        raise ValueError("protected_paths must be a list of non-empty glob strings")

    transitions: dict[str, tuple[str, ...]] = {}
    for source, targets in _coerce_dict(data.get("transitions")).items():
        if isinstance(targets, str):
            targets = [targets]
        if not isinstance(targets, list) or not all(isinstance(t, str) and t.strip() for t in targets):
            raise ValueError(f"transitions.{source} must be a list of persona names")
        transitions[str(source)] = tuple(t.strip() for t in targets)

    return AionSettings(
        state_dir=_require_str(data, "state_dir", defaults.state_dir),
        ledger_file=_require_str(data, "ledger_file", defaults.ledger_file),
        handover_file=_require_str(data, "handover_file", defaults.handover_file),
        snapshots_dir=_require_str(data, "snapshots_dir", defaults.snapshots_dir),
        lock_file=_require_str(data, "lock_file", defaults.lock_file),
        projection_path=_require_str(data, "projection_path", defaults.projection_path),
        max_file_bytes=max_file_bytes,
        protected_paths=tuple(p.strip() for p in protected),
        secret_scan=_require_bool(data, "secret_scan", defaults.secret_scan),
        strict_handover=_require_bool(data, "strict_handover", defaults.strict_handover),
        transitions=transitions,
    )


def load_settings(root: Path, *, config_path: Path | None = None) -> AionSettings:
    """
    Load settings for a project root.

    Reads `<root>/.aion/config.toml` unless `config_path` is given.
    Returns defaults when the file does not exist.
    """
    import tomllib

    path = config_path or (root / DEFAULT_STATE_DIR / CONFIG_FILENAME)
    if not path.exists():
        return AionSettings()

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Malformed config {path}: {exc}") from exc
    return parse_settings(data)


"""
Content snapshot store.

A snapshot is the pre-image of a set of project files: for each relative
path, whether it existed and, if so, its bytes and coarse metadata.
Snapshots are captured before a change set is applied and restored
verbatim on rollback.

Persisted snapshots are stored one document per id:

    .aion/snapshots/01J...json

and are never rewritten once created.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

from ..errors import NotFoundError, PersistenceError, SnapshotError
from ..util import atomic_write_json, decode_bytes, encode_bytes, new_ulid, sha256_hex, utc_now
from .validators import resolve_inside

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotEntry:
    """Captured state of one path."""

    existed: bool
    content: bytes | None = None
    size: int | None = None
    mtime_ns: int | None = None
    sha256: str | None = None

    @classmethod
    def missing(cls) -> SnapshotEntry:
        return cls(existed=False)

    def to_dict(self) -> dict[str, Any]:
        if not self.existed:
            return {"existed": False}
        return {
            "existed": True,
            "content": encode_bytes(self.content or b""),
            "size": self.size,
            "mtime_ns": self.mtime_ns,
            "sha256": self.sha256,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotEntry:
        if not data.get("existed"):
            return cls.missing()
        return cls(
            existed=True,
            content=decode_bytes(data["content"]),
            size=data.get("size"),
            mtime_ns=data.get("mtime_ns"),
            sha256=data.get("sha256"),
        )


@dataclass(frozen=True)
class Snapshot:
    """Immutable pre-image of a set of paths."""

    id: str
    created_at: datetime
    entries: Mapping[str, SnapshotEntry] = field(default_factory=dict)

    def paths(self) -> list[str]:
        return list(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "entries": {path: entry.to_dict() for path, entry in self.entries.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        return cls(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            entries={path: SnapshotEntry.from_dict(raw) for path, raw in data.get("entries", {}).items()},
        )


class SnapshotStore:
    """
    Capture, restore and persist snapshots for one project root.

    `capture` and `diff` are pure reads; `restore` writes project files;
    `save` writes only under the snapshots directory.
    """

    def __init__(self, root: Path, snapshots_dir: Path):
        """
        Args:
            root: Project root that snapshot paths are relative to
            snapshots_dir: Directory holding persisted snapshot documents
        """
        self.root = root.resolve()
        self.snapshots_dir = snapshots_dir

    def _abs(self, rel_path: str) -> Path:
        # Same resolution as the apply step, so "a/../b" and "b" name one file.
        try:
            return resolve_inside(self.root, rel_path)
        except ValueError as exc:
            raise SnapshotError(f"Invalid snapshot path {rel_path}: {exc}", failures={rel_path: str(exc)}) from exc

    def _snapshot_path(self, snapshot_id: str) -> Path:
        return self.snapshots_dir / f"{snapshot_id}.json"

    # -------------------------------------------------------------------------
    # Capture / restore
    # -------------------------------------------------------------------------

    def _capture_entry(self, rel_path: str) -> SnapshotEntry:
        target = self._abs(rel_path)
        try:
            st = target.stat()
        except FileNotFoundError:
            return SnapshotEntry.missing()
        if not target.is_file():
            raise SnapshotError(
                f"Cannot snapshot {rel_path}: not a regular file",
                failures={rel_path: "not a regular file"},
            )
        content = target.read_bytes()
        return SnapshotEntry(
            existed=True,
            content=content,
            size=st.st_size,
            mtime_ns=st.st_mtime_ns,
            sha256=sha256_hex(content),
        )

    def capture(self, paths: Iterable[str], *, snapshot_id: str | None = None) -> Snapshot:
        """
        Record the current state of `paths`.

        Non-existence is recorded, not raised. Any other read failure raises
        SnapshotError naming the offending path.
        """
        entries: dict[str, SnapshotEntry] = {}
        for rel_path in paths:
            if rel_path in entries:
                continue
            try:
                entries[rel_path] = self._capture_entry(rel_path)
            except OSError as exc:
                raise SnapshotError(
                    f"Cannot snapshot {rel_path}: {exc.strerror or exc}",
                    failures={rel_path: str(exc)},
                ) from exc
        return Snapshot(id=snapshot_id or new_ulid(), created_at=utc_now(), entries=entries)

    def _restore_entry(self, rel_path: str, entry: SnapshotEntry) -> None:
        target = self._abs(rel_path)
        if entry.existed:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(entry.content or b"")
            if entry.mtime_ns is not None:
                os.utime(target, ns=(entry.mtime_ns, entry.mtime_ns))
        elif target.is_file() or target.is_symlink():
            target.unlink()
        elif target.exists():
            raise IsADirectoryError(f"refusing to remove directory {rel_path}")

    def restore(self, snapshot: Snapshot) -> None:
        """
        Put every recorded path back to its captured state.

        Idempotent. All paths are attempted; failures are collected and
        raised together so the caller knows exactly what was not restored.
        """
        restored: list[str] = []
        failures: dict[str, str] = {}
        for rel_path, entry in snapshot.entries.items():
            try:
                self._restore_entry(rel_path, entry)
            except (OSError, SnapshotError) as exc:
                failures[rel_path] = str(exc)
                logger.error("Failed to restore %s from snapshot %s: %s", rel_path, snapshot.id, exc)
            else:
                restored.append(rel_path)

        if failures:
            raise SnapshotError(
                f"Snapshot {snapshot.id} partially restored; failed paths: {', '.join(sorted(failures))}",
                failures=failures,
                restored=restored,
            )

    def diff(self, snapshot: Snapshot) -> list[str]:
        """Paths whose current state differs from the snapshot."""
        changed: list[str] = []
        for rel_path, entry in snapshot.entries.items():
            target = self._abs(rel_path)
            if not entry.existed:
                if target.exists() or target.is_symlink():
                    changed.append(rel_path)
                continue
            try:
                current = target.read_bytes()
            except OSError:
                changed.append(rel_path)
                continue
            if sha256_hex(current) != (entry.sha256 or sha256_hex(entry.content or b"")):
                changed.append(rel_path)
        return changed

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, snapshot: Snapshot) -> Path:
        """Persist a snapshot. Existing snapshot documents are never overwritten."""
        path = self._snapshot_path(snapshot.id)
        if path.exists():
            raise PersistenceError(f"Snapshot {snapshot.id} already persisted", path=path, record=snapshot)
        try:
            atomic_write_json(path, snapshot.to_dict())
        except OSError as exc:
            raise PersistenceError(f"Failed to persist snapshot {snapshot.id}: {exc}", path=path, record=snapshot) from exc
        return path

    def load(self, snapshot_id: str) -> Snapshot:
        path = self._snapshot_path(snapshot_id)
        if not path.exists():
            raise NotFoundError("snapshot", snapshot_id)
        try:
            return Snapshot.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError) as exc:
            raise PersistenceError(f"Unreadable snapshot {snapshot_id}: {exc}", path=path) from exc

    def exists(self, snapshot_id: str) -> bool:
        return self._snapshot_path(snapshot_id).exists()

    def list_ids(self) -> list[str]:
        """Persisted snapshot ids, oldest first."""
        if not self.snapshots_dir.exists():
            return []
        return sorted(p.stem for p in self.snapshots_dir.glob("*.json"))

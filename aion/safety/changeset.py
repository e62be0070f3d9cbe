"""
Declarative change sets.

A change set is the ordered list of file operations a micro-commit will
apply. Change sets are plain data: nothing here touches the filesystem.
Well-formedness (paths, content types) is checked by the validation gates,
not by the constructors, so a malformed change set can still be built and
rejected with a ValidationError naming the gate that caught it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, Sequence

from ..errors import ValidationError
from ..util import canonical_json, decode_bytes, encode_bytes, sha256_hex


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def requires_content(self) -> bool:
        return self is not Action.DELETE


_ACTIONS = {a.value: a for a in Action}


Content = bytes | str | None


@dataclass(frozen=True)
class FileOperation:
    """One file mutation, relative to the project root."""

    path: str
    action: Action
    content: Content = None

    def __post_init__(self) -> None:
        # Unknown strings are left for the content_type gate to reject.
        if isinstance(self.action, str) and not isinstance(self.action, Action):
            action = _ACTIONS.get(self.action.strip().lower())
            if action is not None:
                object.__setattr__(self, "action", action)

    @classmethod
    def create(cls, path: str, content: bytes | str) -> FileOperation:
        return cls(path=path, action=Action.CREATE, content=content)

    @classmethod
    def update(cls, path: str, content: bytes | str) -> FileOperation:
        return cls(path=path, action=Action.UPDATE, content=content)

    @classmethod
    def delete(cls, path: str) -> FileOperation:
        return cls(path=path, action=Action.DELETE)

    @property
    def data(self) -> bytes | None:
        """Content as bytes (text is UTF-8 encoded)."""
        if self.content is None:
            return None
        if isinstance(self.content, str):
            return self.content.encode("utf-8")
        return bytes(self.content)

    def content_sha256(self) -> str | None:
        data = self.data
        return sha256_hex(data) if data is not None else None

    def to_dict(self) -> dict[str, Any]:
        data = self.data
        return {
            "path": self.path,
            "action": self.action.value,
            "content": encode_bytes(data) if data is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileOperation:
        """
        Parse one operation.

        Accepts both the persisted form (content wrapped with an encoding)
        and the plain form used by callers (content as a string).
        """
        if not isinstance(data, dict):
            raise ValidationError("schema", f"file operation must be a mapping, got {type(data).__name__}")
        path = data.get("path")
        if not isinstance(path, str):
            raise ValidationError("schema", "file operation requires a string 'path'")
        raw_action = str(data.get("action", "")).strip().lower()
        try:
            action = Action(raw_action)
        except ValueError:
            raise ValidationError("schema", f"unknown file action {raw_action!r} for {path}") from None

        content = data.get("content")
        if isinstance(content, dict) and "encoding" in content:
            try:
                content = decode_bytes(content)
            except (ValueError, KeyError, TypeError) as exc:
                raise ValidationError("schema", f"bad content encoding for {path}: {exc}") from None
        return cls(path=path, action=action, content=content)


@dataclass(frozen=True)
class ChangeSet:
    """Ordered sequence of file operations."""

    operations: tuple[FileOperation, ...] = ()

    def __init__(self, operations: Iterable[FileOperation] = ()):
        object.__setattr__(self, "operations", tuple(operations))

    def __iter__(self) -> Iterator[FileOperation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)

    def __bool__(self) -> bool:
        return bool(self.operations)

    def paths(self) -> list[str]:
        """Distinct paths in first-seen order."""
        seen: dict[str, None] = {}
        for op in self.operations:
            seen.setdefault(op.path, None)
        return list(seen)

    def normalized(self) -> list[dict[str, Any]]:
        """
        Order-independent representation used for the digest.

        Operations are sorted by (path, action, content hash); content is
        represented by its sha256 so equal multisets of operations
        normalise identically.
        """
        rows = [
            {
                "path": op.path,
                "action": op.action.value,
                "content_sha256": op.content_sha256(),
            }
            for op in self.operations
        ]
        rows.sort(key=lambda r: (r["path"], r["action"], r["content_sha256"] or ""))
        return rows

    def digest(self) -> str:
        """sha256 of the normalised change set."""
        return sha256_hex(canonical_json(self.normalized()).encode("utf-8"))

    def to_dict(self) -> dict[str, Any]:
        return {"files": [op.to_dict() for op in self.operations]}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | Sequence[dict[str, Any]]) -> ChangeSet:
        """Parse `{"files": [...]}` or a bare list of operations."""
        if isinstance(data, dict):
            files = data.get("files", [])
        else:
            files = data
        if not isinstance(files, (list, tuple)):
            raise ValidationError("schema", "change set 'files' must be a list")
        return cls(FileOperation.from_dict(item) for item in files)

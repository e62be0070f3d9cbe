"""
Validation gates for change sets.

Gates are a fixed-order sequence of tagged validator variants. Each
variant checks one capability and returns a ValidationResult; the first
failure aborts the micro-commit before anything is captured or written.
New checks are added by appending a Validator, not by subclassing.

Baseline order:

    path            no escape from the project root
    content_type    content present iff the action needs it, bytes or text
    content_policy  size limit, protected paths
    secret_scan     reject content that looks like credentials
"""

from __future__ import annotations

import fnmatch
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Iterator, Sequence

from ..errors import ValidationError
from .changeset import Action, ChangeSet, FileOperation


class ValidatorKind(str, Enum):
    PATH = "path"
    CONTENT_TYPE = "content_type"
    CONTENT_POLICY = "content_policy"
    SECRET = "secret_scan"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ValidationResult:
    validator: str
    ok: bool
    reason: str = ""

    @classmethod
    def passed(cls, validator: str) -> ValidationResult:
        return cls(validator=validator, ok=True)

    @classmethod
    def failed(cls, validator: str, reason: str) -> ValidationResult:
        return cls(validator=validator, ok=False, reason=reason)


# A check returns None when the change set passes, or the failure reason.
Check = Callable[[ChangeSet], "str | None"]


@dataclass(frozen=True)
class Validator:
    kind: ValidatorKind
    name: str
    check: Check
    description: str = ""

    def validate(self, change_set: ChangeSet) -> ValidationResult:
        reason = self.check(change_set)
        if reason:
            return ValidationResult.failed(self.name, reason)
        return ValidationResult.passed(self.name)


# -----------------------------------------------------------------------------
# Path
# -----------------------------------------------------------------------------


def resolve_inside(root: Path, rel_path: str) -> Path:
    """
    Resolve `rel_path` under `root`, rejecting anything that escapes it.

    Symlinks are followed, so a link pointing outside the root is an
    escape too. The root itself is not a valid target.
    """
    if not rel_path or not rel_path.strip():
        raise ValueError("empty path")
    if "\x00" in rel_path:
        raise ValueError(f"NUL byte in path {rel_path!r}")
    if os.path.isabs(rel_path) or PurePosixPath(rel_path).is_absolute() or re.match(r"^[A-Za-z]:[\\/]", rel_path):
        raise ValueError(f"absolute path not allowed: {rel_path}")

    root_real = root.resolve()
    resolved = (root_real / rel_path).resolve()
    if resolved == root_real:
        raise ValueError(f"path resolves to the project root: {rel_path}")
    try:
        resolved.relative_to(root_real)
    except ValueError:
        raise ValueError(f"path traversal detected: {rel_path} escapes project root") from None
    return resolved


def relative_posix(root: Path, rel_path: str) -> str:
    """Normalised root-relative posix form of an already-validated path."""
    return resolve_inside(root, rel_path).relative_to(root.resolve()).as_posix()


def path_validator(root: Path) -> Validator:
    def check(change_set: ChangeSet) -> str | None:
        for op in change_set:
            if not isinstance(op.path, str):
                return f"path must be a string, got {type(op.path).__name__}"
            try:
                resolve_inside(root, op.path)
            except ValueError as exc:
                return str(exc)
        return None

    return Validator(
        kind=ValidatorKind.PATH,
        name="path",
        check=check,
        description="Every path must resolve strictly inside the project root",
    )


# -----------------------------------------------------------------------------
# Content type
# -----------------------------------------------------------------------------


_CONTENT_TYPES = (bytes, bytearray, memoryview, str)


def _content_type_problem(op: FileOperation) -> str | None:
    if not isinstance(op.action, Action):
        return f"unknown action {op.action!r} for {op.path}"
    if op.action.requires_content:
        if op.content is None:
            return f"{op.action.value} of {op.path} requires content"
        if not isinstance(op.content, _CONTENT_TYPES):
            return f"content for {op.path} must be bytes or text, got {type(op.content).__name__}"
    elif op.content is not None:
        return f"delete of {op.path} must not carry content"
    return None


def content_type_validator() -> Validator:
    def check(change_set: ChangeSet) -> str | None:
        for op in change_set:
            problem = _content_type_problem(op)
            if problem:
                return problem
        return None

    return Validator(
        kind=ValidatorKind.CONTENT_TYPE,
        name="content_type",
        check=check,
        description="Content present iff the action requires it, as bytes or text",
    )


# -----------------------------------------------------------------------------
# Content policy
# -----------------------------------------------------------------------------


def _matches_any(rel_posix: str, patterns: Iterable[str]) -> str | None:
    for pattern in patterns:
        if fnmatch.fnmatchcase(rel_posix, pattern):
            return pattern
        # "dir/**" also protects "dir" itself
        if pattern.endswith("/**") and rel_posix == pattern[:-3]:
            return pattern
    return None


def content_policy_validator(
    root: Path,
    *,
    max_file_bytes: int | None = None,
    protected_paths: Sequence[str] = (),
) -> Validator:
    def check(change_set: ChangeSet) -> str | None:
        for op in change_set:
            rel = relative_posix(root, op.path)
            hit = _matches_any(rel, protected_paths)
            if hit:
                return f"{op.path} is protected by policy ({hit})"
            data = op.data
            if max_file_bytes is not None and data is not None and len(data) > max_file_bytes:
                return f"content for {op.path} is {len(data)} bytes (limit {max_file_bytes})"
        return None

    return Validator(
        kind=ValidatorKind.CONTENT_POLICY,
        name="content_policy",
        check=check,
        description="Size limit and protected path globs",
    )


# -----------------------------------------------------------------------------
# Secret scanning
# -----------------------------------------------------------------------------


SECRET_PATTERNS: dict[str, re.Pattern[str]] = {
    "aws_access_key_id": re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b"),
    "private_key_block": re.compile(r"-----BEGIN (?:RSA |EC |DSA |OPENSSH |PGP |ENCRYPTED )?PRIVATE KEY(?: BLOCK)?-----"),
    "github_token": re.compile(r"\bgh[pousr]_[A-Za-z0-9]{36,}\b"),
    "slack_token": re.compile(r"\bxox[abprs]-[A-Za-z0-9-]{10,}\b"),
    "assigned_credential": re.compile(
        r"(?i)\b(?:api[_-]?key|secret[_-]?key|client[_-]?secret|password|passwd|access[_-]?token)\b"
        r"\s*[:=]\s*['\"][^'\"\s]{12,}['\"]"
    ),
}


def scan_for_secrets(text: str, patterns: dict[str, re.Pattern[str]] | None = None) -> list[str]:
    """Names of the secret patterns found in `text`."""
    patterns = SECRET_PATTERNS if patterns is None else patterns
    return [name for name, pattern in patterns.items() if pattern.search(text)]


def secret_validator(*, enabled: bool = True, patterns: dict[str, re.Pattern[str]] | None = None) -> Validator:
    def check(change_set: ChangeSet) -> str | None:
        if not enabled:
            return None
        for op in change_set:
            data = op.data
            if data is None:
                continue
            found = scan_for_secrets(data.decode("utf-8", errors="ignore"), patterns)
            if found:
                return f"possible secret in {op.path}: {', '.join(found)}"
        return None

    return Validator(
        kind=ValidatorKind.SECRET,
        name="secret_scan",
        check=check,
        description="Reject content that looks like credentials" if enabled else "Secret scanning disabled",
    )


# -----------------------------------------------------------------------------
# Gates
# -----------------------------------------------------------------------------


@dataclass
class ValidationGates:
    """Ordered validator sequence; the first failure wins."""

    validators: list[Validator] = field(default_factory=list)

    def __iter__(self) -> Iterator[Validator]:
        return iter(self.validators)

    def __len__(self) -> int:
        return len(self.validators)

    def names(self) -> list[str]:
        return [v.name for v in self.validators]

    def append(self, validator: Validator) -> None:
        if validator.name in self.names():
            raise ValueError(f"Validator already registered: {validator.name}")
        self.validators.append(validator)

    def run(self, change_set: ChangeSet) -> list[ValidationResult]:
        """Run gates in order, stopping after the first failure."""
        results: list[ValidationResult] = []
        for validator in self.validators:
            result = validator.validate(change_set)
            results.append(result)
            if not result.ok:
                break
        return results

    def validate(self, change_set: ChangeSet) -> None:
        """Raise ValidationError for the first failing gate."""
        for result in self.run(change_set):
            if not result.ok:
                raise ValidationError(result.validator, result.reason)


def default_gates(
    root: Path,
    *,
    max_file_bytes: int | None = None,
    protected_paths: Sequence[str] = (),
    secret_scan: bool = True,
) -> ValidationGates:
    return ValidationGates(
        validators=[
            path_validator(root),
            content_type_validator(),
            content_policy_validator(root, max_file_bytes=max_file_bytes, protected_paths=protected_paths),
            secret_validator(enabled=secret_scan),
        ]
    )

"""
Small utilities shared by the safety core and the state machine.
"""

from __future__ import annotations

import base64
import hashlib
import json
import os
import tempfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def _encode_crockford_base32(value: int, length: int) -> str:
    chars: list[str] = []
    for _ in range(length):
        chars.append(_CROCKFORD32[value & 31])
        value >>= 5
    return "".join(reversed(chars))


def new_ulid(*, timestamp_ms: int | None = None) -> str:
    """
    Generate a ULID (26 chars, Crockford base32).

    ULID = 48-bit millisecond timestamp + 80-bit randomness.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)

    if not (0 <= timestamp_ms < (1 << 48)):
        raise ValueError("timestamp_ms out of range for ULID")

    randomness = int.from_bytes(os.urandom(10), "big")
    value = (timestamp_ms << 80) | randomness
    return _encode_crockford_base32(value, 26)


class MonotonicUlid:
    """
    ULID generator whose output sorts in creation order.

    Within the same millisecond (or if the clock steps backwards) the
    previous value is incremented instead of drawing fresh randomness.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_value = 0

    def __call__(self) -> str:
        with self._lock:
            now_ms = int(time.time() * 1000)
            if now_ms > self._last_ms:
                randomness = int.from_bytes(os.urandom(10), "big")
                value = (now_ms << 80) | randomness
                self._last_ms = now_ms
            else:
                value = self._last_value + 1
            self._last_value = value
            return _encode_crockford_base32(value, 26)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def canonical_json(value: Any) -> str:
    """Key-sorted, whitespace-free JSON used for hashing."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def encode_bytes(data: bytes) -> dict[str, str]:
    """
    Wrap raw bytes for a JSON document.

    UTF-8 decodable content is stored as readable text, anything else
    as base64.
    """
    try:
        return {"encoding": "utf-8", "data": data.decode("utf-8")}
    except UnicodeDecodeError:
        return {"encoding": "base64", "data": base64.b64encode(data).decode("ascii")}


def decode_bytes(wrapped: dict[str, str]) -> bytes:
    encoding = wrapped.get("encoding")
    if encoding == "utf-8":
        return wrapped["data"].encode("utf-8")
    if encoding == "base64":
        return base64.b64decode(wrapped["data"], validate=True)
    raise ValueError(f"Unknown content encoding: {encoding!r}")


def atomic_write_text(path: Path, content: str) -> None:
    """
    Write `content` to `path` atomically.

    Writes to a temporary file in the same directory, fsyncs it, then
    renames it into place, so a crash mid-write leaves the previous
    document intact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")

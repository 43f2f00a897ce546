"""Blob storage for materialized media.

The engine only needs ``save(kind, data_url) -> key``. FileBlobStore is the
default used by the CLI; MemoryBlobStore suits tests and embedding.
"""

from __future__ import annotations

import base64
import binascii
import mimetypes
import re
import uuid
from pathlib import Path
from typing import Any, Protocol

_DATA_URL_RE = re.compile(
    r"^data:(?P<media>[^;,]+)?(?:;[^;,]+)*?;base64,(?P<data>.*)$", re.DOTALL
)


class BlobStore(Protocol):
    """Persists a data URL and returns an opaque storage key.

    ``save`` may be a plain or an async method.
    """

    def save(self, kind: str, data_url: str) -> Any: ...


def to_data_url(media_type: str, base64_data: str) -> str:
    return f"data:{media_type};base64,{base64_data}"


def parse_data_url(url: str) -> tuple[str, str] | None:
    """Split a base64 data URL into ``(media_type, payload)``.

    Returns None for anything that is not a base64 data URL.
    """
    match = _DATA_URL_RE.match(url.strip())
    if not match:
        return None
    return match.group("media") or "application/octet-stream", match.group("data")


def _decode(data_url: str) -> tuple[str, bytes]:
    parsed = parse_data_url(data_url)
    if parsed is None:
        raise ValueError("Not a base64 data URL")
    media_type, payload = parsed
    try:
        return media_type, base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def _extension(media_type: str) -> str:
    ext = mimetypes.guess_extension(media_type) or ".bin"
    return ".jpg" if ext == ".jpe" else ext


class FileBlobStore:
    """Writes decoded blobs under ``root/<kind>/``.

    Keys look like ``response:3f2c....png`` and resolve back to the file
    through :meth:`path_for`.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def save(self, kind: str, data_url: str) -> str:
        media_type, data = _decode(data_url)
        name = f"{uuid.uuid4().hex}{_extension(media_type)}"
        target = self._root / kind / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return f"{kind}:{name}"

    def path_for(self, key: str) -> Path:
        kind, _, name = key.partition(":")
        if not name or "/" in name or "\\" in name:
            raise KeyError(key)
        return self._root / kind / name

    def load(self, key: str) -> bytes:
        path = self.path_for(key)
        if not path.is_file():
            raise KeyError(key)
        return path.read_bytes()


class MemoryBlobStore:
    """Keeps decoded blobs in a dict. Not persistent."""

    def __init__(self) -> None:
        self.blobs: dict[str, tuple[str, bytes]] = {}

    def save(self, kind: str, data_url: str) -> str:
        media_type, data = _decode(data_url)
        key = f"{kind}:{uuid.uuid4().hex}"
        self.blobs[key] = (media_type, data)
        return key

    def load(self, key: str) -> bytes:
        return self.blobs[key][1]

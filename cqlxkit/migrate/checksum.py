"""MD5 checksums of migration files."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Any

_CHUNK = 64 * 1024


def _as_directory(directory: Any) -> Any:
    """Return a path for str or path-like input, else the object unchanged."""
    if isinstance(directory, (str, os.PathLike)):
        return Path(directory)
    return directory


def checksum(data: bytes) -> str:
    """Return the hex MD5 digest of ``data``."""
    return hashlib.md5(data).hexdigest()


def file_checksum(directory: Any, path: str) -> str:
    """Return the hex MD5 digest of ``path`` inside ``directory``.

    A file that cannot be opened yields an empty string.
    """
    target = _as_directory(directory) / path
    try:
        handle = target.open("rb")
    except OSError:
        return ""
    digest = hashlib.md5()
    with handle:
        for chunk in iter(lambda: handle.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()
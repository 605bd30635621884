"""Small filesystem helpers shared by the executors and the manifest store."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Write *data* to *path* through a sibling temporary file and ``os.replace``.

    Parent directories are created on demand. Readers observe either the old
    content or the new content, never a partial file.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        if path.exists() and not path.is_symlink():
            os.chmod(temp_name, path.stat().st_mode & 0o7777)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


def write_text_atomic(path: Path, text: str) -> None:
    write_bytes_atomic(path, text.encode("utf-8"))


def read_bytes_if_exists(path: Path | None) -> bytes | None:
    """Return the content of *path*, or ``None`` when it is absent."""

    if path is None:
        return None
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None

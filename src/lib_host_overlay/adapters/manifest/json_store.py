"""JSON manifest store recording the outputs of the last synthesis run.

Purpose
-------
Implement :class:`~lib_host_overlay.application.ports.ManifestStore` with a
small JSON document at the synthesis root::

    {"version": 1, "outputs": ["config.json", "bin"], "lastRun": "2024-05-01T10:00:00+00:00"}

Paths are stored root-relative with POSIX separators. A manifest that cannot be
read, has a different version or the wrong shape is treated as absent.
"""

from __future__ import annotations

import json
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator

from ...application.fsio import write_text_atomic
from ...domain.errors import ManifestLockedError
from ...domain.settings import LOCK_FILE_NAME, MANIFEST_FILE_NAME
from ...observability import log_debug, log_warning

MANIFEST_VERSION = 1
_LOCK_POLL_SECONDS = 0.05


class JsonManifestStore:
    """Persist the previous run's output set next to the sources.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> store = JsonManifestStore(tmp.name)
    >>> store.load() is None
    True
    >>> store.save([Path(tmp.name) / "config.json"])
    >>> [path.name for path in store.load()]
    ['config.json']
    >>> tmp.cleanup()
    """

    def __init__(self, root: str | Path, *, lock_timeout: float = 10.0) -> None:
        self.root = Path(root).resolve()
        self.path = self.root / MANIFEST_FILE_NAME
        self.lock_path = self.root / LOCK_FILE_NAME
        self.lock_timeout = lock_timeout

    def load(self) -> list[Path] | None:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            log_debug("manifest_missing", stage="cleanup", path=str(self.path))
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            log_warning("manifest_invalid", stage="cleanup", path=str(self.path), error=str(exc))
            return None
        if not _well_formed(payload):
            log_warning("manifest_invalid", stage="cleanup", path=str(self.path), error="unexpected shape or version")
            return None
        return [self._absolute(item) for item in payload["outputs"]]

    def save(self, outputs: Iterable[Path], *, timestamp: datetime | None = None) -> None:
        moment = timestamp or datetime.now(timezone.utc)
        relative = sorted({self._relative(Path(path)) for path in outputs})
        document = {"version": MANIFEST_VERSION, "outputs": relative, "lastRun": moment.isoformat()}
        write_text_atomic(self.path, json.dumps(document, indent=2) + "\n")
        log_debug("manifest_saved", stage="cleanup", path=str(self.path), outputs=len(relative))

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive lock file for the duration of the ``with`` block.

        Raises
        ------
        ManifestLockedError
            When the lock is still held by someone else after ``lock_timeout``.
        """

        deadline = time.monotonic() + self.lock_timeout
        self.root.mkdir(parents=True, exist_ok=True)
        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                break
            except FileExistsError:
                if time.monotonic() >= deadline:
                    raise ManifestLockedError(
                        f"Manifest lock {self.lock_path} is held by another run; "
                        f"gave up after {self.lock_timeout:g}s"
                    ) from None
                time.sleep(_LOCK_POLL_SECONDS)
        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
            os.close(fd)
            yield
        finally:
            self.lock_path.unlink(missing_ok=True)

    def _relative(self, path: Path) -> str:
        absolute = path if path.is_absolute() else self.root / path
        absolute = absolute.parent.resolve() / absolute.name
        try:
            return absolute.relative_to(self.root).as_posix()
        except ValueError:
            return absolute.as_posix()

    def _absolute(self, item: str) -> Path:
        candidate = Path(item)
        if candidate.is_absolute():
            return candidate
        return self.root.joinpath(*PurePosixPath(item).parts)


def _well_formed(payload: object) -> bool:
    if not isinstance(payload, dict) or payload.get("version") != MANIFEST_VERSION:
        return False
    outputs = payload.get("outputs")
    return isinstance(outputs, list) and all(isinstance(item, str) for item in outputs)

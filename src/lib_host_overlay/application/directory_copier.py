"""Directory-copy executor.

Purpose
-------
Replicate a matched filtered directory into its canonical output directory.
Contents are copied as opaque payload: names, bytes and symlinks are kept as
they are, and files whose content already matches are not rewritten.

Contents
--------
* :func:`execute_directory_copy` – one operation, never raises for expected failures.
* :func:`execute_directory_copies` – a batch on a thread pool.
* :func:`directory_output_files` – the output paths a copy would produce.
* :func:`files_equal` – size-then-content comparison.
"""

from __future__ import annotations

import os
import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterator, Sequence

from ..domain.errors import DirectoryCopyError
from ..domain.operations import DirectoryCopyOperation, DirectoryCopyResult
from ..observability import log_debug, log_error, log_info

CHUNK_SIZE = 64 * 1024
_SMALL_FILE_LIMIT = 1024 * 1024


def iter_source_files(source: Path) -> Iterator[Path]:
    """Yield every non-directory entry under *source* relative to it.

    Hidden entries are included. Symlinks to directories are reported as
    entries and never followed. A missing *source* yields nothing.
    """

    if not source.is_dir():
        return
    for current, dirnames, filenames in os.walk(source, topdown=True, followlinks=False):
        current_path = Path(current)
        linked_dirs = [name for name in dirnames if (current_path / name).is_symlink()]
        dirnames[:] = sorted(name for name in dirnames if name not in linked_dirs)
        for name in sorted([*filenames, *linked_dirs]):
            yield (current_path / name).relative_to(source)


def directory_output_files(operation: DirectoryCopyOperation) -> list[Path]:
    """Return the output file paths *operation* would produce."""

    return [operation.output_path / relative for relative in iter_source_files(operation.source_path)]


def files_equal(first: Path, second: Path) -> bool:
    """Return ``True`` when both regular files hold the same bytes.

    Sizes are compared first; files above 1 MiB are compared in 64 KiB chunks.
    """

    try:
        if first.stat().st_size != second.stat().st_size:
            return False
        if first.stat().st_size < _SMALL_FILE_LIMIT:
            return first.read_bytes() == second.read_bytes()
        with first.open("rb") as left, second.open("rb") as right:
            while True:
                chunk = left.read(CHUNK_SIZE)
                if chunk != right.read(CHUNK_SIZE):
                    return False
                if not chunk:
                    return True
    except FileNotFoundError:
        return False


def _copy_entry(source: Path, destination: Path) -> bool:
    """Copy one entry; return ``True`` when something was written."""

    if source.is_symlink():
        target = os.readlink(source)
        if destination.is_symlink():
            if os.readlink(destination) == target:
                return False
            destination.unlink()
        elif destination.is_dir():
            shutil.rmtree(destination)
        elif destination.exists():
            destination.unlink()
        destination.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(target, destination)
        return True

    if destination.is_symlink():
        destination.unlink()
    elif destination.is_dir():
        shutil.rmtree(destination)
    elif destination.is_file() and files_equal(source, destination):
        return False
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
    return True


def execute_directory_copy(operation: DirectoryCopyOperation) -> DirectoryCopyResult:
    """Copy ``operation.source_path`` into ``operation.output_path``.

    The output directory is created even when the source is empty. A missing
    source counts as zero files.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name)
    >>> (root / "bin.{os=linux}").mkdir()
    >>> _ = (root / "bin.{os=linux}" / "tool.sh").write_text("echo hi\\n")
    >>> op = DirectoryCopyOperation(root / "bin.{os=linux}", root / "bin")
    >>> first, second = execute_directory_copy(op), execute_directory_copy(op)
    >>> (first.files_written, first.changed), (second.files_unchanged, second.changed)
    ((1, True), (1, False))
    >>> tmp.cleanup()
    """

    written = unchanged = 0
    try:
        operation.output_path.mkdir(parents=True, exist_ok=True)
        for relative in iter_source_files(operation.source_path):
            if _copy_entry(operation.source_path / relative, operation.output_path / relative):
                written += 1
            else:
                unchanged += 1
    except OSError as exc:
        error = DirectoryCopyError(str(operation.source_path), str(operation.output_path), exc)
        log_error("directory_copy_failed", stage="copy", path=str(operation.output_path), error=str(error))
        return DirectoryCopyResult(operation=operation, success=False, error=error)

    if written:
        log_info(
            "directory_copied",
            stage="copy",
            path=str(operation.output_path),
            source=str(operation.source_path),
            written=written,
            unchanged=unchanged,
        )
    else:
        log_debug("directory_unchanged", stage="copy", path=str(operation.output_path), unchanged=unchanged)
    return DirectoryCopyResult(
        operation=operation,
        success=True,
        files_written=written,
        files_unchanged=unchanged,
        changed=written > 0,
    )


def execute_directory_copies(
    operations: Sequence[DirectoryCopyOperation], *, workers: int = 4
) -> list[DirectoryCopyResult]:
    """Execute *operations* concurrently; results come back in input order."""

    if not operations:
        return []
    if workers <= 1 or len(operations) == 1:
        return [execute_directory_copy(operation) for operation in operations]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="host-overlay-copy") as pool:
        return list(pool.map(execute_directory_copy, operations))

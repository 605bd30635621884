"""Stale-output cleanup.

Purpose
-------
Compare this run's output paths with the manifest of the previous run and
soft-delete outputs that are no longer produced, by renaming them with the
``.host-overlay-deleted`` suffix. The rename is reversible (:func:`restore`)
until :func:`purge` removes suffixed entries for good.

Per prior output path
---------------------
* not in the manifest → nothing happens;
* in the manifest and still produced → kept;
* in the manifest, no longer produced, present on disk → renamed;
* in the manifest, no longer produced, already gone → nothing happens.

The manifest is rewritten with exactly the current outputs after every
reconciliation, so a second run with the same outputs renames nothing.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Iterable

import pathspec

from ..domain.errors import CleanupError
from ..domain.operations import CleanupResult
from ..domain.settings import DELETED_SUFFIX, Settings
from ..observability import log_debug, log_info, log_warning
from .ports import ManifestStore


def deleted_path(path: Path) -> Path:
    """Return the soft-deleted form of *path*.

    >>> deleted_path(Path("config.json")).name
    'config.json.host-overlay-deleted'
    """

    return path.with_name(path.name + DELETED_SUFFIX)


def is_deleted_path(path: Path) -> bool:
    return path.name.endswith(DELETED_SUFFIX)


def original_path(path: Path) -> Path:
    """Return *path* without the soft-delete suffix (unchanged when absent).

    >>> original_path(Path("bin.host-overlay-deleted")).name, original_path(Path("bin")).name
    ('bin', 'bin')
    """

    if not is_deleted_path(path):
        return path
    return path.with_name(path.name[: -len(DELETED_SUFFIX)])


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _soft_delete(path: Path) -> bool:
    """Rename *path* to its deleted form and return whether it was a directory."""

    target = deleted_path(path)
    is_directory = path.is_dir() and not path.is_symlink()
    if os.path.lexists(target):
        _remove(target)
    path.rename(target)
    return is_directory


def reconcile(current_outputs: Iterable[Path], store: ManifestStore) -> CleanupResult:
    """Soft-delete outputs recorded by the previous run but absent from *current_outputs*.

    Rename failures are collected in :attr:`CleanupResult.errors`; the
    remaining stale paths are still processed and the manifest is still
    rewritten. The whole read-rename-write cycle runs under ``store.lock()``.
    """

    current = [Path(path) for path in current_outputs]
    current_set = set(current)
    result = CleanupResult()
    with store.lock():
        previous = store.load()
        if previous is None:
            log_debug("cleanup_first_run", stage="cleanup", path=None, outputs=len(current))
        else:
            for stale in sorted(set(previous) - current_set):
                if not os.path.lexists(stale):
                    continue
                try:
                    was_directory = _soft_delete(stale)
                except OSError as exc:
                    error = CleanupError(str(stale), exc)
                    log_warning("stale_output_rename_failed", stage="cleanup", path=str(stale), error=str(exc))
                    result.errors.append(error)
                    continue
                (result.renamed_directories if was_directory else result.renamed_files).append(stale)
                log_info("stale_output_renamed", stage="cleanup", path=str(stale), directory=was_directory)
        store.save(current)
    return result


def restore(path: str | Path) -> bool:
    """Undo one soft delete.

    *path* may name either the suffixed entry or the original location.
    Returns ``False`` when there is nothing to restore or the original path is
    occupied.
    """

    candidate = Path(path)
    suffixed = candidate if is_deleted_path(candidate) else deleted_path(candidate)
    original = original_path(suffixed)
    if not os.path.lexists(suffixed):
        log_debug("restore_missing", stage="cleanup", path=str(suffixed))
        return False
    if os.path.lexists(original):
        log_warning("restore_blocked", stage="cleanup", path=str(original))
        return False
    suffixed.rename(original)
    log_info("stale_output_restored", stage="cleanup", path=str(original))
    return True


def purge(root: str | Path, *, settings: Settings | None = None) -> list[str]:
    """Permanently delete every soft-deleted entry under *root*.

    Returns the removed entries as root-relative POSIX paths. Ignored
    directories (``.git/``, ``node_modules/`` and configured patterns) are not
    entered. Entries that cannot be removed are logged and left in place.
    """

    settings = settings or Settings()
    root_path = Path(root).resolve()
    deleted_pattern = f"*{DELETED_SUFFIX}"
    ignore = pathspec.PathSpec.from_lines(
        pathspec.patterns.GitWildMatchPattern,
        [pattern for pattern in settings.ignore_patterns if pattern != deleted_pattern],
    )

    purged: list[str] = []
    for current, dirnames, filenames in os.walk(root_path, topdown=True, followlinks=False):
        current_path = Path(current)
        relative_dir = current_path.relative_to(root_path).as_posix()
        prefix = "" if relative_dir == "." else f"{relative_dir}/"
        dirnames[:] = [name for name in dirnames if not ignore.match_file(f"{prefix}{name}/")]
        for name in sorted([*dirnames, *filenames]):
            if not name.endswith(DELETED_SUFFIX):
                continue
            target = current_path / name
            try:
                _remove(target)
            except OSError as exc:
                log_warning("purge_failed", stage="cleanup", path=str(target), error=str(exc))
                continue
            purged.append(f"{prefix}{name}")
        dirnames[:] = [name for name in dirnames if not name.endswith(DELETED_SUFFIX)]
    log_info("purge_completed", stage="cleanup", path=str(root_path), removed=len(purged))
    return purged

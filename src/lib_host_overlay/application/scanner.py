"""Operation scanner: turn an annotated source tree into a plan.

Purpose
-------
Walk a synthesis root once, classify every entry, validate the tree structure
and emit the merge and directory-copy operations for one
:class:`~lib_host_overlay.domain.context.Context`. Nothing is written here; all
structural problems raise before any executor runs.

Contents
--------
* :func:`scan` – full plan (files and directories) as a :class:`ScanResult`.
* :func:`scan_directories` – directory-copy operations only.
* :func:`filtered_directory_paths` – every filtered directory, matched or not.
* :func:`build_ignore_spec` – the ``pathspec`` matcher used for pruning.

Classification
--------------
Directories whose own name carries filter groups are *filtered directories*;
their contents are opaque payload and never scanned for annotations. Outside of
them, a file is a *base source* (``.base`` marker or ``{base}`` placeholder), an
*overlay* (filter groups or the legacy dotted machine name) or irrelevant. A
merge output at or beneath a matched directory output is a structural conflict.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

import pathspec

from ..adapters.formats.registry import format_kind_for, output_name_for
from ..domain.context import Context
from ..domain.errors import (
    AmbiguousSourceError,
    BaseDirectoryNotSupportedError,
    DirectoryConflictError,
    FileDirectoryConflictError,
    NestedFilteredDirectoryError,
)
from ..domain.filters import Filter, evaluate, has_filters, parse_name, strip_groups
from ..domain.names import canonical_name, convert_legacy_name, is_base_source, is_legacy_name
from ..domain.operations import DirectoryCopyOperation, MergeOperation, ScanResult
from ..domain.settings import Settings
from ..observability import log_debug, log_info


@dataclass(frozen=True, slots=True)
class _Candidate:
    path: Path
    output_path: Path
    filters: tuple[Filter, ...]
    is_base: bool


@dataclass(frozen=True, slots=True)
class _FilteredDirectory:
    path: Path
    output_path: Path
    filters: tuple[Filter, ...]


def build_ignore_spec(settings: Settings) -> pathspec.PathSpec:
    """Return a gitignore-style matcher for the default and configured ignores."""

    return pathspec.PathSpec.from_lines(pathspec.patterns.GitWildMatchPattern, settings.ignore_patterns)


def scan(root: str | Path, context: Context, *, settings: Settings | None = None) -> ScanResult:
    """Plan the synthesis of *root* for *context*.

    Raises
    ------
    StructuralError
        Nested or conflicting filtered directories, filtered base directories,
        ambiguous sources, or a file output that lands on or inside a directory
        output.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> base = Path(tmp.name)
    >>> _ = (base / "config.base.json").write_text('{"a": 1}')
    >>> _ = (base / "config.{machine=laptop}.json").write_text('{"b": 2}')
    >>> ctx = Context(os="linux", arch="x64", machine="laptop", user="ada")
    >>> [op.describe() for op in scan(base, ctx).merge_operations]
    ['config.base.json + config.{machine=laptop}.json -> config.json']
    >>> tmp.cleanup()
    """

    settings = settings or Settings()
    root_path = Path(root).resolve()
    ignore = build_ignore_spec(settings)

    filtered = _collect_filtered_directories(root_path, ignore)
    directory_operations = _directory_operations(filtered, context)
    opaque_roots = {item.path for item in filtered}
    candidates = list(_iter_file_candidates(root_path, ignore, context, opaque_roots))
    merge_operations = _merge_operations(candidates, context)
    _check_file_directory_collisions(merge_operations, directory_operations)

    result = ScanResult(
        merge_operations=tuple(sorted(merge_operations, key=lambda op: op.output_path)),
        directory_operations=tuple(sorted(directory_operations, key=lambda op: op.output_path)),
    )
    log_info(
        "scan_completed",
        stage="scan",
        path=str(root_path),
        merges=len(result.merge_operations),
        directories=len(result.directory_operations),
    )
    return result


def scan_directories(
    root: str | Path, context: Context, *, settings: Settings | None = None
) -> tuple[DirectoryCopyOperation, ...]:
    """Return the validated directory-copy operations for *root* only."""

    settings = settings or Settings()
    filtered = _collect_filtered_directories(Path(root).resolve(), build_ignore_spec(settings))
    return tuple(sorted(_directory_operations(filtered, context), key=lambda op: op.output_path))


def filtered_directory_paths(root: str | Path, *, settings: Settings | None = None) -> list[Path]:
    """Return every filtered directory under *root*, whether or not it matches."""

    settings = settings or Settings()
    filtered = _collect_filtered_directories(Path(root).resolve(), build_ignore_spec(settings))
    return sorted(item.path for item in filtered)


def _walk(root: Path, ignore: pathspec.PathSpec) -> Iterator[tuple[Path, list[str], list[str]]]:
    """``os.walk`` over *root* with ignored entries pruned; callers may prune further."""

    for current, dirnames, filenames in os.walk(root, topdown=True, followlinks=False):
        current_path = Path(current)
        relative = current_path.relative_to(root).as_posix()
        prefix = "" if relative == "." else f"{relative}/"
        dirnames[:] = sorted(name for name in dirnames if not ignore.match_file(f"{prefix}{name}/"))
        kept_files = sorted(name for name in filenames if not ignore.match_file(f"{prefix}{name}"))
        yield current_path, dirnames, kept_files


def _collect_filtered_directories(root: Path, ignore: pathspec.PathSpec) -> list[_FilteredDirectory]:
    found: list[_FilteredDirectory] = []
    for current, dirnames, _files in _walk(root, ignore):
        for name in list(dirnames):
            if not has_filters(name):
                continue
            path = current / name
            if is_base_source(name):
                raise BaseDirectoryNotSupportedError(str(path))
            _reject_nested(root, path, ignore)
            parsed = parse_name(name)
            found.append(_FilteredDirectory(path=path, output_path=current / strip_groups(name), filters=parsed.filters))
            dirnames.remove(name)
    return found


def _reject_nested(root: Path, outer: Path, ignore: pathspec.PathSpec) -> None:
    for current, dirnames, _files in _walk(outer, ignore):
        for name in dirnames:
            if has_filters(name):
                inner = current / name
                raise NestedFilteredDirectoryError(str(outer.relative_to(root)), str(inner.relative_to(root)))


def _directory_operations(filtered: Iterable[_FilteredDirectory], context: Context) -> list[DirectoryCopyOperation]:
    by_output: dict[Path, list[_FilteredDirectory]] = {}
    for item in filtered:
        by_output.setdefault(item.output_path, []).append(item)

    operations: list[DirectoryCopyOperation] = []
    for output_path, group in by_output.items():
        matching = [item for item in group if evaluate(item.filters, context).matches]
        if len(matching) > 1:
            raise DirectoryConflictError(str(output_path), [str(item.path) for item in matching])
        if matching:
            source = matching[0]
            operations.append(DirectoryCopyOperation(source_path=source.path, output_path=output_path))
            log_debug("directory_planned", stage="scan", path=str(output_path), source=str(source.path))
        else:
            log_debug("directory_unmatched", stage="scan", path=str(output_path), candidates=len(group))

    outputs = sorted(op.output_path for op in operations)
    for index, outer in enumerate(outputs):
        for inner in outputs[index + 1 :]:
            if inner.is_relative_to(outer):
                sources = [str(op.source_path) for op in operations if op.output_path in (outer, inner)]
                raise DirectoryConflictError(str(inner), sources)
    return operations


def _iter_file_candidates(
    root: Path, ignore: pathspec.PathSpec, context: Context, opaque_roots: set[Path]
) -> Iterator[_Candidate]:
    for current, dirnames, filenames in _walk(root, ignore):
        dirnames[:] = [name for name in dirnames if current / name not in opaque_roots]
        for name in filenames:
            path = current / name
            if path in opaque_roots:
                continue
            candidate = _classify(path, context)
            if candidate is not None:
                yield candidate


def _classify(path: Path, context: Context) -> _Candidate | None:
    name = path.name
    if is_base_source(name):
        canonical = canonical_name(name)
        return _Candidate(path, path.parent / output_name_for(canonical), parse_name(name).filters, True)
    if has_filters(name):
        parsed = parse_name(name)
        return _Candidate(path, path.parent / output_name_for(parsed.canonical_name), parsed.filters, False)
    if is_legacy_name(name, context.machine):
        parsed = parse_name(convert_legacy_name(name, context.machine))
        return _Candidate(path, path.parent / output_name_for(parsed.canonical_name), parsed.filters, False)
    return None


def _merge_operations(candidates: Iterable[_Candidate], context: Context) -> list[MergeOperation]:
    by_output: dict[Path, list[_Candidate]] = {}
    for candidate in candidates:
        by_output.setdefault(candidate.output_path, []).append(candidate)

    operations: list[MergeOperation] = []
    for output_path, group in by_output.items():
        bases = [item for item in group if item.is_base and evaluate(item.filters, context).matches]
        overlays = [item for item in group if not item.is_base and evaluate(item.filters, context).matches]
        if len(bases) > 1:
            raise AmbiguousSourceError(str(output_path), [str(item.path) for item in bases], role="base")
        if len(overlays) > 1:
            raise AmbiguousSourceError(str(output_path), [str(item.path) for item in overlays])
        if not bases and not overlays:
            log_debug("merge_unmatched", stage="scan", path=str(output_path), candidates=len(group))
            continue
        operation = MergeOperation(
            base_path=bases[0].path if bases else None,
            overlay_path=overlays[0].path if overlays else None,
            output_path=output_path,
            format_kind=format_kind_for(output_path.name),
        )
        operations.append(operation)
        log_debug("merge_planned", stage="scan", path=str(output_path), plan=operation.describe())
    return operations


def _check_file_directory_collisions(
    merges: Iterable[MergeOperation], directories: Iterable[DirectoryCopyOperation]
) -> None:
    directory_list = list(directories)
    for merge in merges:
        for directory in directory_list:
            if merge.output_path == directory.output_path or merge.output_path.is_relative_to(directory.output_path):
                raise FileDirectoryConflictError(
                    str(merge.output_path), str(merge.sources[-1]), str(directory.source_path)
                )

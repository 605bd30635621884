"""Composition root for ``lib_host_overlay``.

Purpose
-------
Wire the settings loader, host context detection, scanner, executors and the
manifest-backed cleanup into the small set of entry points callers use. The CLI
and external watchers depend on this module only.

Contents
--------
* :func:`resolve_settings` / :func:`resolve_context` – ambient inputs for a root.
* :func:`scan` – plan a synthesis run (structural errors propagate).
* :func:`execute_merge` / :func:`execute_directory_copy` – single operations.
* :func:`reconcile` – stale-output cleanup against the root's manifest.
* :func:`synthesize` – ``scan → execute → cleanup`` as one traced run.
* :func:`open_session` – incremental session for watchers.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

from .adapters.context.host import detect_context, get_context
from .adapters.manifest.json_store import JsonManifestStore
from .adapters.settings.loader import load_settings
from .application import cleanup as _cleanup
from .application import scanner as _scanner
from .application.directory_copier import execute_directory_copies
from .application.directory_copier import execute_directory_copy as _execute_directory_copy
from .application.merger import execute_merge as _execute_merge
from .application.merger import execute_merges
from .application.session import SyncSession
from .domain.context import Context
from .domain.operations import (
    CleanupResult,
    DirectoryCopyOperation,
    DirectoryCopyResult,
    MergeOperation,
    MergeResult,
    RunReport,
    ScanResult,
)
from .domain.settings import Settings
from .observability import bind_trace_id, log_info, log_warning, make_event, new_trace_id


def resolve_settings(root: str | Path, *, environ: Mapping[str, str] | None = None) -> Settings:
    """Return the layered settings (defaults, ``.host-overlay.toml``, environment) for *root*."""

    return load_settings(root, environ=environ)


def resolve_context(
    settings: Settings | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Context:
    """Return the host context, extended by settings and explicit *overrides*.

    Without settings-file context keys, overrides or a custom environment the
    process-wide cached context is reused.
    """

    if environ is None and (settings is None or not settings.context):
        context = get_context()
    else:
        context = detect_context(environ, extra=settings.context if settings else None)
    if overrides:
        context = context.with_overrides(**dict(overrides))
    return context


def scan(root: str | Path, context: Context | None = None, *, settings: Settings | None = None) -> ScanResult:
    """Plan the synthesis of *root*; see :func:`lib_host_overlay.application.scanner.scan`."""

    settings = settings or resolve_settings(root)
    return _scanner.scan(root, context or resolve_context(settings), settings=settings)


def execute_merge(operation: MergeOperation) -> MergeResult:
    return _execute_merge(operation)


def execute_directory_copy(operation: DirectoryCopyOperation) -> DirectoryCopyResult:
    return _execute_directory_copy(operation)


def reconcile(root: str | Path, outputs: Iterable[Path], *, settings: Settings | None = None) -> CleanupResult:
    """Soft-delete outputs of the previous run under *root* that *outputs* no longer contains."""

    settings = settings or resolve_settings(root)
    store = JsonManifestStore(root, lock_timeout=settings.lock_timeout_s)
    return _cleanup.reconcile(outputs, store)


def synthesize(
    root: str | Path,
    context: Context | None = None,
    *,
    settings: Settings | None = None,
    cleanup: bool | None = None,
) -> RunReport:
    """Run ``scan → execute → cleanup`` for *root* and return everything that happened.

    Why
    ----
    This is the one-shot entry point behind ``lib_host_overlay merge``: a fresh
    trace id is bound so every log record of the run can be correlated.

    Parameters
    ----------
    cleanup:
        Overrides ``settings.cleanup``. When enabled, the manifest records the
        planned outputs whether or not they had to be written.

    Raises
    ------
    StructuralError
        Before any file is written.
    ManifestLockedError
        When another run holds the manifest lock past the timeout.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name)
    >>> _ = (root / "notes.base.md").write_text("# Notes\\n")
    >>> _ = (root / "notes.{machine=box}.md").write_text("Box only.\\n")
    >>> ctx = Context(os="linux", arch="x64", machine="box", user="u")
    >>> report = synthesize(root, ctx, settings=Settings())
    >>> report.success, report.changed_count, (root / "notes.md").read_text()
    (True, 1, '# Notes\\n\\nBox only.\\n')
    >>> synthesize(root, ctx, settings=Settings()).changed_count
    0
    >>> bind_trace_id(None)
    >>> tmp.cleanup()
    """

    trace_id = new_trace_id()
    settings = settings or resolve_settings(root)
    context = context or resolve_context(settings)
    plan = _scanner.scan(root, context, settings=settings)

    merge_results = execute_merges(plan.merge_operations, workers=settings.workers)
    directory_results = execute_directory_copies(plan.directory_operations, workers=settings.workers)

    cleanup_result: CleanupResult | None = None
    if settings.cleanup if cleanup is None else cleanup:
        cleanup_result = reconcile(root, plan.output_paths(), settings=settings)

    report = RunReport(
        scan=plan,
        merge_results=tuple(merge_results),
        directory_results=tuple(directory_results),
        cleanup=cleanup_result,
    )
    summary = make_event(
        "synthesize",
        str(Path(root).resolve()),
        {
            "run_id": trace_id,
            "operations": len(merge_results) + len(directory_results),
            "changed": report.changed_count,
            "failed": len(report.failures),
            "renamed": len(cleanup_result.renamed) if cleanup_result else 0,
        },
    )
    if report.success:
        log_info("synthesis_completed", **summary)
    else:
        log_warning("synthesis_completed_with_failures", **summary)
    return report


def open_session(root: str | Path, context: Context | None = None, *, settings: Settings | None = None) -> SyncSession:
    """Return a :class:`SyncSession` for incremental re-synthesis of *root*."""

    settings = settings or resolve_settings(root)
    return SyncSession(root, context or resolve_context(settings), settings)


__all__ = [
    "bind_trace_id",
    "execute_directory_copy",
    "execute_merge",
    "open_session",
    "reconcile",
    "resolve_context",
    "resolve_settings",
    "scan",
    "synthesize",
]

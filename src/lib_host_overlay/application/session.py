"""Incremental re-synthesis for long-running watchers.

Purpose
-------
Keep one scan plan in memory and re-execute only the operations a changed
path feeds. A file watcher (the bundled polling loop or any external one) calls
:meth:`SyncSession.handle_change` per changed path and :meth:`SyncSession.rescan`
when sources appear or disappear.

Contents
--------
* :class:`SyncSession` – plan, source index and per-path re-execution.
* :class:`Debouncer` – per-path quiescence timers with cooperative shutdown.
* :func:`watch` – stat-polling loop driving a session through a debouncer.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Callable, Mapping, Union

from ..domain.context import Context
from ..domain.errors import StructuralError
from ..domain.filters import has_filters
from ..domain.names import is_base_source, is_legacy_name
from ..domain.operations import (
    DirectoryCopyOperation,
    DirectoryCopyResult,
    MergeOperation,
    MergeResult,
    ScanResult,
)
from ..domain.settings import Settings
from ..observability import log_debug, log_error, log_info
from .directory_copier import execute_directory_copies, execute_directory_copy
from .merger import execute_merge, execute_merges
from .scanner import build_ignore_spec, scan

ExecutionResult = Union[MergeResult, DirectoryCopyResult]
StatSignature = tuple[int, int, int]


class SyncSession:
    """Scan plan plus an index from source paths to the operations they feed.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name)
    >>> _ = (root / ".env.base").write_text("A=1\\n")
    >>> ctx = Context(os="linux", arch="x64", machine="box", user="u")
    >>> session = SyncSession(root, ctx)
    >>> [result.changed for result in session.handle_change(root / ".env.base")]
    [True]
    >>> session.handle_change(root / "unrelated.txt")
    []
    >>> tmp.cleanup()
    """

    def __init__(self, root: str | Path, context: Context, settings: Settings | None = None) -> None:
        self.root = Path(root).resolve()
        self.context = context
        self.settings = settings or Settings()
        self._lock = threading.RLock()
        self._plan = ScanResult()
        self._merges_by_source: dict[Path, list[MergeOperation]] = {}
        self.rescan()

    @property
    def plan(self) -> ScanResult:
        return self._plan

    def rescan(self) -> ScanResult:
        """Rebuild the plan and the source index; structural errors propagate."""

        plan = scan(self.root, self.context, settings=self.settings)
        index: dict[Path, list[MergeOperation]] = {}
        for operation in plan.merge_operations:
            for source in operation.sources:
                index.setdefault(source, []).append(operation)
        with self._lock:
            self._plan = plan
            self._merges_by_source = index
        log_debug("session_indexed", stage="watch", path=str(self.root), sources=len(index))
        return plan

    def run_all(self) -> list[ExecutionResult]:
        """Execute every planned operation once."""

        with self._lock:
            plan = self._plan
            merges = execute_merges(plan.merge_operations, workers=self.settings.workers)
            copies = execute_directory_copies(plan.directory_operations, workers=self.settings.workers)
        return [*merges, *copies]

    def watched_sources(self) -> list[Path]:
        """Return the merge sources and filtered-directory roots the plan depends on."""

        with self._lock:
            sources = set(self._merges_by_source)
            sources.update(op.source_path for op in self._plan.directory_operations)
        return sorted(sources)

    def directory_operation_for(self, path: Path) -> DirectoryCopyOperation | None:
        with self._lock:
            for operation in self._plan.directory_operations:
                if path == operation.source_path or path.is_relative_to(operation.source_path):
                    return operation
        return None

    def handle_change(self, path: str | Path) -> list[ExecutionResult]:
        """Re-execute exactly the operations fed by *path*; unknown paths do nothing."""

        changed = _absolute(Path(path), self.root)
        directory = self.directory_operation_for(changed)
        if directory is not None:
            with self._lock:
                return [execute_directory_copy(directory)]
        with self._lock:
            affected = list(self._merges_by_source.get(changed, ()))
            if not affected:
                log_debug("change_ignored", stage="watch", path=str(changed))
                return []
            return [execute_merge(operation) for operation in affected]

    def is_relevant(self, path: Path) -> bool:
        """Return ``True`` when adding or removing *path* can change the plan."""

        try:
            parts = path.relative_to(self.root).parts
        except ValueError:
            return False
        if any(has_filters(part) for part in parts):
            return True
        name = path.name
        return is_base_source(name) or is_legacy_name(name, self.context.machine)


def _absolute(path: Path, root: Path) -> Path:
    candidate = path if path.is_absolute() else root / path
    return candidate.parent.resolve() / candidate.name


class Debouncer:
    """Collapse bursts of triggers per path into one callback after *delay* seconds.

    Examples
    --------
    >>> import time
    >>> seen = []
    >>> debouncer = Debouncer(0.01, seen.append)
    >>> for _ in range(3):
    ...     _ = debouncer.trigger("a.json")
    >>> time.sleep(0.2)
    >>> debouncer.close()
    >>> seen
    ['a.json']
    """

    def __init__(self, delay: float, callback: Callable[[str], object]) -> None:
        self.delay = delay
        self._callback = callback
        self._timers: dict[str, threading.Timer] = {}
        self._state_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._closed = False

    @property
    def pending(self) -> int:
        with self._state_lock:
            return len(self._timers)

    def trigger(self, key: str | Path) -> bool:
        """(Re)start the timer for *key*; returns ``False`` once closed."""

        name = str(key)
        with self._state_lock:
            if self._closed:
                return False
            existing = self._timers.pop(name, None)
            if existing is not None:
                existing.cancel()
            timer = threading.Timer(self.delay, self._fire, args=(name,))
            timer.daemon = True
            self._timers[name] = timer
            timer.start()
        return True

    def _fire(self, name: str) -> None:
        with self._run_lock:
            with self._state_lock:
                superseded = self._timers.get(name) is not threading.current_thread()
                if not superseded:
                    del self._timers[name]
                if self._closed or superseded:
                    return
            self._callback(name)

    def close(self) -> None:
        """Stop accepting triggers, cancel pending timers, wait for an in-flight callback.

        Timers that already fired but have not started their callback see the
        closed flag under ``_run_lock`` and return without running.
        """

        with self._state_lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        with self._run_lock:
            pass


def snapshot(session: SyncSession) -> dict[Path, StatSignature]:
    """Return ``mtime_ns``/size/mode for every non-ignored file under the session root."""

    ignore = build_ignore_spec(session.settings)
    signatures: dict[Path, StatSignature] = {}
    for current, dirnames, filenames in os.walk(session.root, topdown=True, followlinks=False):
        current_path = Path(current)
        relative = current_path.relative_to(session.root).as_posix()
        prefix = "" if relative == "." else f"{relative}/"
        dirnames[:] = [name for name in dirnames if not ignore.match_file(f"{prefix}{name}/")]
        for name in filenames:
            if ignore.match_file(f"{prefix}{name}"):
                continue
            path = current_path / name
            try:
                stat = path.stat(follow_symlinks=False)
            except OSError:
                continue
            signatures[path] = (stat.st_mtime_ns, stat.st_size, stat.st_mode)
    return signatures


def watch(
    session: SyncSession,
    *,
    interval: float | None = None,
    debounce: float | None = None,
    stop_event: threading.Event | None = None,
    on_results: Callable[[str, list[ExecutionResult]], object] | None = None,
) -> None:
    """Poll *session*'s tree until *stop_event* is set.

    Modified sources are re-executed through a :class:`Debouncer`. Relevant
    additions or removals trigger a rescan and a full run. Structural errors
    raised by a rescan are logged and the previous plan stays active.
    """

    stop = stop_event or threading.Event()
    poll_seconds = session.settings.poll_interval_seconds if interval is None else interval
    delay = session.settings.debounce_seconds if debounce is None else debounce

    def _on_quiet(path: str) -> None:
        results = session.handle_change(path)
        if on_results is not None and results:
            on_results(path, results)

    debouncer = Debouncer(delay, _on_quiet)
    previous = snapshot(session)
    log_info("watch_started", stage="watch", path=str(session.root), sources=len(session.watched_sources()))
    try:
        while not stop.wait(poll_seconds):
            current = snapshot(session)
            _dispatch(session, previous, current, debouncer, on_results)
            previous = current
    finally:
        debouncer.close()
        log_info("watch_stopped", stage="watch", path=str(session.root))


def _dispatch(
    session: SyncSession,
    previous: Mapping[Path, StatSignature],
    current: Mapping[Path, StatSignature],
    debouncer: Debouncer,
    on_results: Callable[[str, list[ExecutionResult]], object] | None,
) -> None:
    topology = {path for path in previous.keys() ^ current.keys() if session.is_relevant(path)}
    if topology:
        try:
            session.rescan()
        except StructuralError as exc:
            log_error("watch_rescan_failed", stage="watch", path=str(session.root), error=str(exc))
            return
        results = session.run_all()
        if on_results is not None:
            on_results(str(session.root), results)
        return
    for path in sorted(current.keys() & previous.keys()):
        if current[path] != previous[path]:
            debouncer.trigger(path)

"""Merge executor.

Purpose
-------
Carry out :class:`~lib_host_overlay.domain.operations.MergeOperation` plans:
read the sources that exist, merge them through the format adapter registered
for the operation, and write the output only when its bytes would change.

Contents
--------
* :func:`execute_merge` – one operation, never raises for expected failures.
* :func:`execute_merges` – a batch on a thread pool, results in input order.
* :func:`render_merge` – the merged text without touching the output.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Sequence

from ..adapters.formats.registry import adapter_for, changes_suffix
from ..domain.errors import InvalidFormat, MergeReadError, MergeWriteError, OperationalError
from ..domain.operations import MergeOperation, MergeResult
from ..observability import log_debug, log_error, log_info
from .fsio import read_bytes_if_exists, write_bytes_atomic
from .ports import FormatAdapter


def render_merge(operation: MergeOperation) -> bytes | None:
    """Return the output bytes for *operation*, or ``None`` when no source exists.

    A single existing source is returned byte for byte unless its suffix maps to
    a different output suffix (``.jsonc`` to ``.json``), in which case it is
    parsed and re-serialised. Two sources are decoded as UTF-8 and go through
    the adapter's ``parse``/``merge``/``serialize``.

    Raises
    ------
    OperationalError
        ``InvalidFormat`` or ``ArrayMergeError`` raised by the adapter; the
        message names the offending source file.
    """

    base_bytes = read_bytes_if_exists(operation.base_path)
    overlay_bytes = read_bytes_if_exists(operation.overlay_path)
    adapter = adapter_for(operation.format_kind)
    if base_bytes is None or overlay_bytes is None:
        if overlay_bytes is None:
            lone_bytes, lone_path = base_bytes, operation.base_path
        else:
            lone_bytes, lone_path = overlay_bytes, operation.overlay_path
        if lone_bytes is None or lone_path is None or not changes_suffix(lone_path.name):
            return lone_bytes
        value = _parse(adapter, _decode(lone_bytes, lone_path), lone_path)
        return adapter.serialize(value).encode("utf-8")

    base_text = _decode(base_bytes, operation.base_path)
    overlay_text = _decode(overlay_bytes, operation.overlay_path)

    base_value = _parse(adapter, base_text, operation.base_path)
    overlay_value = _parse(adapter, overlay_text, operation.overlay_path)
    return adapter.serialize(adapter.merge(base_value, overlay_value)).encode("utf-8")


def _decode(data: bytes, path: Path | None) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidFormat(f"{path}: not valid UTF-8 text ({exc})") from exc


def _parse(adapter: FormatAdapter, text: str, path: Path | None) -> Any:
    try:
        return adapter.parse(text)
    except InvalidFormat as exc:
        raise InvalidFormat(f"{path}: {exc}") from exc


def execute_merge(operation: MergeOperation) -> MergeResult:
    """Execute one merge operation.

    Returns
    -------
    MergeResult
        ``skipped=True`` when neither source exists, ``changed=False`` when the
        output already holds the merged bytes, ``success=False`` with the typed
        error when parsing, merging or writing fails. The output is left as it
        was in every failure case.

    Examples
    --------
    >>> from pathlib import Path
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name)
    >>> _ = (root / "app.base.json").write_text('{"a": 1, "b": 2}')
    >>> _ = (root / "app.{os=linux}.json").write_text('{"b": 3, "c": 4}')
    >>> op = MergeOperation(root / "app.base.json", root / "app.{os=linux}.json", root / "app.json", "json")
    >>> execute_merge(op).changed, execute_merge(op).changed
    (True, False)
    >>> (root / "app.json").read_text()
    '{\\n  "a": 1,\\n  "b": 3,\\n  "c": 4\\n}\\n'
    >>> tmp.cleanup()
    """

    output = str(operation.output_path)
    try:
        payload = render_merge(operation)
    except OperationalError as exc:
        log_error("merge_failed", stage="merge", path=output, error=str(exc))
        return MergeResult(operation=operation, success=False, error=exc)
    except OSError as exc:
        error = MergeReadError(output, exc)
        log_error("merge_failed", stage="merge", path=output, error=str(error))
        return MergeResult(operation=operation, success=False, error=error)

    if payload is None:
        log_debug("merge_skipped", stage="merge", path=output, reason="no source exists")
        return MergeResult(operation=operation, success=False, skipped=True)

    try:
        if operation.output_path.is_file() and operation.output_path.read_bytes() == payload:
            log_debug("merge_unchanged", stage="merge", path=output)
            return MergeResult(operation=operation, success=True, changed=False)
        write_bytes_atomic(operation.output_path, payload)
    except OSError as exc:
        error = MergeWriteError(output, exc)
        log_error("merge_failed", stage="merge", path=output, error=str(error))
        return MergeResult(operation=operation, success=False, error=error)

    log_info("merge_written", stage="merge", path=output, plan=operation.describe(), bytes=len(payload))
    return MergeResult(operation=operation, success=True, changed=True)


def execute_merges(operations: Sequence[MergeOperation], *, workers: int = 4) -> list[MergeResult]:
    """Execute *operations* concurrently; failures stay isolated per operation."""

    if not operations:
        return []
    if workers <= 1 or len(operations) == 1:
        return [execute_merge(operation) for operation in operations]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="host-overlay-merge") as pool:
        return list(pool.map(execute_merge, operations))

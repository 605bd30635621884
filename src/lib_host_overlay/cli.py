"""CLI adapter for ``lib_host_overlay`` built on ``lib_cli_exit_tools``.

Purpose
-------
Expose host-specific synthesis on the command line: inspect the detected
context, preview the plan, run it, watch a tree, and manage soft-deleted
outputs.

Contents
--------
* :func:`cli` – root group wiring traceback handling and ``--verbose`` logging.
* :func:`cli_info` – distribution metadata.
* :func:`cli_context` – print the detected host context.
* :func:`cli_scan` – dry run printing the planned operations as JSON.
* :func:`cli_merge` – full ``scan → execute → cleanup`` run.
* :func:`cli_restore` / :func:`cli_purge` – soft-delete management.
* :func:`cli_watch` – initial run followed by polling re-synthesis.
* :func:`main` – ``lib_host_overlay`` console script; returns the exit status.

System Role
-----------
Outermost layer. Commands call :mod:`lib_host_overlay.core` only; exit codes
are centralised in ``lib_cli_exit_tools``.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from contextlib import contextmanager
from importlib import metadata
from pathlib import Path
from typing import Any, Final, Iterator, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click
from rich.logging import RichHandler

from . import core
from .application.cleanup import purge, restore
from .application.session import ExecutionResult, watch
from .domain.context import Context
from .domain.errors import OverlayError
from .domain.operations import DirectoryCopyResult, RunReport, ScanResult
from .domain.settings import Settings
from .observability import get_logger

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000
_DISTRIBUTION: Final[str] = "lib_host_overlay"

_root_option = click.option(
    "--root",
    type=click.Path(path_type=Path, exists=True, file_okay=False, dir_okay=True, resolve_path=True),
    default=".",
    show_default=True,
    help="Synthesis root directory",
)
_machine_option = click.option("--machine", default=None, help="Override the detected machine name")
_set_option = click.option(
    "--set",
    "assignments",
    multiple=True,
    metavar="KEY=VALUE",
    help="Override or add a context key (repeatable)",
)


def _resolve_version() -> str:
    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(
    help="Synthesize host-specific files from annotated sources",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name=_DISTRIBUTION,
    message=f"{_DISTRIBUTION} version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Print the full traceback when a command fails",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log every pipeline event to stderr")
@click.pass_context
def cli(ctx: click.Context, traceback: bool, verbose: bool) -> None:
    """Root command configuring traceback handling and logging for all subcommands.

    Side Effects
        Mutates ``lib_cli_exit_tools.config.traceback`` and, with ``--verbose``,
        attaches a ``rich`` handler to the package logger.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback
    if verbose:
        _enable_verbose_logging()


def _enable_verbose_logging() -> None:
    logger = get_logger()
    if any(isinstance(handler, RichHandler) for handler in logger.handlers):
        return
    handler = RichHandler(show_path=False, rich_tracebacks=False)
    handler.setFormatter(logging.Formatter("%(message)s %(context)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


@contextmanager
def _user_errors() -> Iterator[None]:
    """Render library errors as one-line CLI errors naming the offending paths."""

    try:
        yield
    except OverlayError as exc:
        raise click.ClickException(str(exc)) from exc


def _parse_assignments(assignments: Sequence[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` strings into a mapping.

    >>> _parse_assignments(["role=desktop", "version=1.5"])
    {'role': 'desktop', 'version': '1.5'}
    """

    parsed: dict[str, str] = {}
    for item in assignments:
        key, separator, value = item.partition("=")
        if not separator or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--set")
        parsed[key.strip().lower()] = value.strip()
    return parsed


def _prepare(root: Path, machine: Optional[str], assignments: Sequence[str]) -> tuple[Settings, Context]:
    with _user_errors():
        settings = core.resolve_settings(root)
    overrides: dict[str, Any] = _parse_assignments(assignments)
    if machine:
        overrides["machine"] = machine
    return settings, core.resolve_context(settings, overrides=overrides)


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def _plan_payload(plan: ScanResult, root: Path) -> dict[str, Any]:
    return {
        "merges": [
            {
                "base": _relative(op.base_path, root) if op.base_path else None,
                "overlay": _relative(op.overlay_path, root) if op.overlay_path else None,
                "output": _relative(op.output_path, root),
                "format": op.format_kind,
            }
            for op in plan.merge_operations
        ],
        "directories": [
            {"source": _relative(op.source_path, root), "output": _relative(op.output_path, root)}
            for op in plan.directory_operations
        ],
    }


def _describe_result(result: ExecutionResult, root: Path) -> str:
    if isinstance(result, DirectoryCopyResult):
        op = result.operation
        label = f"{_relative(op.source_path, root)}/ -> {_relative(op.output_path, root)}/"
        if not result.success:
            return f"FAILED  {label}: {result.error}"
        if result.changed:
            return f"copied  {label} ({result.files_written} written, {result.files_unchanged} unchanged)"
        return f"same    {label}"
    label = result.operation.describe()
    if result.skipped:
        return f"skipped {label}"
    if not result.success:
        return f"FAILED  {label}: {result.error}"
    return f"{'merged ' if result.changed else 'same   '} {label}"


def _echo_report(report: RunReport, root: Path) -> None:
    for result in (*report.merge_results, *report.directory_results):
        click.echo(_describe_result(result, root))
    cleanup = report.cleanup
    if cleanup is not None:
        for path in cleanup.renamed:
            click.echo(f"stale   {_relative(path, root)} (soft-deleted)")
        for error in cleanup.errors:
            click.echo(f"FAILED  cleanup {error.path}: {error.cause}", err=True)
    total = len(report.merge_results) + len(report.directory_results)
    click.echo(f"{total} operation(s), {report.changed_count} changed, {len(report.failures)} failed")


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Show the installed version and package metadata."""

    try:
        meta = metadata.metadata(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        click.echo(f"{_DISTRIBUTION} (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', _DISTRIBUTION)}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("context", context_settings=CLICK_CONTEXT_SETTINGS)
@_root_option
@_machine_option
@_set_option
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the context as JSON")
def cli_context(root: Path, machine: Optional[str], assignments: Sequence[str], as_json: bool) -> None:
    """Print the context annotated names are matched against."""

    _settings, context = _prepare(root, machine, assignments)
    payload = context.as_dict()
    if as_json:
        click.echo(json.dumps(payload, indent=2, sort_keys=True))
        return
    for key in ("os", "arch", "machine", "user", "env", "platform"):
        click.echo(f"{key:<9}: {payload[key] if payload[key] is not None else '-'}")
    for key, value in sorted(payload["extra"].items()):
        click.echo(f"{key:<9}: {value}")


@cli.command("scan", context_settings=CLICK_CONTEXT_SETTINGS)
@_root_option
@_machine_option
@_set_option
@click.option("--indent", type=int, default=2, show_default=True, help="JSON indent size")
def cli_scan(root: Path, machine: Optional[str], assignments: Sequence[str], indent: int) -> None:
    """Print the planned operations as JSON without writing anything."""

    settings, context = _prepare(root, machine, assignments)
    with _user_errors():
        plan = core.scan(root, context, settings=settings)
    click.echo(json.dumps(_plan_payload(plan, root), indent=indent))


@cli.command("merge", context_settings=CLICK_CONTEXT_SETTINGS)
@_root_option
@_machine_option
@_set_option
@click.option(
    "--cleanup/--no-cleanup",
    default=None,
    help="Soft-delete outputs the previous run produced but this run does not (default from settings)",
)
def cli_merge(root: Path, machine: Optional[str], assignments: Sequence[str], cleanup: Optional[bool]) -> None:
    """Synthesize every output for the current host.

    Exits with status 1 when any operation failed; successful operations are
    still written.
    """

    settings, context = _prepare(root, machine, assignments)
    with _user_errors():
        report = core.synthesize(root, context, settings=settings, cleanup=cleanup)
    _echo_report(report, root)
    if not report.success:
        raise click.ClickException(f"{len(report.failures)} operation(s) failed")


@cli.command("restore", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("path", type=click.Path(path_type=Path))
def cli_restore(path: Path) -> None:
    """Move a soft-deleted output back to its original name."""

    if not restore(path):
        raise click.ClickException(f"Nothing to restore at {path} (missing, or the original path exists)")
    click.echo(f"restored {path}")


@cli.command("purge", context_settings=CLICK_CONTEXT_SETTINGS)
@_root_option
def cli_purge(root: Path) -> None:
    """Permanently delete every soft-deleted output under the root."""

    with _user_errors():
        settings = core.resolve_settings(root)
    removed = purge(root, settings=settings)
    for item in removed:
        click.echo(f"purged {item}")
    click.echo(f"{len(removed)} entr{'y' if len(removed) == 1 else 'ies'} purged")


@cli.command("watch", context_settings=CLICK_CONTEXT_SETTINGS)
@_root_option
@_machine_option
@_set_option
@click.option("--debounce-ms", type=int, default=None, help="Quiet period before re-running (default from settings)")
@click.option("--interval-ms", type=int, default=None, help="Polling interval (default from settings)")
@click.option("--duration", type=float, default=None, help="Stop after this many seconds (runs until Ctrl-C by default)")
def cli_watch(
    root: Path,
    machine: Optional[str],
    assignments: Sequence[str],
    debounce_ms: Optional[int],
    interval_ms: Optional[int],
    duration: Optional[float],
) -> None:
    """Synthesize once, then re-synthesize whenever sources change."""

    settings, context = _prepare(root, machine, assignments)
    with _user_errors():
        report = core.synthesize(root, context, settings=settings)
        session = core.open_session(root, context, settings=settings)
    _echo_report(report, root)
    click.echo(f"watching {root} ({len(session.watched_sources())} source(s)); press Ctrl-C to stop")

    def _on_results(_path: str, results: list[ExecutionResult]) -> None:
        for result in results:
            click.echo(_describe_result(result, root))

    stop = threading.Event()
    timer = threading.Timer(duration, stop.set) if duration is not None else None
    if timer is not None:
        timer.daemon = True
        timer.start()
    try:
        watch(
            session,
            interval=interval_ms / 1000 if interval_ms is not None else None,
            debounce=debounce_ms / 1000 if debounce_ms is not None else None,
            stop_event=stop,
            on_results=_on_results,
        )
    except KeyboardInterrupt:
        stop.set()
    finally:
        if timer is not None:
            timer.cancel()
    click.echo("stopped")


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Run the command group under ``lib_cli_exit_tools`` and return its exit status."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name=_DISTRIBUTION,
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))

"""Merge executor tests: content, idempotence and per-operation failure isolation."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from lib_host_overlay.application import merger
from lib_host_overlay.application.merger import execute_merge, execute_merges, render_merge
from lib_host_overlay.domain.errors import ArrayMergeError, InvalidFormat, MergeReadError, MergeWriteError
from lib_host_overlay.domain.operations import MergeOperation
from tests.support import OverlaySandbox, create_overlay_sandbox


@pytest.fixture()
def sandbox(tmp_path: Path) -> OverlaySandbox:
    return create_overlay_sandbox(tmp_path)


def _json_op(sandbox: OverlaySandbox, base: dict | None, overlay: dict | None, name: str = "config") -> MergeOperation:
    base_path = sandbox.write_json(f"{name}.base.json", base) if base is not None else None
    overlay_path = sandbox.write_json(f"{name}.{{os=linux}}.json", overlay) if overlay is not None else None
    return MergeOperation(
        base_path=base_path or sandbox.path(f"{name}.base.json"),
        overlay_path=overlay_path,
        output_path=sandbox.path(f"{name}.json"),
        format_kind="json",
    )


def test_json_merge_writes_output(sandbox: OverlaySandbox) -> None:
    op = _json_op(sandbox, {"a": 1, "b": 2}, {"b": 3, "c": 4})
    result = execute_merge(op)
    assert result.success and result.changed
    assert sandbox.read_json("config.json") == {"a": 1, "b": 3, "c": 4}


def test_second_execution_is_unchanged(sandbox: OverlaySandbox) -> None:
    op = _json_op(sandbox, {"plugins": ["plugin-a", "plugin-b"]}, {"plugins": ["plugin-c", "plugin-a"]})
    assert execute_merge(op).changed
    mtime = sandbox.path("config.json").stat().st_mtime_ns
    second = execute_merge(op)
    assert second.success and not second.changed
    assert sandbox.path("config.json").stat().st_mtime_ns == mtime
    assert sandbox.read_json("config.json") == {"plugins": ["plugin-a", "plugin-b", "plugin-c"]}


def test_single_source_is_copied_byte_for_byte(sandbox: OverlaySandbox) -> None:
    raw = '{\n    // keep me\n    "a": 1,\n}\n'
    base = sandbox.write("config.base.json", raw)
    op = MergeOperation(base_path=base, overlay_path=None, output_path=sandbox.path("config.json"), format_kind="json")
    assert execute_merge(op).changed
    assert sandbox.read("config.json") == raw


def test_lone_jsonc_source_is_written_as_plain_json(sandbox: OverlaySandbox) -> None:
    base = sandbox.write("tsconfig.base.jsonc", '{\n    // strict mode\n    "strict": true,\n}\n')
    op = MergeOperation(base_path=base, overlay_path=None, output_path=sandbox.path("tsconfig.json"), format_kind="json")
    assert execute_merge(op).changed
    assert sandbox.read("tsconfig.json") == '{\n  "strict": true\n}\n'


def test_overlay_only_operation(sandbox: OverlaySandbox) -> None:
    overlay = sandbox.write(".env.{os=linux}", "A=1\n")
    op = MergeOperation(base_path=None, overlay_path=overlay, output_path=sandbox.path(".env"), format_kind="env")
    assert execute_merge(op).success
    assert sandbox.read(".env") == "A=1\n"


def test_missing_sources_are_skipped(sandbox: OverlaySandbox) -> None:
    op = MergeOperation(
        base_path=sandbox.path("gone.base.json"),
        overlay_path=None,
        output_path=sandbox.path("gone.json"),
        format_kind="json",
    )
    result = execute_merge(op)
    assert result.skipped and not result.success and result.error is None
    assert not sandbox.exists("gone.json")


def test_overlay_vanished_falls_back_to_base(sandbox: OverlaySandbox) -> None:
    op = _json_op(sandbox, {"a": 1}, {"a": 2})
    op.overlay_path.unlink()
    assert execute_merge(op).success
    assert sandbox.read_json("config.json") == {"a": 1}


def test_non_primitive_arrays_fail_and_leave_output(sandbox: OverlaySandbox) -> None:
    sandbox.write("config.json", "previous\n")
    op = _json_op(sandbox, {"items": [{"a": 1}]}, {"items": [{"b": 2}]})
    result = execute_merge(op)
    assert not result.success
    assert isinstance(result.error, ArrayMergeError)
    assert sandbox.read("config.json") == "previous\n"


def test_malformed_source_names_the_file(sandbox: OverlaySandbox) -> None:
    sandbox.write("config.base.json", "{broken")
    overlay = sandbox.write_json("config.{os=linux}.json", {"a": 1})
    op = MergeOperation(sandbox.path("config.base.json"), overlay, sandbox.path("config.json"), "json")
    result = execute_merge(op)
    assert isinstance(result.error, InvalidFormat)
    assert "config.base.json" in str(result.error)
    assert not sandbox.exists("config.json")


def test_non_utf8_source_is_invalid(sandbox: OverlaySandbox) -> None:
    base = sandbox.path("notes.base.md")
    base.write_bytes(b"\xff\xfe bad")
    overlay = sandbox.write("notes.{os=linux}.md", "ok")
    op = MergeOperation(base, overlay, sandbox.path("notes.md"), "md")
    assert isinstance(execute_merge(op).error, InvalidFormat)


def test_write_failure_is_reported(sandbox: OverlaySandbox, monkeypatch: pytest.MonkeyPatch) -> None:
    def _deny(path: Path, data: bytes) -> None:
        raise PermissionError(f"denied: {path}")

    monkeypatch.setattr(merger, "write_bytes_atomic", _deny)
    result = execute_merge(_json_op(sandbox, {"a": 1}, {"b": 2}))
    assert not result.success
    assert isinstance(result.error, MergeWriteError)
    assert "denied" in str(result.error)


def test_read_failure_is_reported_as_read_error(sandbox: OverlaySandbox, monkeypatch: pytest.MonkeyPatch) -> None:
    def _deny(path: Path | None) -> bytes | None:
        raise PermissionError(f"denied: {path}")

    monkeypatch.setattr(merger, "read_bytes_if_exists", _deny)
    result = execute_merge(_json_op(sandbox, {"a": 1}, {"b": 2}))
    assert not result.success
    assert isinstance(result.error, MergeReadError)
    assert not isinstance(result.error, InvalidFormat)
    assert "denied" in str(result.error)
    assert not sandbox.exists("config.json")


def test_markdown_and_env_merges(sandbox: OverlaySandbox) -> None:
    md = MergeOperation(
        sandbox.write("README.base.md", "# Project\n"),
        sandbox.write("README.{os=linux}.md", "Linux notes\n"),
        sandbox.path("README.md"),
        "md",
    )
    env = MergeOperation(
        sandbox.write(".env.base", "A=1\nB=2\n"),
        sandbox.write(".env.{os=linux}", "B=3\nC=4\n"),
        sandbox.path(".env"),
        "env",
    )
    results = execute_merges([md, env], workers=2)
    assert all(result.success for result in results)
    assert sandbox.read("README.md") == "# Project\n\nLinux notes\n"
    assert sandbox.read(".env") == "A=1\nB=3\nC=4\n"


def test_batch_failures_are_isolated(sandbox: OverlaySandbox) -> None:
    good = _json_op(sandbox, {"a": 1}, {"b": 2}, name="good")
    bad = _json_op(sandbox, {"x": [[1]]}, {"x": [[2]]}, name="bad")
    results = execute_merges([bad, good], workers=2)
    assert [result.operation for result in results] == [bad, good]
    assert not results[0].success and results[1].success
    assert sandbox.read_json("good.json") == {"a": 1, "b": 2}


def test_render_merge_does_not_write(sandbox: OverlaySandbox) -> None:
    op = _json_op(sandbox, {"a": 1}, {"b": 2})
    assert json.loads(render_merge(op)) == {"a": 1, "b": 2}
    assert not sandbox.exists("config.json")


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_existing_output_mode_is_preserved(sandbox: OverlaySandbox) -> None:
    output = sandbox.write("config.json", "{}")
    output.chmod(0o600)
    execute_merge(_json_op(sandbox, {"a": 1}, {"b": 2}))
    assert output.stat().st_mode & 0o777 == 0o600

"""Adapter contract tests for the default ports implementation.

Purpose
-------
Verify the bundled adapters continue to satisfy the application-layer ports
defined in ``src/lib_host_overlay/application/ports.py`` so the executors and
the cleanup stage can depend on the protocols alone.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import pytest

from lib_host_overlay.adapters.formats.registry import FORMAT_KINDS, adapter_for
from lib_host_overlay.adapters.manifest.json_store import JsonManifestStore
from lib_host_overlay.application import ports
from lib_host_overlay.application.cleanup import reconcile


class _MemoryManifest:
    """In-memory ManifestStore used to show reconcile only needs the protocol."""

    def __init__(self, outputs: list[Path] | None = None) -> None:
        self.outputs = outputs
        self.locked = 0

    def load(self) -> list[Path] | None:
        return None if self.outputs is None else list(self.outputs)

    def save(self, outputs, *, timestamp=None) -> None:
        self.outputs = list(outputs)

    @contextmanager
    def lock(self) -> Iterator[None]:
        self.locked += 1
        yield


@pytest.mark.parametrize("kind", FORMAT_KINDS)
def test_format_adapters_fulfil_protocol(kind: str) -> None:
    """Every registered adapter exposes ``kind`` plus parse/merge/serialize."""

    adapter = adapter_for(kind)
    assert isinstance(adapter, ports.FormatAdapter)


def test_json_manifest_store_fulfils_protocol(tmp_path: Path) -> None:
    assert isinstance(JsonManifestStore(tmp_path), ports.ManifestStore)


def test_reconcile_accepts_any_manifest_store(tmp_path: Path) -> None:
    stale = tmp_path / "stale.json"
    stale.write_text("{}", encoding="utf-8")
    store = _MemoryManifest([stale])
    assert isinstance(store, ports.ManifestStore)

    result = reconcile([], store)
    assert result.renamed_files == [stale]
    assert store.outputs == []
    assert store.locked == 1

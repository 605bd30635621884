from __future__ import annotations

import json
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from lib_host_overlay.adapters.manifest.json_store import MANIFEST_VERSION, JsonManifestStore
from lib_host_overlay.application.ports import ManifestStore
from lib_host_overlay.domain.errors import ManifestLockedError
from lib_host_overlay.domain.settings import LOCK_FILE_NAME, MANIFEST_FILE_NAME


@pytest.fixture()
def root(tmp_path: Path) -> Path:
    return tmp_path.resolve()


def test_store_satisfies_port(root: Path) -> None:
    assert isinstance(JsonManifestStore(root), ManifestStore)


def test_missing_manifest_loads_as_none(root: Path) -> None:
    assert JsonManifestStore(root).load() is None


def test_save_writes_sorted_relative_posix_paths(root: Path) -> None:
    store = JsonManifestStore(root)
    moment = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    store.save([root / "b.json", root / "sub" / "a.env", root / "b.json"], timestamp=moment)

    document = json.loads((root / MANIFEST_FILE_NAME).read_text(encoding="utf-8"))
    assert document == {
        "version": MANIFEST_VERSION,
        "outputs": ["b.json", "sub/a.env"],
        "lastRun": "2024-05-01T10:00:00+00:00",
    }
    assert store.load() == [root / "b.json", root / "sub" / "a.env"]


def test_relative_inputs_are_anchored_at_root(root: Path) -> None:
    store = JsonManifestStore(root)
    store.save([Path("config.json")])
    assert store.load() == [root / "config.json"]


@pytest.mark.parametrize(
    "body",
    [
        "{not json",
        json.dumps({"version": 99, "outputs": []}),
        json.dumps({"version": MANIFEST_VERSION, "outputs": "config.json"}),
        json.dumps(["config.json"]),
    ],
)
def test_unusable_manifest_is_treated_as_absent(root: Path, body: str) -> None:
    (root / MANIFEST_FILE_NAME).write_text(body, encoding="utf-8")
    assert JsonManifestStore(root).load() is None


def test_lock_is_released_after_block(root: Path) -> None:
    store = JsonManifestStore(root)
    with store.lock():
        assert (root / LOCK_FILE_NAME).exists()
    assert not (root / LOCK_FILE_NAME).exists()


def test_lock_released_when_block_raises(root: Path) -> None:
    store = JsonManifestStore(root)
    with pytest.raises(RuntimeError):
        with store.lock():
            raise RuntimeError("boom")
    assert not (root / LOCK_FILE_NAME).exists()


def test_held_lock_times_out(root: Path) -> None:
    (root / LOCK_FILE_NAME).write_text("4242", encoding="utf-8")
    store = JsonManifestStore(root, lock_timeout=0.1)
    with pytest.raises(ManifestLockedError):
        with store.lock():
            pass  # pragma: no cover - never entered


def test_lock_waits_for_release(root: Path) -> None:
    lock_file = root / LOCK_FILE_NAME
    lock_file.write_text("4242", encoding="utf-8")
    releaser = threading.Timer(0.1, lock_file.unlink)
    releaser.start()
    started = time.monotonic()
    try:
        with JsonManifestStore(root, lock_timeout=5.0).lock():
            waited = time.monotonic() - started
    finally:
        releaser.cancel()
    assert waited >= 0.05

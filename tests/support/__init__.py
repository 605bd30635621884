"""Shared helpers that write annotated source trees for tests."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from lib_host_overlay.domain.context import Context
from lib_host_overlay.domain.settings import Settings


def make_context(**overrides: Any) -> Context:
    """Return a Linux/x64 context for machine ``laptop`` with *overrides* applied."""

    base = Context(os="linux", arch="x64", machine="laptop", user="ada")
    return base.with_overrides(**overrides) if overrides else base


@dataclass(slots=True)
class OverlaySandbox:
    """Synthesis root under ``tmp_path`` plus the context and settings used against it."""

    root: Path
    context: Context = field(default_factory=make_context)
    settings: Settings = field(default_factory=lambda: Settings(workers=1))

    def write(self, relative: str, content: str = "") -> Path:
        """Create ``root / relative`` (parents included) holding *content*."""

        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return target

    def write_json(self, relative: str, payload: Mapping[str, Any]) -> Path:
        return self.write(relative, json.dumps(payload))

    def mkdir(self, relative: str) -> Path:
        target = self.root / relative
        target.mkdir(parents=True, exist_ok=True)
        return target

    def read(self, relative: str) -> str:
        return (self.root / relative).read_text(encoding="utf-8")

    def read_json(self, relative: str) -> Any:
        return json.loads(self.read(relative))

    def exists(self, relative: str) -> bool:
        return (self.root / relative).exists()

    def path(self, relative: str) -> Path:
        return self.root / relative


def create_overlay_sandbox(tmp_path: Path, **context_overrides: Any) -> OverlaySandbox:
    """Return a sandbox rooted at the resolved *tmp_path*."""

    root = tmp_path.resolve() / "repo"
    root.mkdir(parents=True, exist_ok=True)
    return OverlaySandbox(root=root, context=make_context(**context_overrides))


__all__ = ["OverlaySandbox", "create_overlay_sandbox", "make_context"]

"""Runtime settings value object and the tool's well-known file names.

:class:`Settings` is the merged result of ``defaults → .host-overlay.toml →
LIB_HOST_OVERLAY_* environment``; the loader lives in
:mod:`lib_host_overlay.adapters.settings.loader`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

SETTINGS_FILE_NAME = ".host-overlay.toml"
MANIFEST_FILE_NAME = ".host-overlay-outputs.json"
LOCK_FILE_NAME = ".host-overlay-outputs.lock"
DELETED_SUFFIX = ".host-overlay-deleted"

DEFAULT_IGNORES: tuple[str, ...] = (
    ".git/",
    "node_modules/",
    "dist/",
    "__pycache__/",
    ".venv/",
    MANIFEST_FILE_NAME,
    LOCK_FILE_NAME,
    f"*{DELETED_SUFFIX}",
)


@dataclass(frozen=True, slots=True)
class Settings:
    """Tunables for scanning, execution, cleanup and watching.

    Examples
    --------
    >>> settings = Settings(ignore=("build/",), context={"Role": "ci"})
    >>> settings.ignore_patterns[-1], settings.context["role"]
    ('build/', 'ci')
    >>> settings.debounce_seconds
    0.3
    """

    ignore: tuple[str, ...] = ()
    workers: int = 4
    debounce_ms: int = 300
    poll_interval_ms: int = 500
    lock_timeout_s: float = 10.0
    cleanup: bool = True
    context: Mapping[str, str] = field(default_factory=dict, hash=False)
    sources: Mapping[str, Mapping[str, Any]] = field(default_factory=dict, hash=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ignore", tuple(str(item) for item in self.ignore))
        object.__setattr__(self, "workers", max(1, int(self.workers)))
        normalised = {str(key).lower(): str(value) for key, value in self.context.items() if value is not None}
        object.__setattr__(self, "context", MappingProxyType(normalised))
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))

    @property
    def ignore_patterns(self) -> tuple[str, ...]:
        """Default ignores followed by the user's extra patterns."""

        return (*DEFAULT_IGNORES, *self.ignore)

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    def origin(self, key: str) -> Mapping[str, Any] | None:
        """Return provenance (``layer``/``path``) for dotted *key*, if recorded."""

        return self.sources.get(key)

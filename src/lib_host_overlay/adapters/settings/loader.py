"""Settings loader: defaults, optional TOML file, then environment variables.

Purpose
-------
Produce a :class:`~lib_host_overlay.domain.settings.Settings` for a synthesis
root. ``.host-overlay.toml`` is read with ``tomllib`` (``tomli`` before Python
3.11); environment variables come from
:class:`~lib_host_overlay.adapters.env.default.DefaultEnvLoader`. Layers
deep-merge through :func:`~lib_host_overlay.application.layers.merge_layers`.

Example settings file::

    workers = 8
    ignore = ["build/", "*.bak"]

    [context]
    role = "desktop"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[no-redef]

from ...application.layers import merge_layers
from ...domain.errors import InvalidFormat
from ...domain.settings import SETTINGS_FILE_NAME, Settings
from ...observability import log_debug, log_error, log_warning
from ..env.default import ENV_PREFIX, DefaultEnvLoader

_DEFAULTS: Mapping[str, object] = {
    "ignore": [],
    "workers": 4,
    "debounce_ms": 300,
    "poll_interval_ms": 500,
    "lock_timeout_s": 10.0,
    "cleanup": True,
    "context": {},
}

_CONTEXT_OVERRIDE_KEYS = frozenset({"machine", "user", "env"})

_VALIDATORS: Mapping[str, tuple[type | tuple[type, ...], str]] = {
    "workers": (int, "an integer"),
    "debounce_ms": (int, "an integer"),
    "poll_interval_ms": (int, "an integer"),
    "lock_timeout_s": ((int, float), "a number"),
    "cleanup": (bool, "a boolean"),
    "context": (dict, "a table"),
    "ignore": ((list, str), "a list of patterns"),
}


def load_settings(root: str | Path, *, environ: Mapping[str, str] | None = None) -> Settings:
    """Return the effective settings for *root*.

    Raises
    ------
    InvalidFormat
        When the settings file is not valid TOML or a value has the wrong type.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> _ = (Path(tmp.name) / SETTINGS_FILE_NAME).write_text('workers = 2\\n[context]\\nrole = "ci"\\n')
    >>> settings = load_settings(tmp.name, environ={"LIB_HOST_OVERLAY_WORKERS": "6"})
    >>> settings.workers, settings.context["role"], settings.origin("workers")["layer"]
    (6, 'ci', 'env')
    >>> tmp.cleanup()
    """

    settings_path = Path(root) / SETTINGS_FILE_NAME
    layers: list[tuple[str, Mapping[str, object], str | None]] = [("defaults", _DEFAULTS, None)]
    file_payload = _read_settings_file(settings_path)
    if file_payload is not None:
        layers.append(("file", file_payload, str(settings_path)))
    layers.append(("env", DefaultEnvLoader(environ=environ).load(ENV_PREFIX), None))

    merged, provenance = merge_layers(layers)
    known = _validated(merged)
    log_debug("settings_loaded", stage="settings", path=str(settings_path), keys=sorted(known))
    ignore = known["ignore"]
    return Settings(
        ignore=tuple([ignore] if isinstance(ignore, str) else ignore),
        workers=known["workers"],
        debounce_ms=known["debounce_ms"],
        poll_interval_ms=known["poll_interval_ms"],
        lock_timeout_s=float(known["lock_timeout_s"]),
        cleanup=known["cleanup"],
        context={key: value for key, value in known["context"].items() if not isinstance(value, dict)},
        sources=provenance,
    )


def _read_settings_file(path: Path) -> Mapping[str, object] | None:
    if not path.is_file():
        log_debug("settings_file_missing", stage="settings", path=str(path))
        return None
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        log_error("settings_file_invalid", stage="settings", path=str(path), error=str(exc))
        raise InvalidFormat(f"Invalid TOML in {path}: {exc}") from exc


def _validated(merged: Mapping[str, Any]) -> dict[str, Any]:
    known: dict[str, Any] = {}
    for key, value in merged.items():
        if key in _CONTEXT_OVERRIDE_KEYS:
            continue
        if key not in _VALIDATORS:
            log_warning("settings_key_unknown", stage="settings", path=None, key=key)
            continue
        expected, label = _VALIDATORS[key]
        if isinstance(value, bool) and expected in (int, (int, float)):
            raise InvalidFormat(f"Setting {key!r} must be {label}, got {value!r}")
        if not isinstance(value, expected):
            raise InvalidFormat(f"Setting {key!r} must be {label}, got {value!r}")
        known[key] = value
    return known

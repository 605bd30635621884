"""Read the ``LIB_HOST_OVERLAY_*`` namespace out of the process environment.

Purpose
-------
Translate ``LIB_HOST_OVERLAY_*`` process environment variables into a nested
mapping. The settings loader layers the result over the settings file, and the
host context adapter reads the ``CONTEXT__<KEY>`` branch for custom context keys.

Key behaviours
--------------
* Enforces a prefix so only relevant keys are captured.
* Supports ``__`` as a nesting delimiter (``CONTEXT__ROLE`` → ``{"context": {"role": ...}}``).
* Converts literal text to scalars where it parses (booleans, integers, floats,
  ``null``/``none``).
"""

from __future__ import annotations

import os
from typing import Mapping

from ...observability import log_debug

ENV_PREFIX = "LIB_HOST_OVERLAY"

RAW_BRANCHES: frozenset[str] = frozenset({"context"})
"""Top-level tables whose values are kept as the literal variable text."""


def default_env_prefix(slug: str) -> str:
    """Upper-snake-case *slug* into a variable prefix.

    >>> default_env_prefix('lib-host-overlay')
    'LIB_HOST_OVERLAY'
    """

    return slug.replace("-", "_").upper()


class DefaultEnvLoader:
    """Load environment variables that belong to the tool's namespace."""

    def __init__(self, *, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def load(self, prefix: str = ENV_PREFIX) -> dict[str, object]:
        """Collect ``<prefix>_*`` variables into nested, lower-cased tables.

        Keys are stored lower-case so they line up with settings-file keys.
        Values under :data:`RAW_BRANCHES` skip scalar coercion, so custom
        context values such as ``1.10`` or ``007`` stay exactly as written.

        Examples
        --------
        >>> env = {
        ...     'LIB_HOST_OVERLAY_WORKERS': '8',
        ...     'LIB_HOST_OVERLAY_CONTEXT__ROLE': 'desktop',
        ...     'UNRELATED': 'x',
        ... }
        >>> payload = DefaultEnvLoader(environ=env).load()
        >>> payload['workers'], payload['context']['role'], 'unrelated' in payload
        (8, 'desktop', False)
        >>> DefaultEnvLoader(environ={"LIB_HOST_OVERLAY_CONTEXT__VERSION": "1.10"}).load()
        {'context': {'version': '1.10'}}
        """

        prefix = f"{prefix}_" if prefix and not prefix.endswith("_") else prefix
        collected: dict[str, object] = {}
        for key, value in self._environ.items():
            if prefix and not key.startswith(prefix):
                continue
            stripped = key[len(prefix) :] if prefix else key
            if not stripped:
                continue
            raw = stripped.split("__", 1)[0].lower() in RAW_BRANCHES
            assign_nested(collected, stripped, value if raw else _coerce(value))
        log_debug("env_variables_loaded", stage="settings", path=None, keys=sorted(collected.keys()))
        return collected

    def get(self, name: str) -> str | None:
        """Return the raw value of *name*, treating empty strings as unset."""

        value = self._environ.get(name)
        return value or None


def assign_nested(target: dict[str, object], key: str, value: object) -> None:
    """Store *value* under the ``__``-separated path *key*, case-insensitively.

    Intermediate tables are created on demand; a scalar already sitting where a
    table is needed raises ``ValueError``.

    >>> data: dict[str, object] = {}
    >>> assign_nested(data, 'CONTEXT__ROLE', 'desktop')
    >>> data
    {'context': {'role': 'desktop'}}
    """

    *branches, leaf = key.split("__")
    node = target
    for branch in branches:
        name = _existing_name(node, branch)
        child = node.setdefault(name, {})
        if not isinstance(child, dict):
            raise ValueError(f"Environment key {key} descends into scalar '{name}'")
        node = child
    node[_existing_name(node, leaf)] = value


def _existing_name(node: dict[str, object], segment: str) -> str:
    wanted = segment.lower()
    return next((name for name in node if name.lower() == wanted), wanted)


_LITERALS: dict[str, object] = {"true": True, "false": False, "null": None, "none": None}


def _coerce(value: str) -> object:
    """Turn ``"8"``, ``"0.5"``, ``"true"`` and ``"none"`` into their scalar values.

    >>> _coerce('true'), _coerce('10'), _coerce('3.5'), _coerce('hello')
    (True, 10, 3.5, 'hello')
    """

    lowered = value.strip().lower()
    if lowered in _LITERALS:
        return _LITERALS[lowered]
    for parse in (int, float):
        try:
            return parse(value)
        except ValueError:
            continue
    return value

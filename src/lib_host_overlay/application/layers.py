"""Fold settings layers into one mapping while tracking where each key came from.

The settings loader feeds ``defaults``, the ``.host-overlay.toml`` file and the
``LIB_HOST_OVERLAY_*`` environment through :func:`merge_layers`; tables merge
recursively, scalars and lists from a later layer replace earlier ones.
"""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from typing import Iterable

Provenance = dict[str, dict[str, object]]


def merge_layers(
    layers: Iterable[tuple[str, Mapping[str, object], str | None]],
) -> tuple[dict[str, object], Provenance]:
    """Fold ``(name, mapping, source_path)`` layers, lowest precedence first.

    Returns the merged mapping and a provenance table keyed by dotted path
    (``context.role``) whose values hold ``layer``, ``path`` and ``key``.

    Examples
    --------
    >>> merged, meta = merge_layers([
    ...     ("defaults", {"workers": 4, "context": {}}, None),
    ...     ("env", {"workers": 8, "context": {"role": "desktop"}}, None),
    ... ])
    >>> merged["workers"], merged["context"], meta["context.role"]["layer"]
    (8, {'role': 'desktop'}, 'env')
    """

    merged: dict[str, object] = {}
    provenance: Provenance = {}
    for name, data, source in layers:
        _fold(merged, provenance, deepcopy(dict(data)), name, source, "")
    return merged, provenance


def _fold(
    target: dict[str, object],
    provenance: Provenance,
    incoming: Mapping[str, object],
    layer: str,
    source: str | None,
    prefix: str,
) -> None:
    for key, value in incoming.items():
        dotted = f"{prefix}{key}"
        current = target.get(key)
        if isinstance(value, Mapping):
            if isinstance(current, Mapping):
                table = dict(current)
            else:
                _forget(provenance, dotted)
                table = {}
            target[key] = table
            _fold(table, provenance, value, layer, source, f"{dotted}.")
        else:
            _forget(provenance, dotted)
            target[key] = value
            provenance[dotted] = {"layer": layer, "path": source, "key": dotted}


def _forget(provenance: Provenance, dotted: str) -> None:
    stale = [key for key in provenance if key == dotted or key.startswith(f"{dotted}.")]
    for key in stale:
        del provenance[key]

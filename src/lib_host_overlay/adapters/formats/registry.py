"""Closed registry mapping source names to format adapters.

Purpose
-------
Decide which :class:`~lib_host_overlay.application.ports.FormatAdapter` handles
a canonical name and which output name it produces. The table is keyed by the
recognised name suffix; adding a format means adding one row.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from ...application.ports import FormatAdapter
from ...domain.errors import NotFound
from .keyvalue import KeyValueAdapter
from .structured import JsonAdapter, YamlAdapter
from .text import TextAppendAdapter, VerbatimAdapter

_ADAPTERS: Mapping[str, FormatAdapter] = MappingProxyType(
    {
        "json": JsonAdapter(),
        "yaml": YamlAdapter(),
        "env": KeyValueAdapter(),
        "md": TextAppendAdapter(),
        "verbatim": VerbatimAdapter(),
    }
)

_SUFFIX_KINDS: Mapping[str, str] = MappingProxyType(
    {
        ".json": "json",
        ".jsonc": "json",
        ".yaml": "yaml",
        ".yml": "yaml",
        ".md": "md",
        ".markdown": "md",
    }
)

_OUTPUT_SUFFIXES: Mapping[str, str] = MappingProxyType({".jsonc": ".json"})

FORMAT_KINDS: tuple[str, ...] = tuple(_ADAPTERS)


def format_kind_for(name: str) -> str:
    """Return the format kind for a canonical (annotation-free) *name*.

    Examples
    --------
    >>> [format_kind_for(n) for n in ("config.jsonc", "ci.yml", ".env", ".env.local", "prod.env")]
    ['json', 'yaml', 'env', 'env', 'env']
    >>> format_kind_for("README.md"), format_kind_for("settings.ini")
    ('md', 'verbatim')
    """

    lowered = name.lower()
    if lowered.startswith(".env") or lowered.endswith(".env"):
        return "env"
    dot = lowered.rfind(".")
    if dot <= 0:
        return "verbatim"
    return _SUFFIX_KINDS.get(lowered[dot:], "verbatim")


def adapter_for(kind: str) -> FormatAdapter:
    """Return the adapter registered for *kind*.

    >>> adapter_for("json").kind
    'json'
    """

    try:
        return _ADAPTERS[kind]
    except KeyError:
        raise NotFound(f"Unknown format kind: {kind}") from None


def output_name_for(name: str) -> str:
    """Return the output file name for a canonical *name*.

    >>> output_name_for("tsconfig.jsonc"), output_name_for("config.yaml")
    ('tsconfig.json', 'config.yaml')
    """

    dot = name.rfind(".")
    if dot <= 0:
        return name
    replacement = _OUTPUT_SUFFIXES.get(name[dot:].lower())
    return name if replacement is None else name[:dot] + replacement


def changes_suffix(name: str) -> bool:
    """Return ``True`` when the output of *name* uses a different suffix.

    A lone source with such a suffix is re-serialised instead of copied.

    >>> changes_suffix("tsconfig.base.jsonc"), changes_suffix("app.base.json")
    (True, False)
    """

    dot = name.rfind(".")
    return dot > 0 and name[dot:].lower() in _OUTPUT_SUFFIXES

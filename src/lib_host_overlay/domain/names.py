"""Name resolution rules shared by file and directory scanning.

Purpose
-------
Derive, from an annotated name, the canonical name an un-annotated source would
use and decide whether the name denotes a *base source*. Also understands the
legacy naming convention where the machine name is a plain dotted segment
(``config.laptop.json``, ``.env.laptop``).

Contents
--------
* :func:`is_base_source` – ``.base`` infix/suffix or the ``{base}`` placeholder.
* :func:`strip_base_marker` / :func:`canonical_name` – canonicalisation.
* :func:`expand_base_placeholder` – self-referencing placeholder expansion.
* :func:`is_legacy_name` / :func:`convert_legacy_name` / :func:`parse_any_format`
  – the dotted-machine-name convention.
"""

from __future__ import annotations

import re

from .filters import BASE_PLACEHOLDER_PATTERN, ParsedName, has_filters, parse_name, strip_groups

_BASE_MARKER = re.compile(r"\.base(?=\.|$)")


def is_base_source(name: str) -> bool:
    """Return ``True`` when *name* marks a base (fallback) source.

    The legacy marker is case-sensitive; the placeholder is not.

    Examples
    --------
    >>> [is_base_source(n) for n in ("config.base.json", ".env.base", "file.{BASE}.{os=linux}.json")]
    [True, True, True]
    >>> [is_base_source(n) for n in ("database.json", "config.BASE", "app.{os=linux}.json")]
    [False, False, False]
    """

    if ".base." in name or name.endswith(".base"):
        return True
    return BASE_PLACEHOLDER_PATTERN.search(name) is not None


def strip_base_marker(name: str) -> str:
    """Drop the first legacy ``.base`` marker from *name*.

    >>> strip_base_marker("config.base.json"), strip_base_marker(".env.base")
    ('config.json', '.env')
    """

    return _BASE_MARKER.sub("", name, count=1)


def canonical_name(name: str) -> str:
    """Return *name* with base markers and every annotation group removed.

    >>> canonical_name("app.{base}.{os=windows}.json"), canonical_name("app.base.json")
    ('app.json', 'app.json')
    """

    return strip_groups(strip_base_marker(name))


def expand_base_placeholder(name: str) -> str:
    """Replace every ``{base}`` placeholder with the text before the first ``{``.

    A trailing dot of that prefix is dropped. Names without the placeholder are
    returned unchanged.

    Examples
    --------
    >>> expand_base_placeholder("file.{base}.json")
    'file.file.json'
    >>> expand_base_placeholder("config.{os=windows}.{base}.json")
    'config.{os=windows}.config.json'
    >>> expand_base_placeholder("a.{base}.{Base}.txt")
    'a.a.a.txt'
    """

    if BASE_PLACEHOLDER_PATTERN.search(name) is None:
        return name
    prefix = name[: name.index("{")]
    if prefix.endswith("."):
        prefix = prefix[:-1]
    return BASE_PLACEHOLDER_PATTERN.sub(lambda _match: prefix, name)


def _legacy_patterns(machine: str) -> tuple[re.Pattern[str], re.Pattern[str]]:
    escaped = re.escape(machine)
    return (
        re.compile(rf"\.{escaped}\.", re.IGNORECASE),
        re.compile(rf"\.{escaped}$", re.IGNORECASE),
    )


def is_legacy_name(name: str, machine: str) -> bool:
    """Return ``True`` when *name* uses the dotted machine-name convention.

    Names that already carry annotations are never legacy.

    >>> is_legacy_name("config.laptop.json", "laptop"), is_legacy_name(".env.LAPTOP", "laptop")
    (True, True)
    >>> is_legacy_name("config.{machine=laptop}.json", "laptop")
    False
    """

    if not machine or has_filters(name):
        return False
    middle, end = _legacy_patterns(machine)
    return middle.search(name) is not None or end.search(name) is not None


def convert_legacy_name(name: str, machine: str) -> str:
    """Rewrite the dotted machine segment as a ``{machine=...}`` group.

    >>> convert_legacy_name("config.laptop.json", "laptop")
    'config.{machine=laptop}.json'
    >>> convert_legacy_name(".env.laptop", "laptop")
    '.env.{machine=laptop}'
    """

    middle, end = _legacy_patterns(machine)
    converted = middle.sub(f".{{machine={machine}}}.", name)
    return end.sub(f".{{machine={machine}}}", converted)


def parse_any_format(name: str, machine: str) -> ParsedName:
    """Parse *name* whether it uses the legacy or the bracketed convention."""

    if is_legacy_name(name, machine):
        return parse_name(convert_legacy_name(name, machine))
    return parse_name(name)

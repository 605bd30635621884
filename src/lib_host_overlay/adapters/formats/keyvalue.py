"""Key/value (``.env``-style) format adapter.

Purpose
-------
Parse ``KEY=value`` files into an insertion-ordered mapping, layer an overlay
onto a base key by key, and write the result back one assignment per line.

Contents
--------
* :class:`KeyValueAdapter` – the adapter registered for ``.env`` names.
* Helpers :func:`_parse_line`, :func:`_strip_quotes`, :func:`_format_value`.

System Role
-----------
Runs inside the merge executor; the executor supplies file contents and writes
the serialized result, so this module never touches the filesystem.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from ...domain.errors import InvalidFormat

_NEEDS_QUOTES = re.compile(r"[\s#]")
_EXPORT_PREFIX = "export "


class KeyValueAdapter:
    """Merge ``.env`` payloads: overlay keys override, new keys append.

    Examples
    --------
    >>> adapter = KeyValueAdapter()
    >>> base = adapter.parse("A=1\\n# comment\\nB=2\\n")
    >>> merged = adapter.merge(base, adapter.parse("B=3\\nC='hello world'\\n"))
    >>> print(adapter.serialize(merged), end="")
    A=1
    B=3
    C="hello world"
    """

    kind = "env"

    def parse(self, text: str) -> dict[str, str]:
        """Return the assignments in *text* in file order.

        Blank lines, full-line ``#`` comments and lines without ``=`` are
        skipped. A leading ``export`` keyword is tolerated. Later duplicates win.
        """

        result: dict[str, str] = {}
        for line_number, raw_line in enumerate(text.splitlines(), start=1):
            parsed = _parse_line(raw_line, line_number)
            if parsed is not None:
                key, value = parsed
                result[key] = value
        return result

    def merge(self, base: Mapping[str, str], overlay: Mapping[str, str]) -> dict[str, str]:
        merged = dict(base)
        merged.update(overlay)
        return merged

    def serialize(self, value: Mapping[str, str]) -> str:
        lines = [f"{key}={_format_value(str(item))}" for key, item in value.items()]
        return "\n".join(lines) + "\n"


def _parse_line(raw_line: str, line_number: int) -> tuple[str, str] | None:
    """Return ``(key, value)`` for an assignment line or ``None`` for noise.

    >>> _parse_line('  export TOKEN="abc" ', 1)
    ('TOKEN', 'abc')
    >>> _parse_line("# note", 2) is None
    True
    """

    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith(_EXPORT_PREFIX):
        line = line[len(_EXPORT_PREFIX) :].lstrip()
    if "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    if not key:
        raise InvalidFormat(f"Malformed line {line_number}: empty key")
    return key, _strip_quotes(value.strip())


def _strip_quotes(value: str) -> str:
    """Trim one pair of matching surrounding quotes.

    >>> _strip_quotes('"token"'), _strip_quotes("'a b'"), _strip_quotes('"half')
    ('token', 'a b', '"half')
    """

    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def _format_value(value: str) -> str:
    """Double-quote values containing whitespace or ``#``.

    >>> _format_value("plain"), _format_value("two words"), _format_value("a#b")
    ('plain', '"two words"', '"a#b"')
    """

    if _NEEDS_QUOTES.search(value):
        return f'"{value}"'
    return value

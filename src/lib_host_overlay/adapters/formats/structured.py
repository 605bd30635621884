"""Structured-data format adapters (JSON with comments, YAML).

Purpose
-------
Parse object-notation payloads, deep-merge an overlay onto a base, and render
the result in a stable layout. Parsing tolerates ``//``/``/* */`` comments and
trailing commas; output never reproduces them.

Contents
--------
* :func:`merge_structured` – the recursive merge shared by both adapters.
* :func:`strip_jsonc` – comment and trailing-comma removal outside strings.
* :class:`JsonAdapter` – ``.json`` / ``.jsonc`` payloads.
* :class:`YamlAdapter` – ``.yaml`` / ``.yml`` payloads via PyYAML.

Merge rules
-----------
Maps recurse key by key. Two arrays of primitives (string, number, boolean,
null) merge into the base's de-duplicated elements in base order followed by the
overlay's novel elements; ``1`` and ``"1"`` stay distinct. Arrays holding any
non-primitive raise :class:`~lib_host_overlay.domain.errors.ArrayMergeError`.
Everything else is replaced by the overlay value, ``null`` included.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Sequence

import yaml

from ...domain.errors import ArrayMergeError, InvalidFormat


def merge_structured(base: Any, overlay: Any, path: Sequence[str] = ()) -> Any:
    """Return *overlay* deep-merged onto *base* without mutating either.

    Examples
    --------
    >>> merge_structured({"a": 1, "b": 2}, {"b": 3, "c": 4})
    {'a': 1, 'b': 3, 'c': 4}
    >>> merge_structured({"plugins": ["plugin-a", "plugin-b"]}, {"plugins": ["plugin-c", "plugin-a"]})
    {'plugins': ['plugin-a', 'plugin-b', 'plugin-c']}
    >>> merge_structured({"n": [1]}, {"n": ["1", True]})
    {'n': [1, '1', True]}
    """

    if isinstance(base, Mapping) and isinstance(overlay, Mapping):
        merged = dict(base)
        for key, value in overlay.items():
            merged[key] = merge_structured(merged[key], value, (*path, str(key))) if key in merged else value
        return merged
    if isinstance(base, list) and isinstance(overlay, list):
        return _merge_arrays(base, overlay, path)
    return overlay


def _merge_arrays(base: list[Any], overlay: list[Any], path: Sequence[str]) -> list[Any]:
    if not all(_is_primitive(item) for item in (*base, *overlay)):
        raise ArrayMergeError(".".join(path) or "<root>")
    seen: set[tuple[str, Any]] = set()
    merged: list[Any] = []
    for item in (*base, *overlay):
        identity = (_type_tag(item), item)
        if identity in seen:
            continue
        seen.add(identity)
        merged.append(item)
    return merged


def _is_primitive(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def _type_tag(value: Any) -> str:
    """Classify primitives the way JSON does (``bool`` is not a number)."""

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "string"


def strip_jsonc(text: str) -> str:
    """Remove comments and trailing commas that sit outside string literals.

    Examples
    --------
    >>> strip_jsonc('{"url": "http://x", // note\\n "n": [1, 2,],}')
    '{"url": "http://x", \\n "n": [1, 2]}'
    """

    return _drop_trailing_commas(_drop_comments(text))


def _drop_comments(text: str) -> str:
    out: list[str] = []
    index, length = 0, len(text)
    in_string = False
    while index < length:
        char = text[index]
        if in_string:
            out.append(char)
            if char == "\\" and index + 1 < length:
                out.append(text[index + 1])
                index += 2
                continue
            if char == '"':
                in_string = False
            index += 1
            continue
        if char == '"':
            in_string = True
            out.append(char)
            index += 1
        elif text.startswith("//", index):
            newline = text.find("\n", index)
            index = length if newline == -1 else newline
        elif text.startswith("/*", index):
            end = text.find("*/", index + 2)
            index = length if end == -1 else end + 2
        else:
            out.append(char)
            index += 1
    return "".join(out)


def _drop_trailing_commas(text: str) -> str:
    out: list[str] = []
    in_string = False
    index, length = 0, len(text)
    while index < length:
        char = text[index]
        if in_string:
            out.append(char)
            if char == "\\" and index + 1 < length:
                out.append(text[index + 1])
                index += 2
                continue
            if char == '"':
                in_string = False
        elif char == '"':
            in_string = True
            out.append(char)
        elif char == ",":
            lookahead = index + 1
            while lookahead < length and text[lookahead].isspace():
                lookahead += 1
            if lookahead >= length or text[lookahead] not in "}]":
                out.append(char)
        else:
            out.append(char)
        index += 1
    return "".join(out)


class JsonAdapter:
    """JSON payloads, comments and trailing commas tolerated on parse."""

    kind = "json"

    def parse(self, text: str) -> Any:
        """Return the decoded value for *text*.

        >>> JsonAdapter().parse('{"port": 8080, /* local */ }')
        {'port': 8080}
        """

        try:
            return json.loads(strip_jsonc(text))
        except json.JSONDecodeError as exc:
            raise InvalidFormat(f"Invalid JSON: {exc}") from exc

    def merge(self, base: Any, overlay: Any) -> Any:
        return merge_structured(base, overlay)

    def serialize(self, value: Any) -> str:
        """Render *value* with two-space indentation and one trailing newline.

        >>> print(JsonAdapter().serialize({"a": [1, 2]}), end="")
        {
          "a": [
            1,
            2
          ]
        }
        """

        return json.dumps(value, indent=2, ensure_ascii=False) + "\n"


class YamlAdapter:
    """YAML payloads parsed with ``yaml.safe_load``; empty documents become ``{}``."""

    kind = "yaml"

    def parse(self, text: str) -> Any:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise InvalidFormat(f"Invalid YAML: {exc}") from exc
        return {} if data is None else data

    def merge(self, base: Any, overlay: Any) -> Any:
        return merge_structured(base, overlay)

    def serialize(self, value: Any) -> str:
        rendered = yaml.safe_dump(value, sort_keys=False, default_flow_style=False, allow_unicode=True, indent=2)
        return rendered if rendered.endswith("\n") else rendered + "\n"

"""Filter language embedded in file and directory names.

Purpose
-------
Parse ``{key<op>value}`` annotations out of a name and evaluate them against a
:class:`~lib_host_overlay.domain.context.Context`. The module is pure: it never
touches the filesystem.

Syntax
------
``config.{os=windows}.json``
    exact match; a comma-separated value is an OR-list (``{os=linux,macos}``).
``config.{os!=windows}.json``
    negation of ``=``.
``bin.{machine~laptop*}``
    glob-style wildcard, ``*`` matches any run of characters.
``tool.{version^1.2-1.5}.json``
    inclusive range; numeric when both bounds and the context value read as
    numbers, lexicographic otherwise.
``app.{machine=work}{user=ada}.env``
    several adjacent groups AND together.
``settings.{base}.json``
    the placeholder group, which is never a filter.

Contents
--------
* :class:`Operator`, :class:`Filter`, :class:`ParsedName`, :class:`MatchResult`.
* :func:`parse_name`, :func:`has_filters`, :func:`extract_filter_strings`.
* :func:`evaluate_filter`, :func:`evaluate`, :func:`match_name`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from .context import Context

FILTER_PATTERN = re.compile(r"\{([a-zA-Z0-9_-]+)(!=|=|~|\^)([a-zA-Z0-9_*.,\-]+)\}")
BASE_PLACEHOLDER_PATTERN = re.compile(r"\{base\}", re.IGNORECASE)
_ANY_GROUP = re.compile(r"\.?\{[^}]+\}")
_DOT_RUNS = re.compile(r"\.{2,}")
_LEADING_NUMBER = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class Operator(str, Enum):
    """Comparison operators understood by the filter language."""

    EQUALS = "="
    NOT_EQUALS = "!="
    WILDCARD = "~"
    RANGE = "^"


@dataclass(frozen=True, slots=True)
class Filter:
    """One ``{key<op>value}`` clause parsed from a name.

    ``key`` and ``value`` are lower-cased; ``raw`` keeps the original group text
    including braces so error messages can quote it verbatim.
    """

    key: str
    operator: Operator
    value: str
    raw: str

    @property
    def options(self) -> tuple[str, ...]:
        """Return the comma-separated alternatives of an ``=``/``!=`` value."""

        return tuple(option.strip().lower() for option in self.value.split(","))


@dataclass(frozen=True, slots=True)
class ParsedName:
    """Result of :func:`parse_name`."""

    filters: tuple[Filter, ...]
    canonical_name: str
    has_base_placeholder: bool

    @property
    def is_annotated(self) -> bool:
        """``True`` when the name carries at least one filter or the placeholder."""

        return bool(self.filters) or self.has_base_placeholder


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Outcome of evaluating a filter list against a context."""

    matches: bool
    failed: tuple[Filter, ...]
    context: Context


def parse_name(name: str) -> ParsedName:
    """Extract filters, the canonical name and the placeholder flag from *name*.

    Examples
    --------
    >>> parsed = parse_name("config.{os=Windows}{arch=x64}.json")
    >>> [(f.key, f.operator.value, f.value) for f in parsed.filters]
    [('os', '=', 'windows'), ('arch', '=', 'x64')]
    >>> parsed.canonical_name
    'config.json'
    >>> parse_name("file.{BASE}.json").has_base_placeholder
    True
    """

    filters = tuple(
        Filter(
            key=match.group(1).lower(),
            operator=Operator(match.group(2)),
            value=match.group(3).lower(),
            raw=match.group(0),
        )
        for match in FILTER_PATTERN.finditer(name)
    )
    has_placeholder = BASE_PLACEHOLDER_PATTERN.search(name) is not None
    return ParsedName(filters=filters, canonical_name=strip_groups(name), has_base_placeholder=has_placeholder)


def strip_groups(name: str) -> str:
    """Remove every ``{...}`` group (and one preceding dot) and tidy separators.

    Examples
    --------
    >>> strip_groups("pre.{os=linux}.mid.{arch=x64}.post")
    'pre.mid.post'
    >>> strip_groups("{machine=work}.settings")
    'settings'
    >>> strip_groups(".env.{machine=laptop}")
    '.env'
    """

    stripped = _DOT_RUNS.sub(".", _ANY_GROUP.sub("", name))
    if stripped.startswith(".") and not name.startswith("."):
        stripped = stripped.lstrip(".")
    if stripped.endswith(".") and not name.endswith("."):
        stripped = stripped.rstrip(".")
    return stripped


def has_filters(name: str) -> bool:
    """Return ``True`` when *name* carries a filter group or the ``{base}`` placeholder.

    >>> has_filters("jira.{machine=homezone}"), has_filters("jira.{invalid}"), has_filters("a.{base}.json")
    (True, False, True)
    """

    return FILTER_PATTERN.search(name) is not None or BASE_PLACEHOLDER_PATTERN.search(name) is not None


def extract_filter_strings(name: str) -> list[str]:
    """Return the raw filter groups found in *name* in order of appearance."""

    return [item.raw for item in parse_name(name).filters]


def evaluate_filter(item: Filter, context: Context) -> bool:
    """Evaluate one filter; keys missing from *context* never match."""

    actual = context.lookup(item.key)
    if actual is None:
        return False
    if item.operator is Operator.EQUALS:
        return _equals(item, actual)
    if item.operator is Operator.NOT_EQUALS:
        return not _equals(item, actual)
    if item.operator is Operator.WILDCARD:
        return _wildcard(item.value, actual)
    if item.operator is Operator.RANGE:
        return _in_range(item.value, actual)
    return False


def evaluate(filters: Iterable[Filter], context: Context) -> MatchResult:
    """AND all *filters* together; an empty list always matches."""

    failed = tuple(item for item in filters if not evaluate_filter(item, context))
    return MatchResult(matches=not failed, failed=failed, context=context)


def match_name(name: str, context: Context) -> MatchResult:
    """Parse *name* and evaluate its filters against *context*."""

    return evaluate(parse_name(name).filters, context)


def describe_failures(failed: Sequence[Filter]) -> str:
    """Render failed filters for log output (``{os=windows}, {user=ada}``)."""

    return ", ".join(item.raw for item in failed)


def _equals(item: Filter, actual: str) -> bool:
    return actual.lower() in item.options


def _wildcard(pattern: str, actual: str) -> bool:
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.fullmatch(regex, actual, flags=re.IGNORECASE) is not None


def _in_range(bounds: str, actual: str) -> bool:
    parts = bounds.split("-")
    if len(parts) < 2:
        return False
    low, high = parts[0].strip(), parts[1].strip()
    numbers = [_leading_number(text) for text in (actual, low, high)]
    if all(number is not None for number in numbers):
        value, minimum, maximum = numbers
        return minimum <= value <= maximum  # type: ignore[operator]
    return low <= actual <= high


def _leading_number(text: str) -> float | None:
    """Read the longest numeric prefix of *text* (``"10.0.19041"`` reads as ``10.0``)."""

    match = _LEADING_NUMBER.match(text)
    if match is None:
        return None
    return float(match.group(0))

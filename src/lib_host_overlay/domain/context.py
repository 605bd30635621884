"""Host identity value object used to evaluate filter annotations.

Purpose
-------
Carry the ``(os, arch, machine, user, env)`` tuple that filenames are matched
against. The value is immutable and free of I/O; detection of the running host
lives in :mod:`lib_host_overlay.adapters.context.host`.

Contents
--------
* :data:`FIXED_KEYS` – the context keys every host provides.
* :class:`Context` – frozen dataclass with an explicit extension map for custom
  keys and a :meth:`Context.lookup` that never raises.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any, Mapping

FIXED_KEYS: tuple[str, ...] = ("os", "arch", "machine", "user", "env", "platform")


@dataclass(frozen=True, slots=True)
class Context:
    """Immutable description of the host a synthesis run targets.

    Why
    ----
    Filter evaluation needs a stable, comparable snapshot of the host. Tests and
    the CLI need to fabricate contexts for other machines without touching the
    process environment.

    What
    ----
    Stores the fixed keys plus ``extra`` (custom keys such as ``role`` or
    ``version``). All values except ``platform`` are stored lower-cased so
    matching is case-insensitive by construction.

    Examples
    --------
    >>> ctx = Context(os="linux", arch="x64", machine="Laptop", user="ada", extra={"Role": "Desktop"})
    >>> ctx.machine
    'laptop'
    >>> ctx.lookup("role")
    'desktop'
    >>> ctx.lookup("missing") is None
    True
    """

    os: str
    arch: str
    machine: str
    user: str
    env: str | None = None
    platform: str = ""
    extra: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        for name in ("os", "arch", "machine", "user"):
            object.__setattr__(self, name, str(getattr(self, name)).lower())
        if self.env is not None:
            object.__setattr__(self, "env", str(self.env).lower() or None)
        normalised = {str(key).lower(): str(value).lower() for key, value in self.extra.items() if value is not None}
        object.__setattr__(self, "extra", MappingProxyType(normalised))

    def lookup(self, key: str) -> str | None:
        """Return the value bound to *key* or ``None`` when the context lacks it.

        Fixed keys win over custom keys of the same name.
        """

        lowered = key.lower()
        if lowered in FIXED_KEYS:
            value = getattr(self, lowered)
            return value if value else None
        return self.extra.get(lowered)

    def with_overrides(self, **overrides: Any) -> Context:
        """Return a copy with *overrides* applied.

        Keys naming a fixed field replace it; any other key lands in ``extra``.

        Examples
        --------
        >>> base = Context(os="linux", arch="x64", machine="a", user="u")
        >>> other = base.with_overrides(machine="B", version="1.5")
        >>> other.machine, other.lookup("version"), base.machine
        ('b', '1.5', 'a')
        """

        fixed = {item.name for item in fields(self)} - {"extra"}
        direct = {key: value for key, value in overrides.items() if key in fixed}
        custom = {key: value for key, value in overrides.items() if key not in fixed and key != "extra"}
        extra = dict(self.extra)
        extra.update(overrides.get("extra") or {})
        extra.update(custom)
        return replace(self, **direct, extra=extra)

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly mapping of every key (custom keys under ``extra``)."""

        return {
            "os": self.os,
            "arch": self.arch,
            "machine": self.machine,
            "user": self.user,
            "env": self.env,
            "platform": self.platform,
            "extra": dict(self.extra),
        }

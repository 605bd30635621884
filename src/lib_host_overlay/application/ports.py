"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts adapters satisfy so the executors and the
cleanup stage can orchestrate behaviour without depending on concrete
implementations.

Contents
--------
* :class:`FormatAdapter` – per-format ``parse``/``merge``/``serialize``
  capability used by the merge executor.
* :class:`ManifestStore` – durable record of the previous run's outputs.

System Role
-----------
Adapters implement one protocol each; the composition root wires them.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Protocol, runtime_checkable


@runtime_checkable
class FormatAdapter(Protocol):
    """Merge strategy for one payload format.

    Why
    ----
    Structured data, key/value files and prose need different merge semantics,
    but the merge executor treats them uniformly.
    """

    kind: str

    def parse(self, text: str) -> Any:
        """Return the in-memory value for *text* or raise ``InvalidFormat``."""

    def merge(self, base: Any, overlay: Any) -> Any:
        """Return *overlay* layered onto *base*; the overlay wins on conflicts."""

    def serialize(self, value: Any) -> str:
        """Render *value* back to text in the adapter's canonical layout."""


@runtime_checkable
class ManifestStore(Protocol):
    """Persist the output-path set of the most recently completed run.

    Why
    ----
    Stale-output detection compares this run's outputs against the previous
    run's; the storage medium is an adapter concern.
    """

    def load(self) -> list[Path] | None:
        """Return the recorded outputs, or ``None`` when no usable manifest exists."""

    def save(self, outputs: Iterable[Path], *, timestamp: datetime | None = None) -> None:
        """Replace the recorded outputs with *outputs*."""

    def lock(self) -> AbstractContextManager[None]:
        """Return a context manager granting exclusive read-modify-write access."""

"""Plain-text format adapters.

* :class:`TextAppendAdapter` – Markdown: the overlay text is appended to the
  base text, separated by one blank line.
* :class:`VerbatimAdapter` – any other suffix: the overlay replaces the base.
"""

from __future__ import annotations


class TextAppendAdapter:
    """Append the overlay document to the base document.

    ``None`` stands for an absent side, in which case the other side is kept
    verbatim.

    Examples
    --------
    >>> TextAppendAdapter().merge("# Base\\n\\n", "\\n## Host\\n")
    '# Base\\n\\n## Host\\n'
    >>> TextAppendAdapter().merge("", "  ")
    '\\n'
    """

    kind = "md"

    def parse(self, text: str) -> str:
        return text

    def merge(self, base: str | None, overlay: str | None) -> str:
        if base is None and overlay is None:
            return "\n"
        if overlay is None:
            return base or "\n"
        if base is None:
            return overlay or "\n"
        head = base.rstrip()
        tail = overlay.strip()
        if not head:
            return tail + "\n"
        if not tail:
            return head + "\n"
        return f"{head}\n\n{tail}\n"

    def serialize(self, value: str) -> str:
        return value


class VerbatimAdapter:
    """Whole-file replacement for payloads without a structured merge."""

    kind = "verbatim"

    def parse(self, text: str) -> str:
        return text

    def merge(self, base: str | None, overlay: str | None) -> str:
        if overlay is not None:
            return overlay
        return base or ""

    def serialize(self, value: str) -> str:
        return value

"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by the scanner, the executors, the
cleanup stage, and consuming applications. The hierarchy lives in the domain
layer so outer layers may depend on it without creating cycles.

Contents
--------
* :class:`OverlayError` – umbrella base class for every library failure.
* :class:`StructuralError` – scan-time failures that abort a run before any
  write happens (nested or conflicting filtered directories, ambiguous sources).
* :class:`OperationalError` – execution-time failures isolated to a single
  operation (malformed payloads, unsupported array merges, write failures).
* :class:`CleanupError`, :class:`ManifestLockedError`, :class:`NotFound` –
  lifecycle and resource errors.

System Role
-----------
Structural errors propagate out of :func:`lib_host_overlay.core.scan`.
Operational errors are attached to result objects (``success=False``) rather
than raised, so sibling operations in a batch keep running. Callers catch
:class:`OverlayError` to handle all library failures uniformly.
"""

from __future__ import annotations

from typing import Sequence


class OverlayError(Exception):
    """Base type for all exceptions emitted by ``lib_host_overlay``."""


class StructuralError(OverlayError):
    """Raised while scanning when the source tree cannot be resolved unambiguously.

    Why
    ----
    Structural problems are user mistakes in the tree layout. Surfacing them
    before any write keeps the working copy untouched until the layout is fixed.
    """


class NestedFilteredDirectoryError(StructuralError):
    """A filtered directory contains another filtered directory."""

    def __init__(self, outer_dir: str, inner_dir: str) -> None:
        super().__init__(
            "Nested filtered directories are not supported.\n"
            f"Found: {inner_dir} inside {outer_dir}\n"
            "Only one level of directory filtering is allowed."
        )
        self.outer_dir = outer_dir
        self.inner_dir = inner_dir


class DirectoryConflictError(StructuralError):
    """More than one matching filtered directory resolves to the same output."""

    def __init__(self, output_path: str, sources: Sequence[str]) -> None:
        super().__init__(
            f"Multiple directories would output to the same path: {output_path}\n"
            f"Sources: {', '.join(sources)}\n"
            "Only one filtered directory can match per output path."
        )
        self.output_path = output_path
        self.sources = list(sources)


class FileDirectoryConflictError(StructuralError):
    """A file merge targets a directory copy's output path or a path beneath it."""

    def __init__(self, output_path: str, file_source: str, dir_source: str) -> None:
        super().__init__(
            f"Both a file merge and directory copy would output to: {output_path}\n"
            f"File source: {file_source}\n"
            f"Directory source: {dir_source}\n"
            "Remove one of these to resolve the conflict."
        )
        self.output_path = output_path
        self.file_source = file_source
        self.dir_source = dir_source


class BaseDirectoryNotSupportedError(StructuralError):
    """A filtered directory is marked as a base source."""

    def __init__(self, dir_path: str) -> None:
        super().__init__(
            f"Base directories are not supported: {dir_path}\n"
            "Unlike files, directories do not support a base fallback.\n"
            "Use filtered directories only (e.g. mydir.{machine=laptop}/)."
        )
        self.dir_path = dir_path


class AmbiguousSourceError(StructuralError):
    """Two base sources, or two overlays, are active for one output file."""

    def __init__(self, output_path: str, sources: Sequence[str], *, role: str = "overlay") -> None:
        super().__init__(
            f"Multiple {role} files match the current context for: {output_path}\n"
            f"Sources: {', '.join(sources)}\n"
            f"At most one {role} may match per output path; tighten the filters."
        )
        self.output_path = output_path
        self.sources = list(sources)
        self.role = role


class OperationalError(OverlayError):
    """Base class for failures isolated to one operation during execution."""


class InvalidFormat(OperationalError):
    """Raised when a payload or settings file cannot be parsed.

    Typical Sources
    ---------------
    Format adapters (JSON, YAML, key/value) and the settings loader.
    """


class ArrayMergeError(OperationalError):
    """An array merge was attempted on arrays holding non-primitive elements."""

    def __init__(self, key: str) -> None:
        super().__init__(
            f'Cannot merge arrays containing non-primitive values at key "{key}".\n'
            "Array merging only supports primitive values (string, number, boolean, null).\n"
            "Arrays containing objects or nested arrays cannot be merged."
        )
        self.key = key


class MergeWriteError(OperationalError):
    """Writing a merged output failed."""

    def __init__(self, output_path: str, cause: BaseException | None = None) -> None:
        detail = f"\nCause: {cause}" if cause is not None else ""
        super().__init__(f"Failed to write merged output: {output_path}{detail}")
        self.output_path = output_path
        self.cause = cause


class MergeReadError(OperationalError):
    """Reading a merge source failed (permissions, disappearance after the scan)."""

    def __init__(self, output_path: str, cause: BaseException | None = None) -> None:
        detail = f"\nCause: {cause}" if cause is not None else ""
        super().__init__(f"Failed to read sources for merged output: {output_path}{detail}")
        self.output_path = output_path
        self.cause = cause


class DirectoryCopyError(OperationalError):
    """Replicating a filtered directory into its output failed."""

    def __init__(self, source_path: str, output_path: str, cause: BaseException | None = None) -> None:
        detail = f"\nCause: {cause}" if cause is not None else ""
        super().__init__(f"Failed to copy directory: {source_path} -> {output_path}{detail}")
        self.source_path = source_path
        self.output_path = output_path
        self.cause = cause


class CleanupError(OverlayError):
    """Soft-deleting a stale output failed; collected, never raised by ``reconcile``."""

    def __init__(self, path: str, cause: BaseException | None = None) -> None:
        detail = f"\nCause: {cause}" if cause is not None else ""
        super().__init__(f"Failed to clean up stale output: {path}{detail}")
        self.path = path
        self.cause = cause


class ManifestLockedError(OverlayError):
    """Another run holds the manifest lock for longer than the configured timeout."""


class NotFound(OverlayError):
    """Represents missing-but-optional resources (settings files, sources)."""

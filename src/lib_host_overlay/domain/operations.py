"""Operation and result value objects exchanged between pipeline stages.

The scanner produces :class:`ScanResult`; the executors consume its operations
and return :class:`MergeResult` / :class:`DirectoryCopyResult`; cleanup returns
:class:`CleanupResult`. :class:`RunReport` bundles one full synthesis run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .errors import CleanupError, OverlayError


@dataclass(frozen=True, slots=True)
class MergeOperation:
    """One ``base + overlay -> output`` triple.

    ``overlay_path`` is ``None`` when no overlay matched and the base is copied
    on its own; ``base_path`` is ``None`` when the overlay has no base sibling.
    """

    base_path: Path | None
    overlay_path: Path | None
    output_path: Path
    format_kind: str

    def __post_init__(self) -> None:
        if self.base_path is None and self.overlay_path is None:
            raise ValueError(f"merge operation for {self.output_path} has neither base nor overlay")

    @property
    def sources(self) -> tuple[Path, ...]:
        """Return the existing source paths of this operation (base first)."""

        return tuple(path for path in (self.base_path, self.overlay_path) if path is not None)

    def describe(self) -> str:
        """Return the human-readable ``base + overlay -> output`` form."""

        names = " + ".join(path.name for path in self.sources)
        return f"{names} -> {self.output_path.name}"


@dataclass(frozen=True, slots=True)
class DirectoryCopyOperation:
    """One ``matched directory -> output directory`` pair."""

    source_path: Path
    output_path: Path

    def describe(self) -> str:
        return f"{self.source_path.name}/ -> {self.output_path.name}/"


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Aggregate of one scan pass."""

    merge_operations: tuple[MergeOperation, ...] = ()
    directory_operations: tuple[DirectoryCopyOperation, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.merge_operations and not self.directory_operations

    def output_paths(self) -> list[Path]:
        """Return every output path this scan intends to produce, sorted."""

        outputs = [op.output_path for op in self.merge_operations]
        outputs.extend(op.output_path for op in self.directory_operations)
        return sorted(outputs)


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Outcome of :func:`lib_host_overlay.application.merger.execute_merge`."""

    operation: MergeOperation
    success: bool
    changed: bool = False
    skipped: bool = False
    error: OverlayError | None = None


@dataclass(frozen=True, slots=True)
class DirectoryCopyResult:
    """Outcome of :func:`lib_host_overlay.application.directory_copier.execute_directory_copy`."""

    operation: DirectoryCopyOperation
    success: bool
    files_written: int = 0
    files_unchanged: int = 0
    changed: bool = False
    error: OverlayError | None = None


@dataclass(slots=True)
class CleanupResult:
    """Paths soft-deleted by one reconciliation plus the failures collected on the way."""

    renamed_files: list[Path] = field(default_factory=list)
    renamed_directories: list[Path] = field(default_factory=list)
    errors: list[CleanupError] = field(default_factory=list)

    @property
    def renamed(self) -> list[Path]:
        return [*self.renamed_files, *self.renamed_directories]


@dataclass(frozen=True, slots=True)
class RunReport:
    """Everything one :func:`lib_host_overlay.core.synthesize` call did."""

    scan: ScanResult
    merge_results: tuple[MergeResult, ...]
    directory_results: tuple[DirectoryCopyResult, ...]
    cleanup: CleanupResult | None = None

    @property
    def success(self) -> bool:
        merges_ok = all(result.success or result.skipped for result in self.merge_results)
        copies_ok = all(result.success for result in self.directory_results)
        return merges_ok and copies_ok

    @property
    def changed_count(self) -> int:
        return sum(1 for result in (*self.merge_results, *self.directory_results) if result.changed)

    @property
    def failures(self) -> list[MergeResult | DirectoryCopyResult]:
        return [
            result
            for result in (*self.merge_results, *self.directory_results)
            if not result.success and result.error is not None
        ]

"""Public package surface for ``lib_host_overlay``.

Synthesize host-specific files from annotated sources: ``config.base.json``
plus ``config.{os=linux}.json`` becomes ``config.json`` on Linux hosts, and
``bin.{machine=laptop}/`` is copied to ``bin/`` on the machine named ``laptop``.
The composition root in :mod:`lib_host_overlay.core` is the stable entry point;
value objects and errors are re-exported here.
"""

from __future__ import annotations

from .adapters.context.host import detect_context, get_context, reset_context
from .application.session import Debouncer, SyncSession, watch
from .core import (
    execute_directory_copy,
    execute_merge,
    open_session,
    reconcile,
    resolve_context,
    resolve_settings,
    scan,
    synthesize,
)
from .domain.context import Context
from .domain.errors import (
    AmbiguousSourceError,
    ArrayMergeError,
    BaseDirectoryNotSupportedError,
    CleanupError,
    DirectoryConflictError,
    DirectoryCopyError,
    FileDirectoryConflictError,
    InvalidFormat,
    ManifestLockedError,
    MergeReadError,
    MergeWriteError,
    NestedFilteredDirectoryError,
    NotFound,
    OperationalError,
    OverlayError,
    StructuralError,
)
from .domain.filters import evaluate, match_name, parse_name
from .domain.operations import (
    CleanupResult,
    DirectoryCopyOperation,
    DirectoryCopyResult,
    MergeOperation,
    MergeResult,
    RunReport,
    ScanResult,
)
from .domain.settings import Settings
from .observability import bind_trace_id, get_logger

__all__ = [
    "AmbiguousSourceError",
    "ArrayMergeError",
    "BaseDirectoryNotSupportedError",
    "CleanupError",
    "CleanupResult",
    "Context",
    "Debouncer",
    "DirectoryConflictError",
    "DirectoryCopyError",
    "DirectoryCopyOperation",
    "DirectoryCopyResult",
    "FileDirectoryConflictError",
    "InvalidFormat",
    "ManifestLockedError",
    "MergeOperation",
    "MergeResult",
    "MergeReadError",
    "MergeWriteError",
    "NestedFilteredDirectoryError",
    "NotFound",
    "OperationalError",
    "OverlayError",
    "RunReport",
    "ScanResult",
    "Settings",
    "StructuralError",
    "SyncSession",
    "bind_trace_id",
    "detect_context",
    "evaluate",
    "execute_directory_copy",
    "execute_merge",
    "get_context",
    "get_logger",
    "match_name",
    "open_session",
    "parse_name",
    "reconcile",
    "reset_context",
    "resolve_context",
    "resolve_settings",
    "scan",
    "synthesize",
    "watch",
]

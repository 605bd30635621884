"""Detect the running host's :class:`~lib_host_overlay.domain.context.Context`.

Purpose
-------
Read the operating system, CPU architecture, host name, user and deployment
environment once per process. Explicit contexts built by callers bypass this
module entirely.

Contents
--------
* :func:`detect_context` – fresh detection from an environment mapping.
* :func:`get_context` / :func:`reset_context` – the process-scoped cached value.
* :func:`normalise_os` / :func:`normalise_arch` – name normalisation tables.
"""

from __future__ import annotations

import getpass
import os
import platform
import socket
import sys
import threading
from typing import Mapping

from ...domain.context import Context
from ...observability import log_debug
from ..env.default import ENV_PREFIX, DefaultEnvLoader

_OS_NAMES: Mapping[str, str] = {
    "windows": "windows",
    "darwin": "macos",
    "linux": "linux",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
}

_ARCH_NAMES: Mapping[str, str] = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "ia32",
    "i686": "ia32",
    "x86": "ia32",
    "armv7l": "arm",
    "armv6l": "arm",
}

_CACHE_LOCK = threading.Lock()
_cached: Context | None = None


def normalise_os(system: str) -> str:
    """Map ``platform.system()`` output to the names used in filters.

    >>> normalise_os("Darwin"), normalise_os("Windows"), normalise_os("SunOS")
    ('macos', 'windows', 'sunos')
    """

    lowered = system.lower()
    return _OS_NAMES.get(lowered, lowered)


def normalise_arch(machine: str) -> str:
    """Map ``platform.machine()`` output to short architecture names.

    >>> normalise_arch("AMD64"), normalise_arch("aarch64"), normalise_arch("riscv64")
    ('x64', 'arm64', 'riscv64')
    """

    lowered = machine.lower()
    return _ARCH_NAMES.get(lowered, lowered)


def detect_context(
    environ: Mapping[str, str] | None = None,
    *,
    extra: Mapping[str, str] | None = None,
) -> Context:
    """Build a context for the current process.

    ``LIB_HOST_OVERLAY_MACHINE`` / ``_USER`` / ``_ENV`` override the detected
    values, ``NODE_ENV`` is honoured as a fallback for ``env``, and every
    ``LIB_HOST_OVERLAY_CONTEXT__<KEY>`` variable adds a custom key. *extra*
    (usually the settings file's ``[context]`` table) sits below the
    environment variables.
    """

    source = os.environ if environ is None else environ
    loader = DefaultEnvLoader(environ=source)
    machine = loader.get(f"{ENV_PREFIX}_MACHINE") or loader.get("COMPUTERNAME") or socket.gethostname()
    user = loader.get(f"{ENV_PREFIX}_USER") or _current_user()
    env = loader.get(f"{ENV_PREFIX}_ENV") or loader.get("NODE_ENV")

    custom: dict[str, str] = {str(key): str(value) for key, value in (extra or {}).items()}
    env_context = loader.load(ENV_PREFIX).get("context")
    if isinstance(env_context, dict):
        custom.update({key: str(value) for key, value in env_context.items() if not isinstance(value, dict)})

    context = Context(
        os=normalise_os(platform.system()),
        arch=normalise_arch(platform.machine()),
        machine=machine,
        user=user,
        env=env,
        platform=sys.platform,
        extra=custom,
    )
    log_debug("context_detected", stage="context", path=None, **context.as_dict())
    return context


def get_context() -> Context:
    """Return the process-wide context, detecting it on first use."""

    global _cached
    with _CACHE_LOCK:
        if _cached is None:
            _cached = detect_context()
        return _cached


def reset_context() -> None:
    """Forget the cached context so the next :func:`get_context` re-detects."""

    global _cached
    with _CACHE_LOCK:
        _cached = None


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"

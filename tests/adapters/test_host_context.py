from __future__ import annotations

import platform
import sys

import pytest

from lib_host_overlay.adapters.context import host
from lib_host_overlay.adapters.context.host import detect_context, get_context, normalise_arch, normalise_os, reset_context
from lib_host_overlay.domain.filters import match_name


@pytest.fixture(autouse=True)
def _fresh_cache():
    reset_context()
    yield
    reset_context()


def test_normalisation_tables() -> None:
    assert normalise_os("Darwin") == "macos"
    assert normalise_os("Linux") == "linux"
    assert normalise_arch("x86_64") == "x64"
    assert normalise_arch("AMD64") == "x64"
    assert normalise_arch("aarch64") == "arm64"


def test_detect_uses_platform() -> None:
    ctx = detect_context({"LIB_HOST_OVERLAY_MACHINE": "box", "LIB_HOST_OVERLAY_USER": "ada"})
    assert ctx.os == normalise_os(platform.system())
    assert ctx.arch == normalise_arch(platform.machine())
    assert ctx.platform == sys.platform


def test_environment_overrides_machine_user_env() -> None:
    ctx = detect_context(
        {"LIB_HOST_OVERLAY_MACHINE": "WorkBox", "LIB_HOST_OVERLAY_USER": "grace", "LIB_HOST_OVERLAY_ENV": "Staging"}
    )
    assert (ctx.machine, ctx.user, ctx.env) == ("workbox", "grace", "staging")


def test_node_env_fallback() -> None:
    ctx = detect_context({"LIB_HOST_OVERLAY_MACHINE": "box", "LIB_HOST_OVERLAY_USER": "u", "NODE_ENV": "production"})
    assert ctx.env == "production"


def test_env_absent_is_none() -> None:
    assert detect_context({"LIB_HOST_OVERLAY_MACHINE": "box", "LIB_HOST_OVERLAY_USER": "u"}).env is None


def test_hostname_used_without_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(host.socket, "gethostname", lambda: "Detected-Host")
    assert detect_context({"LIB_HOST_OVERLAY_USER": "u"}).machine == "detected-host"


def test_unknown_user_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail() -> str:
        raise OSError("no login")

    monkeypatch.setattr(host.getpass, "getuser", _fail)
    assert detect_context({"LIB_HOST_OVERLAY_MACHINE": "box"}).user == "unknown"


def test_custom_keys_from_settings_and_environment() -> None:
    ctx = detect_context(
        {"LIB_HOST_OVERLAY_MACHINE": "box", "LIB_HOST_OVERLAY_USER": "u", "LIB_HOST_OVERLAY_CONTEXT__ROLE": "server"},
        extra={"role": "desktop", "region": "eu"},
    )
    assert ctx.lookup("role") == "server"
    assert ctx.lookup("region") == "eu"


def test_custom_values_from_environment_keep_literal_text() -> None:
    ctx = detect_context(
        {
            "LIB_HOST_OVERLAY_MACHINE": "box",
            "LIB_HOST_OVERLAY_USER": "u",
            "LIB_HOST_OVERLAY_CONTEXT__VERSION": "1.10",
            "LIB_HOST_OVERLAY_CONTEXT__BUILD": "007",
            "LIB_HOST_OVERLAY_CONTEXT__TIER": "none",
        }
    )
    assert dict(ctx.extra) == {"version": "1.10", "build": "007", "tier": "none"}
    assert match_name("app.{version=1.10}.json", ctx).matches
    assert match_name("app.{build=007}.json", ctx).matches


def test_get_context_is_cached_until_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LIB_HOST_OVERLAY_MACHINE", "first")
    first = get_context()
    monkeypatch.setenv("LIB_HOST_OVERLAY_MACHINE", "second")
    assert get_context() is first
    reset_context()
    assert get_context().machine == "second"

"""``LIB_HOST_OVERLAY_*`` environment adapter tests.

Covers prefix filtering, ``__`` nesting into the ``context`` table, scalar
coercion, and a property run over generated variable sets.
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_host_overlay.adapters.env.default import ENV_PREFIX, DefaultEnvLoader, assign_nested, default_env_prefix


def test_default_env_prefix() -> None:
    assert default_env_prefix("lib-host-overlay") == ENV_PREFIX


def test_only_prefixed_variables_are_loaded() -> None:
    environ = {
        "LIB_HOST_OVERLAY_WORKERS": "8",
        "LIB_HOST_OVERLAY_CLEANUP": "false",
        "LIB_HOST_OVERLAY_CONTEXT__ROLE": "desktop",
        "OTHER": "ignored",
    }
    data = DefaultEnvLoader(environ=environ).load()
    assert data == {"workers": 8, "cleanup": False, "context": {"role": "desktop"}}


def test_mixed_case_segments_share_one_table() -> None:
    environ = {"LIB_HOST_OVERLAY_CONTEXT__ROLE": "desktop", "LIB_HOST_OVERLAY_Context__Region": "eu"}
    data = DefaultEnvLoader(environ=environ).load()
    assert data["context"] == {"role": "desktop", "region": "eu"}


def test_get_treats_empty_as_unset() -> None:
    loader = DefaultEnvLoader(environ={"NODE_ENV": "", "LIB_HOST_OVERLAY_MACHINE": "box"})
    assert loader.get("NODE_ENV") is None
    assert loader.get("LIB_HOST_OVERLAY_MACHINE") == "box"
    assert loader.get("MISSING") is None


def test_context_values_keep_their_literal_text() -> None:
    environ = {
        "LIB_HOST_OVERLAY_CONTEXT__VERSION": "1.10",
        "LIB_HOST_OVERLAY_CONTEXT__BUILD": "007",
        "LIB_HOST_OVERLAY_CONTEXT__TIER": "none",
        "LIB_HOST_OVERLAY_WORKERS": "007",
    }
    data = DefaultEnvLoader(environ=environ).load()
    assert data["context"] == {"version": "1.10", "build": "007", "tier": "none"}
    assert data["workers"] == 7


def test_nesting_below_a_scalar_raises() -> None:
    container: dict[str, object] = {"context": "value"}
    with pytest.raises(ValueError, match="descends into scalar"):
        assign_nested(container, "CONTEXT__ROLE", 1)


RAW_VALUES = {"0": 0, "1": 1, "true": True, "FALSE": False, "3.5": 3.5, "none": None, "debug": "debug"}
KEYS = st.sampled_from(["WORKERS", "DEBOUNCE_MS", "CONTEXT__ROLE", "CONTEXT__REGION"])


@given(st.dictionaries(KEYS, st.sampled_from(sorted(RAW_VALUES)), max_size=3))
def test_generated_namespaces_land_on_lowercase_paths(entries) -> None:
    environ = {f"{ENV_PREFIX}_{key}": raw for key, raw in entries.items()}
    environ["IGNORED"] = "1"
    payload = DefaultEnvLoader(environ=environ).load(ENV_PREFIX)

    for key, raw in entries.items():
        *branches, leaf = key.lower().split("__")
        node = payload
        for branch in branches:
            node = node[branch]
        expected = raw if branches == ["context"] else RAW_VALUES[raw]
        assert node[leaf] == expected
    assert "ignored" not in payload

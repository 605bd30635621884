"""Format adapter tests: structured merge laws, key/value files, text append, registry."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_host_overlay.adapters.formats.keyvalue import KeyValueAdapter
from lib_host_overlay.adapters.formats.registry import FORMAT_KINDS, adapter_for, format_kind_for, output_name_for
from lib_host_overlay.adapters.formats.structured import JsonAdapter, YamlAdapter, merge_structured, strip_jsonc
from lib_host_overlay.adapters.formats.text import TextAppendAdapter, VerbatimAdapter
from lib_host_overlay.application.ports import FormatAdapter
from lib_host_overlay.domain.errors import ArrayMergeError, InvalidFormat, NotFound

PRIMITIVE = st.one_of(st.none(), st.booleans(), st.integers(), st.text(max_size=5))
KEY = st.text(alphabet="abcdef", min_size=1, max_size=4)
JSON_VALUE = st.recursive(
    PRIMITIVE,
    lambda children: st.one_of(
        st.lists(PRIMITIVE, max_size=3),
        st.dictionaries(KEY, children, max_size=3),
    ),
    max_leaves=10,
)
JSON_OBJECT = st.dictionaries(KEY, JSON_VALUE, max_size=4)


def test_registered_adapters_satisfy_protocol() -> None:
    for kind in FORMAT_KINDS:
        adapter = adapter_for(kind)
        assert isinstance(adapter, FormatAdapter)
        assert adapter.kind == kind


def test_unknown_kind_raises_not_found() -> None:
    with pytest.raises(NotFound):
        adapter_for("toml")


@pytest.mark.parametrize(
    ("name", "kind"),
    [
        ("config.json", "json"),
        ("tsconfig.jsonc", "json"),
        ("compose.yaml", "yaml"),
        ("ci.YML", "yaml"),
        (".env", "env"),
        (".env.local", "env"),
        ("prod.env", "env"),
        ("README.md", "md"),
        ("notes.markdown", "md"),
        ("settings.ini", "verbatim"),
        ("Makefile", "verbatim"),
    ],
)
def test_format_kind_for(name: str, kind: str) -> None:
    assert format_kind_for(name) == kind


def test_output_name_for_normalises_jsonc() -> None:
    assert output_name_for("tsconfig.jsonc") == "tsconfig.json"
    assert output_name_for(".env") == ".env"


def test_structured_merge_overlay_wins() -> None:
    assert merge_structured({"a": 1, "b": 2}, {"b": 3, "c": 4}) == {"a": 1, "b": 3, "c": 4}


def test_structured_merge_recurses_into_maps() -> None:
    base = {"server": {"host": "localhost", "port": 80}}
    overlay = {"server": {"port": 8080}}
    assert merge_structured(base, overlay) == {"server": {"host": "localhost", "port": 8080}}


def test_primitive_arrays_union_in_order() -> None:
    merged = merge_structured({"plugins": ["plugin-a", "plugin-b"]}, {"plugins": ["plugin-c", "plugin-a"]})
    assert merged == {"plugins": ["plugin-a", "plugin-b", "plugin-c"]}


def test_array_union_keeps_types_apart() -> None:
    assert merge_structured([1, True, None], ["1", 1, None, False]) == [1, True, None, "1", False]


def test_non_primitive_arrays_raise_with_key() -> None:
    with pytest.raises(ArrayMergeError) as excinfo:
        merge_structured({"build": {"items": [{"a": 1}]}}, {"build": {"items": [{"b": 2}]}})
    assert excinfo.value.key == "build.items"


def test_null_overlay_replaces_value() -> None:
    assert merge_structured({"a": {"b": 1}}, {"a": None}) == {"a": None}


def test_merge_does_not_mutate_inputs() -> None:
    base = {"a": {"b": [1]}}
    overlay = {"a": {"b": [2], "c": 3}}
    merge_structured(base, overlay)
    assert base == {"a": {"b": [1]}}
    assert overlay == {"a": {"b": [2], "c": 3}}


@given(JSON_OBJECT)
def test_merge_with_empty_overlay_is_identity_for_maps(value) -> None:
    assert merge_structured(value, {}) == value


@given(JSON_OBJECT)
def test_json_serialize_parse_preserves_value(value) -> None:
    adapter = JsonAdapter()
    assert adapter.parse(adapter.serialize(value)) == value


def test_jsonc_comments_and_trailing_commas_are_ignored() -> None:
    plain = '{"name": "app", "tags": ["a", "b"], "nested": {"x": 1}}'
    noisy = """{
      // line comment
      "name": "app", /* inline */
      "tags": ["a", "b",],
      "nested": {"x": 1,},
    }"""
    adapter = JsonAdapter()
    assert adapter.parse(noisy) == adapter.parse(plain)
    assert adapter.serialize(adapter.parse(noisy)) == adapter.serialize(adapter.parse(plain))


def test_jsonc_keeps_comment_markers_inside_strings() -> None:
    text = '{"url": "https://example.com/*x*/", "s": "a,]"}'
    assert strip_jsonc(text) == text


def test_invalid_json_raises_invalid_format() -> None:
    with pytest.raises(InvalidFormat):
        JsonAdapter().parse("{not json")


def test_json_serialize_layout() -> None:
    assert JsonAdapter().serialize({"name": "café"}) == '{\n  "name": "café"\n}\n'


def test_yaml_round_trip_and_merge() -> None:
    adapter = YamlAdapter()
    base = adapter.parse("service:\n  port: 80\n  tags: [a]\n")
    overlay = adapter.parse("service:\n  port: 8080\n  tags: [b]\n")
    merged = adapter.merge(base, overlay)
    assert merged == {"service": {"port": 8080, "tags": ["a", "b"]}}
    assert adapter.parse(adapter.serialize(merged)) == merged


def test_yaml_empty_document_is_empty_map() -> None:
    assert YamlAdapter().parse("") == {}


def test_invalid_yaml_raises_invalid_format() -> None:
    with pytest.raises(InvalidFormat):
        YamlAdapter().parse("key: [unclosed")


def test_keyvalue_overlay_overrides_and_appends() -> None:
    adapter = KeyValueAdapter()
    base = adapter.parse("API_URL=http://localhost\nDEBUG=false\n")
    overlay = adapter.parse("DEBUG=true\nTOKEN=abc\n")
    assert adapter.serialize(adapter.merge(base, overlay)) == "API_URL=http://localhost\nDEBUG=true\nTOKEN=abc\n"


def test_keyvalue_parse_skips_noise() -> None:
    text = "# header\n\nexport NAME='two words'\nnot an assignment\nEMPTY=\nURL=http://x?a=b\n"
    assert KeyValueAdapter().parse(text) == {"NAME": "two words", "EMPTY": "", "URL": "http://x?a=b"}


def test_keyvalue_empty_key_is_invalid() -> None:
    with pytest.raises(InvalidFormat):
        KeyValueAdapter().parse("=value\n")


def test_keyvalue_serialize_quotes_when_needed() -> None:
    assert KeyValueAdapter().serialize({"A": "x y", "B": "1"}) == 'A="x y"\nB=1\n'
    assert KeyValueAdapter().serialize({}) == "\n"


def test_text_append_joins_with_one_blank_line() -> None:
    adapter = TextAppendAdapter()
    assert adapter.merge("# Title\n\n\n", "\n\nHost notes\n") == "# Title\n\nHost notes\n"


def test_text_append_absent_side_keeps_other_verbatim() -> None:
    adapter = TextAppendAdapter()
    assert adapter.merge(None, "only overlay\n\n") == "only overlay\n\n"
    assert adapter.merge("only base", None) == "only base"
    assert adapter.merge(None, None) == "\n"


def test_text_append_empty_side() -> None:
    adapter = TextAppendAdapter()
    assert adapter.merge("", "tail") == "tail\n"
    assert adapter.merge("head", "   ") == "head\n"


def test_verbatim_overlay_replaces_base() -> None:
    adapter = VerbatimAdapter()
    assert adapter.serialize(adapter.merge(adapter.parse("base"), adapter.parse("overlay"))) == "overlay"
    assert adapter.merge("base", None) == "base"

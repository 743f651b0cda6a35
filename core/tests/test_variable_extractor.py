"""
Tests for VariableExtractor and path helpers.

Covers path formatting, the safety caps (depth, fan-out, size, total),
cycle handling and display previews.
"""

import pytest

from flowengine.variables.extractor import (
    ExtractionOptions,
    VariableExtractor,
    infer_type,
    preview_value,
)
from flowengine.variables.models import VariableType
from flowengine.variables.paths import format_key, parse_path, resolve_path, stringify


def paths(variables):
    return [v.path for v in variables]


def by_path(variables):
    return {v.path: v for v in variables}


class TestPaths:
    def test_format_key_uses_dots_for_identifiers(self):
        assert format_key("", "user") == "user"
        assert format_key("user", "name") == "user.name"

    def test_format_key_quotes_special_keys(self):
        assert format_key("headers", "content-type") == 'headers["content-type"]'
        assert format_key("", "first name") == '["first name"]'

    def test_parse_path_segments(self):
        assert parse_path('a.b[0]["x-y"]') == ["a", "b", 0, "x-y"]
        assert parse_path("items['k']") == ["items", "k"]

    def test_resolve_path(self):
        data = {"user": {"tags": ["a", "b"], "x-id": 7}}
        assert resolve_path(data, "user.tags[1]") == "b"
        assert resolve_path(data, "user.tags.length") == 2
        assert resolve_path(data, 'user["x-id"]') == 7
        assert resolve_path(data, "user.tags.0") == "a"
        assert resolve_path(data, "user.missing", default="none") == "none"

    def test_stringify(self):
        assert stringify("text") == "text"
        assert stringify(5) == "5"
        assert stringify(True) == "true"
        assert stringify({"a": 1}) == '{"a": 1}'


class TestExtraction:
    def test_nested_object_with_array(self):
        extractor = VariableExtractor()
        variables = extractor.extract({"user": {"name": "Ann", "tags": ["a", "b", "c", "d"]}}, "A")
        found = by_path(variables)

        assert found["user"].type == VariableType.OBJECT
        assert found["user.name"].actual_value == "Ann"
        assert found["user.tags"].type == VariableType.ARRAY
        assert found["user.tags.length"].actual_value == 4
        for i in range(4):
            assert found[f"user.tags[{i}]"].actual_value == "abcd"[i]

    def test_array_items_capped_but_length_recorded(self):
        extractor = VariableExtractor(ExtractionOptions(max_array_items=3))
        variables = extractor.extract({"user": {"name": "Ann", "tags": ["a", "b", "c", "d"]}}, "A")
        found = paths(variables)

        assert "user.tags[0]" in found
        assert "user.tags[2]" in found
        assert "user.tags[3]" not in found
        assert by_path(variables)["user.tags.length"].actual_value == 4

    def test_full_path_and_depth(self):
        variables = VariableExtractor().extract({"out": 5, "meta": {"ok": True}}, "A")
        found = by_path(variables)

        assert found["out"].full_path == "A.out"
        assert found["out"].depth == 0
        assert found["meta.ok"].depth == 1
        assert found["meta.ok"].type == VariableType.BOOLEAN
        assert all(v.source_node_id == "A" for v in variables)

    def test_path_prefix_records_root(self):
        variables = VariableExtractor().extract({"a": 1}, "N", path_prefix="result")
        found = by_path(variables)

        assert found["result"].depth == 0
        assert found["result.a"].depth == 1
        assert found["result.a"].full_path == "N.result.a"

    def test_special_keys_are_bracket_quoted(self):
        variables = VariableExtractor().extract({"headers": {"content-type": "json"}}, "H")
        assert 'headers["content-type"]' in paths(variables)

    def test_skips_none_and_callables(self):
        variables = VariableExtractor().extract(
            {"nothing": None, "fn": lambda: 1, "obj": object(), "kept": 1}, "A"
        )
        assert paths(variables) == ["kept"]

    def test_primitive_output_yields_nothing(self):
        assert VariableExtractor().extract("plain", "A") == []
        assert VariableExtractor().extract(42, "A") == []


class TestSafetyCaps:
    def test_self_referential_object_terminates(self):
        data = {"name": "loop"}
        data["self"] = data

        variables = VariableExtractor().extract(data, "A")

        assert "name" in paths(variables)
        assert "self" not in paths(variables)

    def test_indirect_cycle_terminates(self):
        a = {"label": "a"}
        b = {"label": "b", "a": a}
        a["b"] = b

        variables = VariableExtractor().extract({"root": a}, "A")

        assert "root.b.label" in paths(variables)
        assert len(variables) < 20

    def test_shared_non_cyclic_reference_is_visited_twice(self):
        shared = {"v": 1}
        variables = VariableExtractor().extract({"left": shared, "right": shared}, "A")
        assert {"left.v", "right.v"} <= set(paths(variables))

    def test_max_depth(self):
        deep = {"l0": {"l1": {"l2": {"l3": "bottom"}}}}
        variables = VariableExtractor(ExtractionOptions(max_depth=2)).extract(deep, "A")

        assert paths(variables) == ["l0", "l0.l1"]

    def test_max_properties_per_level(self):
        data = {f"k{i}": i for i in range(10)}
        variables = VariableExtractor(ExtractionOptions(max_properties_per_level=4)).extract(
            data, "A"
        )
        assert paths(variables) == ["k0", "k1", "k2", "k3"]

    @pytest.mark.parametrize("cap", [1, 7, 25])
    def test_max_total_variables(self, cap):
        data = {f"k{i}": {"a": i, "b": [i, i]} for i in range(40)}
        variables = VariableExtractor(ExtractionOptions(max_total_variables=cap)).extract(
            data, "A"
        )
        assert len(variables) == cap

    def test_oversized_output_skipped(self):
        extractor = VariableExtractor(ExtractionOptions(max_value_size=100))

        assert extractor.extract({"big": {"blob": "x" * 500}, "small": {"v": 1}}, "A") == []
        assert extractor.extract({"blob": "x" * 500}, "A", path_prefix="out") == []
        assert "small.v" in paths(extractor.extract({"small": {"v": 1}}, "A"))

    def test_unserializable_keys_skipped(self):
        data = {"grid": {(0, 1): "x"}, "ok": 1}

        variables = VariableExtractor().extract(data, "A")

        assert paths(variables) == ["ok"]

    def test_unserializable_keys_previewed(self):
        data = {(i, i): "v" * 50 for i in range(5)}
        assert preview_value(data) == "{(0, 0), (1, 1), (2, 2), ...}"


class TestPreview:
    def test_long_string_truncated(self):
        text = "y" * 150
        preview = preview_value(text)
        assert preview == "y" * 100 + "..."

    def test_long_array_truncated(self):
        assert preview_value([1, 2, 3, 4, 5]) == [1, 2, 3, "..."]
        assert preview_value([1, 2]) == [1, 2]

    def test_large_object_summarized_by_keys(self):
        data = {f"key{i}": "v" * 50 for i in range(5)}
        assert preview_value(data) == "{key0, key1, key2, ...}"

    def test_small_object_unchanged(self):
        assert preview_value({"a": 1}) == {"a": 1}

    def test_actual_value_kept_in_full(self):
        text = "z" * 300
        variable = VariableExtractor().extract({"text": text}, "A")[0]
        assert variable.example.endswith("...")
        assert variable.actual_value == text

    def test_infer_type(self):
        assert infer_type(True) == VariableType.BOOLEAN
        assert infer_type(1.5) == VariableType.NUMBER
        assert infer_type("s") == VariableType.STRING
        assert infer_type([]) == VariableType.ARRAY
        assert infer_type({}) == VariableType.OBJECT

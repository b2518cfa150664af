"""Tests for dimension filter descriptors."""

from dataclasses import dataclass

import pytest

from secpipe.dimensions.filters import OPERATORS, Filter, FilterDescriptor, read_field


@dataclass
class Cluster:
    name: str
    region: str
    nodes: int = 3
    tags: tuple = ()


# =========================================================================
# FilterDescriptor
# =========================================================================


class TestFilterDescriptor:

    def test_rejects_empty_field(self):
        with pytest.raises(ValueError, match="field"):
            FilterDescriptor("", "eq", 1)

    def test_rejects_unknown_operator(self):
        with pytest.raises(ValueError, match="Unknown filter operator"):
            FilterDescriptor("region", "like", "east%")

    def test_in_requires_collection(self):
        with pytest.raises(ValueError, match="collection"):
            FilterDescriptor("region", "in", "eastus")

    def test_in_value_normalized_to_sorted_tuple(self):
        descriptor = FilterDescriptor("region", "in", ["westus", "eastus"])
        assert descriptor.value == ("eastus", "westus")

    def test_is_hashable(self):
        a = FilterDescriptor("region", "in", {"b", "a"})
        b = FilterDescriptor("region", "in", ["a", "b"])
        assert a == b
        assert hash(a) == hash(b)

    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            ("eq", "eastus", True),
            ("ne", "eastus", False),
            ("in", ["eastus", "westus"], True),
            ("not_in", ["westus"], True),
            ("startswith", "east", True),
            ("endswith", "us", True),
            ("contains", "stu", True),
        ],
    )
    def test_string_operators(self, operator, value, expected):
        item = Cluster(name="c1", region="eastus")
        assert FilterDescriptor("region", operator, value).matches(item) is expected

    @pytest.mark.parametrize(
        "operator,value,expected",
        [("gt", 2, True), ("ge", 3, True), ("lt", 3, False), ("le", 3, True)],
    )
    def test_ordering_operators(self, operator, value, expected):
        item = {"nodes": 3}
        assert FilterDescriptor("nodes", operator, value).matches(item) is expected

    def test_ordering_false_on_incomparable_types(self):
        assert FilterDescriptor("nodes", "gt", "two").matches({"nodes": 3}) is False

    def test_ordering_false_on_none(self):
        assert FilterDescriptor("nodes", "lt", 10).matches({"nodes": None}) is False

    def test_contains_on_collection(self):
        item = Cluster(name="c1", region="eastus", tags=("prod", "pci"))
        assert FilterDescriptor("tags", "contains", "pci").matches(item)

    def test_text_operators_false_on_non_strings(self):
        assert FilterDescriptor("nodes", "startswith", "3").matches({"nodes": 3}) is False

    def test_missing_field_only_matches_negative_operators(self):
        item = {"region": "eastus"}
        assert FilterDescriptor("tier", "eq", "gold").matches(item) is False
        assert FilterDescriptor("tier", "ne", "gold").matches(item) is True
        assert FilterDescriptor("tier", "not_in", ["gold"]).matches(item) is True

    def test_to_dict(self):
        descriptor = FilterDescriptor("region", "in", ["b", "a"])
        assert descriptor.to_dict() == {"field": "region", "op": "in", "value": ["a", "b"]}

    def test_all_operators_registered(self):
        assert set(OPERATORS) == {
            "eq", "ne", "in", "not_in", "contains", "startswith",
            "endswith", "gt", "ge", "lt", "le",
        }


# =========================================================================
# Filter
# =========================================================================


class TestFilter:

    def test_empty_filter_matches_everything(self):
        assert Filter().matches({"anything": 1})
        assert len(Filter()) == 0

    def test_conjunction(self):
        flt = Filter.where("region", "eq", "eastus").and_("nodes", "ge", 3)

        assert len(flt) == 2
        assert flt.matches(Cluster("c1", "eastus", nodes=5))
        assert not flt.matches(Cluster("c2", "eastus", nodes=1))
        assert not flt.matches(Cluster("c3", "westus", nodes=5))

    def test_canonical_key_is_compact_json(self):
        key = Filter.where("region", "eq", "eastus").canonical_key()
        assert key == '[{"field":"region","op":"eq","value":"eastus"}]'

    def test_canonical_key_ignores_conjunct_order(self):
        a = Filter.where("region", "eq", "eastus").and_("nodes", "gt", 2)
        b = Filter.where("nodes", "gt", 2).and_("region", "eq", "eastus")

        assert a.canonical_key() == b.canonical_key()

    def test_canonical_key_ignores_in_value_order(self):
        a = Filter.where("region", "in", ["westus", "eastus"])
        b = Filter.where("region", "in", ("eastus", "westus"))

        assert a.canonical_key() == b.canonical_key()

    def test_different_values_give_different_keys(self):
        a = Filter.where("region", "eq", "eastus")
        b = Filter.where("region", "eq", "westus")

        assert a.canonical_key() != b.canonical_key()


class TestReadField:

    def test_reads_mapping_and_attribute(self):
        assert read_field({"a": 1}, "a") == 1
        assert read_field(Cluster("c1", "eastus"), "region") == "eastus"

    def test_distinguishes_missing_from_none(self):
        assert read_field({"a": None}, "a") is None
        assert read_field({}, "a") is not None

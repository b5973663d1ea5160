# tests/unit/contracts/test_partitions.py
"""Tests for PartitionValues and partition helpers."""

import pytest

from sluice.contracts import PartitionValues, dedupe, format_partition_values, project
from sluice.contracts.partitions import columns_of


class TestPartitionValues:
    def test_mapping_access(self) -> None:
        pv = PartitionValues(dt="20240101", region="eu")
        assert pv["dt"] == "20240101"
        assert list(pv) == ["dt", "region"]
        assert len(pv) == 2
        assert pv.elements == {"dt": "20240101", "region": "eu"}

    def test_values_compare_by_string_form(self) -> None:
        """A partition read from a path ('1') equals one held in memory (1)."""
        assert PartitionValues(p=1) == PartitionValues(p="1")
        assert len({PartitionValues(p=1), PartitionValues(p="1")}) == 1

    def test_equality_ignores_column_order(self) -> None:
        assert PartitionValues({"a": 1, "b": 2}) == PartitionValues({"b": 2, "a": 1})

    def test_immutable(self) -> None:
        pv = PartitionValues(dt="1")
        with pytest.raises(AttributeError):
            pv.extra = 1  # type: ignore[attr-defined]

    def test_rejects_empty_column_name(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            PartitionValues({"": 1})

    def test_str_is_path_like(self) -> None:
        assert str(PartitionValues(dt="20240101", region="eu")) == "dt=20240101/region=eu"

    def test_parse(self) -> None:
        assert PartitionValues.parse("dt=20240101/region=eu") == PartitionValues(dt="20240101", region="eu")
        assert PartitionValues.parse("dt=20240101,region=eu") == PartitionValues(dt="20240101", region="eu")

    def test_parse_rejects_missing_equals(self) -> None:
        with pytest.raises(ValueError, match="expected col=value"):
            PartitionValues.parse("dt")

    def test_filter_keys(self) -> None:
        pv = PartitionValues(dt="1", region="eu")
        assert pv.filter_keys(["dt"]) == PartitionValues(dt="1")
        assert pv.filter_keys(["other"]).is_empty

    def test_matches_subset(self) -> None:
        outer = PartitionValues(dt="1")
        assert outer.matches(PartitionValues(dt=1, region="eu"))
        assert not outer.matches(PartitionValues(dt="2", region="eu"))
        assert not PartitionValues(region="eu").matches(PartitionValues(dt="1"))

    def test_sort_key_is_column_sorted(self) -> None:
        key = PartitionValues(region="eu", dt="1").sort_key()
        assert [column for column, *_ in key] == ["dt", "region"]

    def test_numeric_values_sort_as_numbers(self) -> None:
        entries = [PartitionValues(p="10"), PartitionValues(p="x"), PartitionValues(p=2), PartitionValues(p="-1")]
        assert [str(pv) for pv in sorted(entries, key=PartitionValues.sort_key)] == ["p=-1", "p=2", "p=10", "p=x"]


class TestHelpers:
    def test_dedupe_keeps_first_occurrence_order(self) -> None:
        a, b = PartitionValues(p=2), PartitionValues(p=1)
        assert dedupe([a, b, PartitionValues(p="2")]) == (a, b)

    def test_project_drops_empty_entries(self) -> None:
        pvs = [PartitionValues(dt="1", hour="3"), PartitionValues(hour="4"), PartitionValues(dt="1", hour="5")]
        assert project(pvs, ["dt"]) == (PartitionValues(dt="1"),)

    def test_columns_of(self) -> None:
        assert columns_of([PartitionValues(a=1), PartitionValues(b=2, a=3)]) == {"a", "b"}

    def test_format(self) -> None:
        assert format_partition_values([PartitionValues(p=1), PartitionValues(p=2)]) == "p=1 p=2"

# tests/unit/plugins/test_expectations.py
"""Tests for DataObject expectations."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from sluice.contracts import ConfigurationError
from sluice.plugins.config_base import PluginConfigError
from sluice.plugins.expectations import ExpectationSeverity, UniqueKeyExpectation, parse_expectations
from tests.conftest import frame, memory


def unique_key(**options: object) -> UniqueKeyExpectation:
    return UniqueKeyExpectation.from_dict({"name": "pk", "key": ["id"], **options})


class TestUniqueKey:
    def test_defaults(self) -> None:
        expectation = unique_key()
        assert expectation.expectation == "= 1"
        assert expectation.failed_severity == ExpectationSeverity.ERROR
        assert expectation.precision == 4

    def test_unique_rows_pass(self) -> None:
        result = unique_key().evaluate(frame(id=[1, 2, 3]))
        assert (result.value, result.passed, result.failed) == (1.0, True, False)

    def test_fraction_is_truncated(self) -> None:
        # 9999 distinct of 10000 rounds to 1.0 but must still fail
        ids = list(range(9999)) + [0]
        result = unique_key().evaluate(frame(id=ids))
        assert result.value == 0.9999
        assert result.failed

    def test_precision(self) -> None:
        assert unique_key(precision=2).evaluate(frame(id=[1, 1, 2])).value == 0.66

    def test_composite_key(self) -> None:
        result = unique_key(key=["id", "dt"]).evaluate(frame(id=[1, 1], dt=["1", "2"]))
        assert result.passed

    def test_empty_frame_has_no_metric(self) -> None:
        result = unique_key().evaluate(frame(id=[]))
        assert result.value is None
        assert result.passed is None
        assert not result.failed

    def test_without_condition_only_reports(self) -> None:
        expectation = UniqueKeyExpectation.from_dict({"name": "pk", "key": ["id"], "expectation": None})
        result = expectation.evaluate(frame(id=[1, 1]))
        assert result.value == 0.5
        assert result.passed is None

    @pytest.mark.parametrize(
        ("condition", "passed"),
        [(">= 0.5", True), ("> 0.5", False), ("<> 1", True), ("== 0.5", True), ("< 0.25", False)],
    )
    def test_conditions(self, condition: str, passed: bool) -> None:
        assert unique_key(expectation=condition).evaluate(frame(id=[1, 1, 2, 2])).passed is passed

    @given(st.lists(st.integers(min_value=0, max_value=20), min_size=1, max_size=50))
    def test_value_is_a_fraction(self, ids: list[int]) -> None:
        value = unique_key().evaluate(frame(id=ids)).value
        assert value is not None
        assert 0 < value <= 1
        assert (value == 1) == (len(set(ids)) == len(ids))

    def test_describe(self) -> None:
        result = unique_key(failed_severity="warn").evaluate(frame(id=[1, 1]))
        assert result.severity == ExpectationSeverity.WARN
        assert result.describe() == "pk: 0.5 does not satisfy '= 1'"


class TestOptions:
    @pytest.mark.parametrize("condition", ["1", "= one", "~ 1", ">="])
    def test_invalid_condition(self, condition: str) -> None:
        with pytest.raises(PluginConfigError, match="comparison operator"):
            unique_key(expectation=condition)

    def test_key_required(self) -> None:
        with pytest.raises(PluginConfigError):
            UniqueKeyExpectation.from_dict({"name": "pk", "key": []})

    def test_unknown_option(self) -> None:
        with pytest.raises(PluginConfigError):
            unique_key(columns=["id"])

    def test_unknown_severity(self) -> None:
        with pytest.raises(PluginConfigError):
            unique_key(failed_severity="fatal")


class TestParseExpectations:
    def test_parses_by_type(self) -> None:
        (expectation,) = parse_expectations("orders", [{"type": "unique_key", "name": "pk", "key": ["id"]}])
        assert isinstance(expectation, UniqueKeyExpectation)
        assert expectation.required_columns() == ("id",)

    def test_unknown_type(self) -> None:
        with pytest.raises(PluginConfigError, match=r"\(orders\) unknown expectation type 'row_count'. Available: unique_key"):
            parse_expectations("orders", [{"type": "row_count", "name": "rows"}])

    def test_duplicate_names(self) -> None:
        declarations = [{"type": "unique_key", "name": "pk", "key": ["id"]}, {"type": "unique_key", "name": "pk", "key": ["dt"]}]
        with pytest.raises(PluginConfigError, match="duplicate expectation name"):
            parse_expectations("orders", declarations)


class TestDataObjectExpectations:
    def test_evaluated_on_written_frames(self) -> None:
        orders = memory("orders", expectations=[{"type": "unique_key", "name": "pk", "key": ["id"]}])
        [result] = orders.evaluate_expectations(frame(id=[1, 2, 2, 3]))
        assert result.name == "pk"
        assert result.value == 0.75

    def test_validate_requires_key_columns(self) -> None:
        orders = memory("orders", expectations=[{"type": "unique_key", "name": "pk", "key": ["id"]}])
        with pytest.raises(ConfigurationError, match=r"\(orders\) expectation 'pk' needs column\(s\) id"):
            orders.validate(frame(v=[1]), [])

    def test_partition_only_frame_skips_key_check(self) -> None:
        orders = memory("orders", partitions=("dt",), expectations=[{"type": "unique_key", "name": "pk", "key": ["id"]}])
        orders.validate(frame(dt=[]), [])

# tests/unit/core/test_canonical.py
"""Tests for canonical JSON serialization."""

import math
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from hypothesis import given
from hypothesis import strategies as st

from sluice.contracts import PartitionValues
from sluice.core.canonical import canonical_json, stable_hash
from tests.property.settings import DETERMINISM_SETTINGS

json_values = st.recursive(
    st.none() | st.booleans() | st.integers(min_value=-(2**53 - 1), max_value=2**53 - 1) | st.text(max_size=10),
    lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=5), children, max_size=4),
    max_leaves=10,
)


class TestCanonicalJson:
    def test_sorted_keys_without_whitespace(self) -> None:
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_numpy_and_pandas_values_are_normalized(self) -> None:
        data = {
            "int": np.int64(3),
            "float": np.float64(1.5),
            "bool": np.bool_(True),
            "array": np.array([1, 2]),
            "ts": pd.Timestamp("2024-01-01 12:00"),
            "nat": pd.NaT,
        }
        assert canonical_json(data) == (
            '{"array":[1,2],"bool":true,"float":1.5,"int":3,"nat":null,"ts":"2024-01-01T12:00:00+00:00"}'
        )

    def test_dates_and_decimals(self) -> None:
        assert canonical_json({"d": date(2024, 1, 2), "n": Decimal("1.10")}) == '{"d":"2024-01-02","n":"1.10"}'

    def test_naive_datetime_is_utc(self) -> None:
        assert canonical_json(datetime(2024, 1, 1, 8, 30)) == '"2024-01-01T08:30:00+00:00"'

    def test_domain_values_use_string_form(self) -> None:
        data = {"pv": PartitionValues(dt="1"), "path": Path("a/b.csv"), "dtype": np.dtype("int64"), "cols": {"b", "a"}}
        assert canonical_json(data) == '{"cols":["a","b"],"dtype":"int64","path":"a/b.csv","pv":"dt=1"}'

    def test_unknown_types_are_rejected(self) -> None:
        with pytest.raises(TypeError, match="object"):
            canonical_json({"x": object()})

    @pytest.mark.parametrize("value", [math.nan, math.inf, np.float64("nan"), Decimal("NaN")])
    def test_non_finite_values_are_rejected(self, value: object) -> None:
        with pytest.raises(ValueError, match="non-finite"):
            canonical_json({"x": value})

    @given(data=json_values)
    @DETERMINISM_SETTINGS
    def test_hash_is_deterministic(self, data: object) -> None:
        assert stable_hash(data) == stable_hash(data)
        assert len(stable_hash(data)) == 64

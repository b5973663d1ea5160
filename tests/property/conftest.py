# tests/property/conftest.py
"""Shared Hypothesis strategies for property-based tests.

Usage:
    from tests.property.conftest import partition_values_lists

    @given(pvs=partition_values_lists())
    def test_projection(pvs) -> None:
        ...
"""

from __future__ import annotations

from hypothesis import strategies as st

from sluice.contracts import PartitionValues

PARTITION_COLUMNS = ("dt", "region", "hour")

partition_column = st.sampled_from(PARTITION_COLUMNS)

# Mix ints and their string form: both identify the same partition
partition_value = st.one_of(
    st.integers(min_value=0, max_value=30),
    st.integers(min_value=0, max_value=30).map(str),
    st.sampled_from(["eu", "us", "ch"]),
)


@st.composite
def partition_values(draw: st.DrawFn, min_columns: int = 0) -> PartitionValues:
    columns = draw(st.lists(partition_column, min_size=min_columns, max_size=len(PARTITION_COLUMNS), unique=True))
    return PartitionValues({column: draw(partition_value) for column in columns})


def partition_values_lists(max_size: int = 6) -> st.SearchStrategy[list[PartitionValues]]:
    return st.lists(partition_values(), max_size=max_size)


def column_subsets() -> st.SearchStrategy[list[str]]:
    return st.lists(partition_column, max_size=len(PARTITION_COLUMNS), unique=True)

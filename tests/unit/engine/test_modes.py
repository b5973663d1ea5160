# tests/unit/engine/test_modes.py
"""Tests for execution modes."""

import pytest

from sluice.contracts import (
    ConfigurationError,
    ExecutionModeError,
    InitSubFeed,
    PartitionSelection,
    PartitionValues,
    Proceed,
    Skip,
)
from sluice.engine.modes import FailIfNoPartitionValuesMode, IncrementalMode, PartitionDiffMode, ProcessAllMode
from sluice.plugins.config_base import PluginConfigError
from sluice.plugins.dataobjects.memory import MemoryDataObject
from tests.conftest import frame, memory


def start_feed(*partition_values: PartitionValues) -> InitSubFeed:
    return InitSubFeed(data_object_id="src", partition_values=partition_values, is_dag_start=True)


class TestPartitionDiffMode:
    @pytest.fixture
    def src(self) -> MemoryDataObject:
        return memory("src", frame(dt=["3", "1", "2", "2"], v=[1, 2, 3, 4]), partitions=("dt",))

    def test_selects_missing_partitions_sorted(self, src: MemoryDataObject) -> None:
        tgt = memory("tgt", frame(dt=["1"], v=[0]), partitions=("dt",))

        decision = PartitionDiffMode().evaluate("a", src, tgt, start_feed())

        assert decision == Proceed(PartitionSelection(partition_values=(PartitionValues(dt="2"), PartitionValues(dt="3"))))

    def test_limit_per_run(self, src: MemoryDataObject) -> None:
        tgt = memory("tgt", partitions=("dt",))
        mode = PartitionDiffMode(options={"nb_of_partition_values_per_run": 1})

        decision = mode.evaluate("a", src, tgt, start_feed())

        assert decision == Proceed(PartitionSelection(partition_values=(PartitionValues(dt="1"),)))

    def test_limit_per_run_takes_lowest_numeric_partitions(self) -> None:
        src = memory("src", frame(p=[10, 2, 1], v=[1, 2, 3]), partitions=("p",))
        tgt = memory("tgt", frame(p=[1], v=[0]), partitions=("p",))
        mode = PartitionDiffMode(options={"nb_of_partition_values_per_run": 1})

        decision = mode.evaluate("a", src, tgt, start_feed())

        assert decision == Proceed(PartitionSelection(partition_values=(PartitionValues(p="2"),)))

    def test_nothing_missing_skips(self, src: MemoryDataObject) -> None:
        tgt = memory("tgt", frame(dt=["1", "2", "3"], v=[0, 0, 0]), partitions=("dt",))

        decision = PartitionDiffMode().evaluate("a", src, tgt, start_feed())

        assert isinstance(decision, Skip)
        assert "no new partitions" in decision.reason

    def test_compares_on_common_columns(self) -> None:
        src = memory("src", frame(dt=["1", "2"], hour=["0", "0"], v=[1, 2]), partitions=("dt", "hour"))
        tgt = memory("tgt", frame(dt=["1"], v=[1]), partitions=("dt",))

        decision = PartitionDiffMode().evaluate("a", src, tgt, start_feed())

        assert decision == Proceed(PartitionSelection(partition_values=(PartitionValues(dt="2"),)))

    def test_given_partition_values_pass_through(self, src: MemoryDataObject) -> None:
        tgt = memory("tgt", partitions=("dt",))
        assert PartitionDiffMode().evaluate("a", src, tgt, start_feed(PartitionValues(dt="9"))) == Proceed(None)

    def test_upstream_feed_passes_through(self, src: MemoryDataObject) -> None:
        tgt = memory("tgt", partitions=("dt",))
        upstream = InitSubFeed(data_object_id="src")
        assert PartitionDiffMode().evaluate("a", src, tgt, upstream) == Proceed(None)

    def test_unpartitioned_output_is_a_configuration_error(self, src: MemoryDataObject) -> None:
        with pytest.raises(ConfigurationError, match="needs partitioned main input and output"):
            PartitionDiffMode().evaluate("a", src, memory("tgt"), start_feed())

    def test_invalid_limit(self) -> None:
        with pytest.raises(PluginConfigError):
            PartitionDiffMode(options={"nb_of_partition_values_per_run": 0})


class TestIncrementalMode:
    def test_first_run_processes_everything(self) -> None:
        src = memory("src", frame(ts=[1, 2, 3]))
        decision = IncrementalMode(options={"compare_col": "ts"}).evaluate("a", src, memory("tgt"), start_feed())
        assert decision == Proceed(PartitionSelection())

    def test_filters_rows_above_output_maximum(self) -> None:
        src = memory("src", frame(ts=[1, 2, 3]))
        tgt = memory("tgt", frame(ts=[1, 2]))

        decision = IncrementalMode(options={"compare_col": "ts"}).evaluate("a", src, tgt, start_feed())

        assert decision == Proceed(PartitionSelection(filter="`ts` > 2"))

    def test_string_compare_column(self) -> None:
        src = memory("src", frame(ts=["2024-01-01", "2024-01-03"]))
        tgt = memory("tgt", frame(ts=["2024-01-02"]))

        decision = IncrementalMode(options={"compare_col": "ts"}).evaluate("a", src, tgt, start_feed())

        assert decision == Proceed(PartitionSelection(filter="`ts` > '2024-01-02'"))

    def test_no_new_data_skips(self) -> None:
        src = memory("src", frame(ts=[1, 2]))
        tgt = memory("tgt", frame(ts=[2]))
        decision = IncrementalMode(options={"compare_col": "ts"}).evaluate("a", src, tgt, start_feed())
        assert isinstance(decision, Skip)

    def test_empty_input_skips(self) -> None:
        decision = IncrementalMode(options={"compare_col": "ts"}).evaluate("a", memory("src"), memory("tgt"), start_feed())
        assert isinstance(decision, Skip)

    def test_compare_col_required(self) -> None:
        with pytest.raises(PluginConfigError):
            IncrementalMode()


class TestOtherModes:
    def test_fail_if_no_partition_values(self) -> None:
        mode = FailIfNoPartitionValuesMode()
        with pytest.raises(ExecutionModeError, match="partition values are empty"):
            mode.evaluate("a", memory("src"), memory("tgt"), start_feed())
        assert mode.evaluate("a", memory("src"), memory("tgt"), start_feed(PartitionValues(dt="1"))) == Proceed(None)

    def test_process_all_clears_selection(self) -> None:
        decision = ProcessAllMode().evaluate("a", memory("src"), memory("tgt"), start_feed(PartitionValues(dt="1")))
        assert decision == Proceed(PartitionSelection())

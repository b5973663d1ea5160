# tests/integration/test_scenario.py
"""End-to-end pipelines: actions over several inputs, settings to results on disk."""

from collections.abc import Callable, Mapping
from pathlib import Path

import pandas as pd
import pytest
import yaml

from sluice.contracts import (
    DagCycleError,
    DataFrameSubFeed,
    ExecutionPhase,
    InitSubFeed,
    NodeStatus,
    PartitionValues,
    Proceed,
    RunResult,
    RunStatus,
)
from sluice.core.config import load_settings
from sluice.engine.actions.builtin import CustomDataFrameAction
from sluice.engine.builder import build_pipeline
from sluice.engine.context import ActionPipelineContext
from sluice.engine.orchestrator import Orchestrator
from sluice.plugins.dataobjects.csv import CsvDataObject
from sluice.plugins.manager import PluginManager
from tests.conftest import RecordingAction, frame, memory

ContextFactory = Callable[..., ActionPipelineContext]


def join_countries(dfs: Mapping[str, pd.DataFrame]) -> dict[str, pd.DataFrame]:
    return {"tgt": dfs["src1"].merge(dfs["src2"], on="country", how="left")}


def with_total(df: pd.DataFrame) -> pd.DataFrame:
    return df.assign(total=df["qty"] * df["price"])


@pytest.fixture
def plugin_manager() -> PluginManager:
    manager = PluginManager()
    manager.register_builtin_plugins()
    return manager


class TestMultiInputLineageBreak:
    """Partitioned main input joined with an unpartitioned lookup, lineage broken."""

    @pytest.fixture
    def action(self) -> CustomDataFrameAction:
        src1 = memory("src1", frame(p=["1", "1", "2"], country=["ch", "de", "ch"], qty=[1, 2, 3]), partitions=("p",))
        src2 = memory("src2", frame(country=["ch", "de"], name=["Switzerland", "Germany"]))
        tgt = memory("tgt", partitions=("p",))
        return CustomDataFrameAction("join", inputs=[src1, src2], outputs=[tgt], transformer=join_countries, break_lineage=True)

    def feeds(self) -> list[InitSubFeed]:
        return [
            InitSubFeed(data_object_id="src1", partition_values=[PartitionValues(p=1)], is_dag_start=True),
            InitSubFeed(data_object_id="src2", is_dag_start=True),
        ]

    def test_init_returns_projected_feed_without_data(self, action: CustomDataFrameAction, make_context: ContextFactory) -> None:
        outcome = action.init(self.feeds(), make_context())

        assert isinstance(outcome, Proceed)
        (feed,) = outcome.value
        assert isinstance(feed, DataFrameSubFeed)
        assert feed.data_object_id == "tgt"
        assert feed.partition_values == (PartitionValues(p=1),)
        assert feed.materialized_ref is None

    def test_exec_writes_exactly_the_selected_partition(self, action: CustomDataFrameAction, make_context: ContextFactory) -> None:
        action.init(self.feeds(), make_context())
        outcome = action.exec(self.feeds(), make_context(ExecutionPhase.EXEC))

        assert isinstance(outcome, Proceed)
        (feed,) = outcome.value
        assert feed.partition_values == (PartitionValues(p=1),)
        assert feed.materialized_ref is None
        tgt = action.outputs[0]
        assert tgt.list_partition_values() == [PartitionValues(p="1")]
        written = tgt.data  # type: ignore[attr-defined]
        assert sorted(written["name"].tolist()) == ["Germany", "Switzerland"]


class TestCycleDetection:
    def test_cycle_fails_before_any_init(self) -> None:
        a_in, b_in = memory("a_in"), memory("b_in")
        a = RecordingAction("A", input=a_in, output=b_in)
        b = RecordingAction("B", input=b_in, output=a_in)

        with pytest.raises(DagCycleError):
            Orchestrator([a, b])

        assert a.calls == []
        assert b.calls == []


class TestCsvPipelineFromSettings:
    """Incremental partition loading from a landing zone into an enriched zone."""

    @pytest.fixture
    def settings_file(self, tmp_path: Path) -> Path:
        config = {
            "data_objects": {
                "landing": {"type": "csv", "partitions": ["dt"], "options": {"path": str(tmp_path / "landing")}},
                "enriched": {"type": "csv", "partitions": ["dt"], "options": {"path": str(tmp_path / "enriched")}},
                "archive": {"type": "csv", "partitions": ["dt"], "options": {"path": str(tmp_path / "archive")}},
            },
            "actions": {
                "enrich": {
                    "type": "copy",
                    "inputs": ["landing"],
                    "outputs": ["enriched"],
                    "transformer": "tests.integration.test_scenario:with_total",
                    "execution_mode": {"type": "partition_diff"},
                },
                "archive_enriched": {
                    "type": "file_transfer",
                    "inputs": ["enriched"],
                    "outputs": ["archive"],
                },
            },
            "concurrency": {"max_workers": 2},
            "retry": {"max_attempts": 2, "initial_delay_seconds": 0.01, "jitter_seconds": 0},
        }
        path = tmp_path / "pipeline.yaml"
        path.write_text(yaml.safe_dump(config))
        return path

    def land(self, tmp_path: Path, dt: str, rows: list[tuple[int, int]]) -> None:
        landing = CsvDataObject("landing", partitions=("dt",), options={"path": str(tmp_path / "landing")})
        landing.write(frame(dt=[dt] * len(rows), qty=[r[0] for r in rows], price=[r[1] for r in rows]), [])

    def run(self, settings_file: Path, plugin_manager: PluginManager) -> RunResult:
        pipeline = build_pipeline(load_settings(settings_file), plugin_manager)
        return pipeline.create_orchestrator().run()

    def test_partitions_are_processed_once(self, tmp_path: Path, settings_file: Path, plugin_manager: PluginManager) -> None:
        self.land(tmp_path, "20240101", [(1, 10), (2, 10)])
        self.land(tmp_path, "20240102", [(3, 10)])

        first = self.run(settings_file, plugin_manager)

        assert first.status == RunStatus.COMPLETED
        assert first.node_statuses() == {"enrich": NodeStatus.SUCCEEDED, "archive_enriched": NodeStatus.SUCCEEDED}
        enriched = pd.read_csv(tmp_path / "enriched" / "dt=20240101" / "data.csv")
        assert enriched["total"].tolist() == [10, 20]
        assert (tmp_path / "archive" / "dt=20240102" / "data.csv").is_file()

        self.land(tmp_path, "20240103", [(5, 2)])
        second = self.run(settings_file, plugin_manager)

        assert second.status == RunStatus.COMPLETED
        (enrich_feed,) = second.exec_results["enrich"].outputs
        assert enrich_feed.partition_values == (PartitionValues(dt="20240103"),)
        assert pd.read_csv(tmp_path / "archive" / "dt=20240103" / "data.csv")["total"].tolist() == [10]

        third = self.run(settings_file, plugin_manager)

        assert third.node_statuses() == {"enrich": NodeStatus.NO_DATA, "archive_enriched": NodeStatus.NO_DATA}
        assert third.status == RunStatus.COMPLETED

# tests/unit/cli/test_cli.py
"""Tests for the sluice CLI."""

import json
from pathlib import Path

import pandas as pd
import pytest
from typer.testing import CliRunner

from sluice.cli import app

runner = CliRunner()

PIPELINE = """
data_objects:
  orders:
    type: memory
    partitions: [dt]
    options:
      records:
        - {dt: "1", qty: 2, price: 3}
        - {dt: "2", qty: 1, price: 5}
  enriched:
    type: memory
    partitions: [dt]
  report:
    type: memory

actions:
  enrich:
    type: copy
    inputs: [orders]
    outputs: [enriched]
    transformer: tests.unit.cli.test_cli:add_total
  summarize:
    type: copy
    inputs: [enriched]
    outputs: [report]
"""


def add_total(df: pd.DataFrame) -> pd.DataFrame:
    return df.assign(total=df["qty"] * df["price"])


def explode(df: pd.DataFrame) -> pd.DataFrame:
    raise RuntimeError("transformer exploded")


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "pipeline.yaml"
    path.write_text(PIPELINE)
    return path


def write_settings(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "custom.yaml"
    path.write_text(content)
    return path


class TestCLIBasics:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "sluice version" in result.stdout

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("run", "validate", "export-schemas", "plugins"):
            assert command in result.stdout


class TestValidateCommand:
    def test_valid_pipeline(self, settings_file: Path) -> None:
        result = runner.invoke(app, ["--no-dotenv", "validate", "-s", str(settings_file)])

        assert result.exit_code == 0, result.output
        assert "Pipeline configuration valid!" in result.stdout
        assert "DataObjects: 3" in result.stdout
        assert "Order: enrich -> summarize" in result.stdout

    def test_show_config(self, settings_file: Path) -> None:
        result = runner.invoke(app, ["--no-dotenv", "validate", "-s", str(settings_file), "--show-config"])
        assert result.exit_code == 0, result.output
        assert "data_objects:" in result.stdout
        assert "max_workers: 1" in result.stdout

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["--no-dotenv", "validate", "-s", str(tmp_path / "missing.yaml")])
        assert result.exit_code == 1
        assert "File Not Found" in result.output

    def test_unknown_reference(self, tmp_path: Path) -> None:
        path = write_settings(tmp_path, PIPELINE.replace("inputs: [enriched]", "inputs: [nowhere]"))
        result = runner.invoke(app, ["--no-dotenv", "validate", "-s", str(path)])
        assert result.exit_code == 1
        assert "Configuration Validation Failed" in result.output

    def test_unknown_plugin_type(self, tmp_path: Path) -> None:
        path = write_settings(tmp_path, PIPELINE.replace("type: copy\n    inputs: [enriched]", "type: sql\n    inputs: [enriched]"))
        result = runner.invoke(app, ["--no-dotenv", "validate", "-s", str(path)])
        assert result.exit_code == 1
        assert "Plugin Configuration Error" in result.output

    def test_cycle(self, tmp_path: Path) -> None:
        path = write_settings(
            tmp_path,
            """
data_objects:
  x: {type: memory}
  y: {type: memory}
actions:
  forward: {type: copy, inputs: [x], outputs: [y]}
  back: {type: copy, inputs: [y], outputs: [x]}
""",
        )
        result = runner.invoke(app, ["--no-dotenv", "validate", "-s", str(path)])
        assert result.exit_code == 1
        assert "Pipeline Graph Error" in result.output


class TestRunCommand:
    def test_run_succeeds(self, settings_file: Path) -> None:
        result = runner.invoke(app, ["--no-dotenv", "run", "-s", str(settings_file), "-p", "dt=1", "--run-id", "r1"])

        assert result.exit_code == 0, result.output
        assert "Run r1: completed" in result.stdout
        assert "summarize" in result.stdout

    def test_json_format(self, settings_file: Path) -> None:
        result = runner.invoke(app, ["--no-dotenv", "run", "-s", str(settings_file), "--format", "json", "--run-id", "r2"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout.strip().splitlines()[-1])
        assert payload == {
            "run_id": "r2",
            "status": "completed",
            "actions": {"enrich": "succeeded", "summarize": "succeeded"},
            "failed_actions": [],
            "errors": {},
        }

    def test_failed_action_exits_nonzero(self, tmp_path: Path) -> None:
        path = write_settings(tmp_path, PIPELINE.replace("test_cli:add_total", "test_cli:explode"))

        result = runner.invoke(app, ["--no-dotenv", "run", "-s", str(path), "--format", "json"])

        assert result.exit_code == 1
        payload = json.loads(result.stdout.strip().splitlines()[-1])
        assert payload["status"] == "failed"
        assert payload["actions"] == {"enrich": "failed", "summarize": "cancelled"}
        assert payload["failed_actions"] == ["enrich"]
        assert "transformer exploded" in payload["errors"]["enrich"]

    def test_malformed_partition_values(self, settings_file: Path) -> None:
        result = runner.invoke(app, ["--no-dotenv", "run", "-s", str(settings_file), "-p", "dt"])
        assert result.exit_code == 1
        assert "expected col=value" in result.output


class TestExportSchemasCommand:
    def test_exports_selected_data_objects(self, settings_file: Path, tmp_path: Path) -> None:
        export_path = tmp_path / "schema"

        result = runner.invoke(
            app,
            ["--no-dotenv", "export-schemas", "-s", str(settings_file), "--export-path", str(export_path), "--include-regex", "orders|report"],
        )

        assert result.exit_code == 0, result.output
        assert "Exported 2 DataObject(s)" in result.stdout
        assert (export_path / "orders.schema.index").is_file()
        assert (export_path / "report.stats.index").is_file()
        assert not (export_path / "enriched.stats.index").exists()


class TestPluginsCommand:
    def test_lists_all_kinds(self) -> None:
        result = runner.invoke(app, ["--no-dotenv", "plugins", "list"])
        assert result.exit_code == 0
        assert "ACTIONS:" in result.stdout
        assert "DATA_OBJECTS:" in result.stdout
        assert "EXECUTION_MODES:" in result.stdout
        assert "partition_diff" in result.stdout

    def test_filter_by_type(self) -> None:
        result = runner.invoke(app, ["--no-dotenv", "plugins", "list", "--type", "data_object"])
        assert result.exit_code == 0
        assert "csv" in result.stdout
        assert "ACTIONS:" not in result.stdout

    def test_invalid_type(self) -> None:
        result = runner.invoke(app, ["--no-dotenv", "plugins", "list", "--type", "sink"])
        assert result.exit_code == 1
        assert "Invalid type 'sink'" in result.output

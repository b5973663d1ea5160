# src/sluice/cli.py
"""Sluice command line interface.

Commands:
    run             plan (init) and execute (exec) a pipeline
    validate        build the pipeline and its graph, run nothing
    export-schemas  write DataObject schema and statistics files
    plugins list    show registered DataObject, Action and execution mode types

Every command that reads a settings file reports configuration problems as
a panel on stderr and exits with code 1 before any Action runs.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from functools import cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from sluice import __version__
from sluice.contracts import ConfigurationError, DagValidationError, PartitionValues, RunStatus
from sluice.core.config import SluiceSettings, load_settings

if TYPE_CHECKING:
    from sluice.contracts import NodeResult, RunResult
    from sluice.engine.builder import Pipeline
    from sluice.plugins.manager import PluginManager

PLUGIN_KINDS = ("action", "data_object", "execution_mode")

app = typer.Typer(
    name="sluice",
    help="Sluice: configuration-driven pipelines over partitioned DataObjects.",
    no_args_is_help=True,
)


@dataclass
class _GlobalOptions:
    """Flags of the top-level callback, kept for logging reconfiguration."""

    verbose: bool = False
    json_logs: bool = False


@cache
def plugin_manager() -> PluginManager:
    """PluginManager with built-in and entry point plugins, created once per process."""
    from sluice.plugins.manager import PluginManager

    manager = PluginManager()
    manager.register_builtin_plugins()
    manager.load_entrypoint_plugins()
    return manager


def _fail(title: str, message: str, *, hint: str | None = None, details: list[str] | None = None) -> typer.Exit:
    """Print an error panel to stderr; the caller raises the returned Exit."""
    from rich.console import Console
    from rich.panel import Panel
    from rich.text import Text

    body = Text(message, style="white")
    for detail in details or []:
        body.append(f"\n  • {detail}", style="dim")
    if hint:
        body.append("\n\nHint: ", style="yellow bold")
        body.append(hint, style="yellow")

    Console(stderr=True).print(Panel(body, title=f"[red bold]{title}[/]", border_style="red", padding=(0, 1)))
    return typer.Exit(1)


@contextmanager
def _reported(settings_path: Path) -> Iterator[None]:
    """Turn configuration errors into error panels and exit code 1."""
    try:
        yield
    except (YamlParserError, YamlScannerError) as e:
        problem = getattr(e, "problem", None)
        raise _fail(
            "YAML Syntax Error",
            f"Failed to parse {settings_path.name}",
            details=[str(problem)] if problem else None,
            hint="Check for unclosed brackets, incorrect indentation, or invalid characters.",
        ) from None
    except FileNotFoundError:
        raise _fail(
            "File Not Found",
            f"Settings file does not exist: {settings_path}",
            hint="Check the path and ensure the file exists.",
        ) from None
    except ValidationError as e:
        raise _fail(
            "Configuration Validation Failed",
            f"Invalid settings in {settings_path.name}",
            details=[f"{'.'.join(str(x) for x in error['loc'])}: {error['msg']}" for error in e.errors()],
            hint="Check field names, types, and that every action references declared data objects.",
        ) from None
    except DagValidationError as e:
        raise _fail("Pipeline Graph Error", str(e), hint="Check action inputs and outputs for cycles.") from None
    except ConfigurationError as e:
        raise _fail(
            "Plugin Configuration Error",
            str(e),
            hint="Check plugin types and options against 'sluice plugins list'.",
        ) from None


def _load(ctx: typer.Context, settings: Path) -> tuple[SluiceSettings, Pipeline]:
    """Load settings, reconfigure logging from them and build the pipeline."""
    from sluice.core.logging import configure_logging
    from sluice.engine.builder import build_pipeline

    settings_path = settings.expanduser()
    with _reported(settings_path):
        config = load_settings(settings_path)
        options = ctx.obj if isinstance(ctx.obj, _GlobalOptions) else _GlobalOptions()
        # Command line flags take precedence over the logging section
        configure_logging(
            json_output=options.json_logs or config.logging.json_output,
            level="DEBUG" if options.verbose else config.logging.level,
        )
        return config, build_pipeline(config, plugin_manager())


def _version(value: bool) -> None:
    if value:
        typer.echo(f"sluice version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(None, "--version", "-V", callback=_version, is_eager=True, help="Show version and exit."),
    no_dotenv: bool = typer.Option(False, "--no-dotenv", help="Don't load a .env file."),
    env_file: Path | None = typer.Option(None, "--env-file", help="Load this .env file instead of searching for one."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Log JSON lines instead of console text."),
) -> None:
    """Sluice: configuration-driven pipelines over partitioned DataObjects."""
    from dotenv import load_dotenv

    from sluice.core.logging import configure_logging

    ctx.obj = _GlobalOptions(verbose=verbose, json_logs=json_logs)
    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if no_dotenv:
        if env_file is not None:
            typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)
        return
    if env_file is not None and not env_file.is_file():
        typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    # Variables already set in the environment win over the file
    load_dotenv(env_file, override=False)


def _final_results(result: RunResult) -> dict[str, NodeResult]:
    return {action_id: result.exec_results.get(action_id) or result.init_results[action_id] for action_id in result.node_statuses()}


@app.command()
def run(
    ctx: typer.Context,
    settings: Path = typer.Option(..., "--settings", "-s", help="Pipeline settings YAML file."),
    partition_values: list[str] = typer.Option(
        [],
        "--partition-values",
        "-p",
        help="Partition values to process, e.g. 'dt=20240101' or 'dt=20240101/country=ch'. Repeatable.",
    ),
    max_workers: int | None = typer.Option(None, "--max-workers", "-w", min=1, help="Parallel Actions (default: from settings)."),
    run_id: str | None = typer.Option(None, "--run-id", help="Identifier of this run (random by default)."),
    output_format: Literal["console", "json"] = typer.Option("console", "--format", "-f", help="Result as console text or one JSON line."),
) -> None:
    """Plan every Action (init), then execute them (exec).

    Exits with code 1 unless every Action succeeded or found no data.
    """
    try:
        seeds = [PartitionValues.parse(v) for v in partition_values]
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    config, pipeline = _load(ctx, settings)
    with _reported(settings):
        orchestrator = pipeline.create_orchestrator(max_workers=max_workers)
    result = orchestrator.run(run_id=run_id, partition_values=seeds or config.run_partition_values())
    final = _final_results(result)

    if output_format == "json":
        payload = {
            "run_id": result.run_id,
            "status": str(result.status),
            "actions": {action_id: str(node.status) for action_id, node in final.items()},
            "failed_actions": result.failed_actions,
            "errors": {action_id: str(node.error) for action_id, node in final.items() if node.error is not None},
        }
        typer.echo(json.dumps(payload))
    else:
        typer.echo(f"Run {result.run_id}: {result.status}")
        for action_id, node in final.items():
            line = f"  {action_id:30} {node.status:10} {node.duration_seconds:8.3f}s"
            if node.error is not None:
                line += f"  {type(node.error).__name__}: {node.error}"
            typer.echo(line)

    if result.status != RunStatus.COMPLETED:
        raise typer.Exit(1)


@app.command()
def validate(
    ctx: typer.Context,
    settings: Path = typer.Option(..., "--settings", "-s", help="Pipeline settings YAML file."),
    show_config: bool = typer.Option(False, "--show-config", help="Print the resolved settings as YAML."),
) -> None:
    """Check settings, plugin options and the Action graph without running anything."""
    from sluice.core.dag import ActionDAG

    config, pipeline = _load(ctx, settings)
    with _reported(settings):
        dag = ActionDAG(pipeline.actions)

    typer.echo("Pipeline configuration valid!")
    typer.echo(f"  DataObjects: {len(config.data_objects)}")
    typer.echo(f"  Actions: {dag.node_count}")
    typer.echo(f"  Graph: {dag.node_count} nodes, {dag.edge_count} edges")
    typer.echo(f"  Start inputs: {', '.join(dag.start_inputs()) or '-'}")
    typer.echo("  Order: " + " -> ".join(dag.topological_order()))

    if show_config:
        from sluice.core.config import settings_to_yaml

        typer.echo("")
        typer.echo(settings_to_yaml(config))


@app.command("export-schemas")
def export_schemas(
    ctx: typer.Context,
    settings: Path = typer.Option(..., "--settings", "-s", help="Pipeline settings YAML file."),
    export_path: Path = typer.Option(Path("./schema"), "--export-path", help="Directory for schema, stats and index files."),
    include_regex: str = typer.Option(".*", "--include-regex", help="Export DataObjects whose id fully matches."),
    exclude_regex: str | None = typer.Option(None, "--exclude-regex", help="Skip DataObjects whose id fully matches."),
    update_stats: bool = typer.Option(True, "--update-stats/--no-update-stats", help="Recompute statistics instead of using cached values."),
) -> None:
    """Write DataObject schemas and statistics as canonical JSON files."""
    from sluice.core.export import SchemaExporter

    _, pipeline = _load(ctx, settings)
    exporter = SchemaExporter(export_path, include_regex=include_regex, exclude_regex=exclude_regex, update_stats=update_stats)
    summary = exporter.export(pipeline.registry.data_objects())
    typer.echo(f"Exported {len(summary.exported)} DataObject(s): {len(summary.written)} file(s) written, {summary.unchanged} unchanged")


plugins_app = typer.Typer(help="Inspect registered plugin types.")
app.add_typer(plugins_app, name="plugins")


@plugins_app.command("list")
def plugins_list(
    plugin_type: str | None = typer.Option(None, "--type", "-t", help=f"Only this kind ({', '.join(PLUGIN_KINDS)})."),
) -> None:
    """List plugin types usable in settings files."""
    if plugin_type is not None and plugin_type not in PLUGIN_KINDS:
        typer.echo(f"Error: Invalid type '{plugin_type}'. Valid types: {', '.join(PLUGIN_KINDS)}", err=True)
        raise typer.Exit(1)

    specs = plugin_manager().plugin_specs()
    for kind in [plugin_type] if plugin_type else PLUGIN_KINDS:
        typer.echo(f"\n{kind.upper()}S:")
        matching = [s for s in specs if s.kind == kind]
        for spec in matching:
            typer.echo(f"  {spec.name:28} - {spec.description}")
        if not matching:
            typer.echo("  (none available)")
    typer.echo()


if __name__ == "__main__":
    app()

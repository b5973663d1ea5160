# src/sluice/engine/__init__.py
"""Execution engine: Actions, execution modes and two-phase DAG orchestration.

This module provides:
- Orchestrator: INIT then EXEC over the Action DAG
- build_pipeline: settings -> DataObjects + Actions
- Execution modes: which partitions or rows an Action processes
- RetryManager: Retry logic with tenacity for DataObject I/O

Example:
    from sluice.core.config import load_settings
    from sluice.engine import build_pipeline
    from sluice.plugins.manager import PluginManager

    manager = PluginManager()
    manager.register_builtin_plugins()

    pipeline = build_pipeline(load_settings(Path("pipeline.yaml")), manager)
    result = pipeline.create_orchestrator().run()
"""

from sluice.engine.builder import Pipeline, build_pipeline, resolve_transformer
from sluice.engine.context import ActionPipelineContext
from sluice.engine.metrics import CollectingMetricsSink, LoggingMetricsSink, MetricsSink
from sluice.engine.modes import (
    ExecutionMode,
    FailIfNoPartitionValuesMode,
    IncrementalMode,
    PartitionDiffMode,
    ProcessAllMode,
)
from sluice.engine.orchestrator import Orchestrator
from sluice.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager

__all__ = [
    "ActionPipelineContext",
    "CollectingMetricsSink",
    "ExecutionMode",
    "FailIfNoPartitionValuesMode",
    "IncrementalMode",
    "LoggingMetricsSink",
    "MaxRetriesExceeded",
    "MetricsSink",
    "Orchestrator",
    "PartitionDiffMode",
    "Pipeline",
    "ProcessAllMode",
    "RetryConfig",
    "RetryManager",
    "build_pipeline",
    "resolve_transformer",
]

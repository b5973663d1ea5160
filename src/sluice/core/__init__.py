# src/sluice/core/__init__.py
"""Core infrastructure: Canonical JSON, Configuration, DAG, Registry, Logging, Export."""

from sluice.core.canonical import (
    canonical_json,
    compute_topology_hash,
    stable_hash,
)
from sluice.core.config import (
    ActionSettings,
    ConcurrencySettings,
    DataObjectSettings,
    ExecutionModeSettings,
    LoggingSettings,
    RetrySettings,
    SluiceSettings,
    load_settings,
)
from sluice.core.dag import ActionDAG, DagCycleError, DagValidationError, NodeInfo
from sluice.core.logging import configure_logging
from sluice.core.registry import InstanceRegistry

__all__ = [
    "ActionDAG",
    "ActionSettings",
    "ConcurrencySettings",
    "DagCycleError",
    "DagValidationError",
    "DataObjectSettings",
    "ExecutionModeSettings",
    "InstanceRegistry",
    "LoggingSettings",
    "NodeInfo",
    "RetrySettings",
    "SluiceSettings",
    "canonical_json",
    "compute_topology_hash",
    "configure_logging",
    "load_settings",
    "stable_hash",
]

"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings classes are NOT re-exported here - import them from sluice.core.config.

Import patterns:
    from sluice.contracts import DataFrameSubFeed, PartitionValues, Proceed, Skip
    from sluice.core.config import SluiceSettings
"""

from sluice.contracts.enums import ActionState, ExecutionPhase, NodeStatus, RunStatus
from sluice.contracts.errors import (
    ActionStateError,
    AmbiguousMainInputError,
    ConfigurationError,
    DagCycleError,
    DagValidationError,
    ExecutionModeError,
    ExpectationValidationError,
    FeedCountMismatchError,
    MaxRetriesExceeded,
    OutputValidationError,
    PartitionColumnsMismatchError,
    SchemaMismatchError,
    SluiceError,
    UnknownOutputError,
)
from sluice.contracts.partitions import PartitionValues, dedupe, format_partition_values, project
from sluice.contracts.results import (
    ActionOutcome,
    ModeDecision,
    NodeResult,
    Outcome,
    PartitionSelection,
    Proceed,
    RunResult,
    Skip,
    WriteResult,
)
from sluice.contracts.subfeed import DataFrameSubFeed, FileSubFeed, InitSubFeed, SubFeed
from sluice.contracts.types import ActionId, DataObjectId

__all__ = [
    "ActionId",
    "ActionOutcome",
    "ActionState",
    "ActionStateError",
    "AmbiguousMainInputError",
    "ConfigurationError",
    "DagCycleError",
    "DagValidationError",
    "DataFrameSubFeed",
    "DataObjectId",
    "ExecutionModeError",
    "ExecutionPhase",
    "ExpectationValidationError",
    "FeedCountMismatchError",
    "FileSubFeed",
    "InitSubFeed",
    "MaxRetriesExceeded",
    "ModeDecision",
    "NodeResult",
    "NodeStatus",
    "Outcome",
    "OutputValidationError",
    "PartitionColumnsMismatchError",
    "PartitionSelection",
    "PartitionValues",
    "Proceed",
    "RunResult",
    "RunStatus",
    "SchemaMismatchError",
    "Skip",
    "SluiceError",
    "SubFeed",
    "UnknownOutputError",
    "WriteResult",
    "dedupe",
    "format_partition_values",
    "project",
]

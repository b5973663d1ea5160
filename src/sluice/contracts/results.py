# src/sluice/contracts/results.py
"""Operation outcomes and results.

These types answer: "What did an operation produce?"

Proceed / Skip replace control-flow exceptions. An execution mode that
finds nothing to process returns Skip; an Action that skips returns Skip
carrying well-formed empty output feeds, which the engine routes
downstream exactly like a normal result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sluice.contracts.enums import ExecutionPhase, NodeStatus, RunStatus
from sluice.contracts.partitions import PartitionValues
from sluice.contracts.subfeed import SubFeed
from sluice.contracts.types import ActionId

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Proceed(Generic[T]):
    """Continue with ``value``."""

    value: T


@dataclass(frozen=True, slots=True)
class Skip(Generic[T]):
    """Nothing to process. Not a failure.

    ``fallback`` is what the caller hands on instead of a real result.
    """

    fallback: T
    reason: str = "no data to process"


type Outcome[T] = Proceed[T] | Skip[T]

type ActionOutcome = Outcome[list[SubFeed]]
"""Result of Action.init / Action.exec."""


@dataclass(frozen=True, slots=True)
class PartitionSelection:
    """What an execution mode selected for processing."""

    partition_values: tuple[PartitionValues, ...] = ()
    filter: str | None = None


type ModeDecision = Outcome[PartitionSelection | None]
"""Execution mode result. Proceed(None) means 'leave the feed unchanged'."""


@dataclass(frozen=True, slots=True)
class WriteResult:
    """What a DataObject committed.

    Attributes:
        partition_values: Partitions written (empty for unpartitioned outputs)
        metrics: Adapter metrics, e.g. rows_written, files_written
        no_data: True if there was nothing to write
    """

    partition_values: tuple[PartitionValues, ...] = ()
    metrics: dict[str, Any] = field(default_factory=dict)
    no_data: bool = False


@dataclass(frozen=True, slots=True)
class NodeResult:
    """Outcome of one Action in one phase."""

    action_id: ActionId
    phase: ExecutionPhase
    status: NodeStatus
    outputs: tuple[SubFeed, ...] = ()
    error: BaseException | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status in (NodeStatus.SUCCEEDED, NodeStatus.NO_DATA)


@dataclass
class RunResult:
    """Result of a pipeline run (both phases)."""

    run_id: str
    status: RunStatus
    init_results: dict[ActionId, NodeResult] = field(default_factory=dict)
    exec_results: dict[ActionId, NodeResult] = field(default_factory=dict)

    def node_statuses(self) -> dict[ActionId, NodeStatus]:
        """Final status per Action: exec status if it ran, else init status."""
        statuses = {action_id: result.status for action_id, result in self.init_results.items()}
        statuses.update({action_id: result.status for action_id, result in self.exec_results.items()})
        return statuses

    @property
    def failed_actions(self) -> list[ActionId]:
        return [action_id for action_id, status in self.node_statuses().items() if status == NodeStatus.FAILED]

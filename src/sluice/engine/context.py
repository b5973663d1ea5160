# src/sluice/engine/context.py
"""ActionPipelineContext: what an Action can see of the run it belongs to."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sluice.contracts import ExecutionPhase

if TYPE_CHECKING:
    from sluice.core.registry import InstanceRegistry
    from sluice.engine.metrics import MetricsSink


@dataclass(frozen=True, slots=True)
class ActionPipelineContext:
    """Run-scoped context handed to Action.init / exec / post_exec.

    Attributes:
        run_id: Identifier of the current run
        phase: Phase the call belongs to
        registry: DataObjects and Actions of the pipeline
        metrics_sink: Receives write metrics (None disables reporting)
    """

    run_id: str
    phase: ExecutionPhase
    registry: InstanceRegistry
    metrics_sink: MetricsSink | None = None

# src/sluice/engine/orchestrator.py
"""Orchestrator: two-phase execution of an Action DAG.

A run has two traversals of the same graph:

    INIT  every Action plans (execution mode, schema-only transform,
          output validation). Nothing is written.
    EXEC  every Action that survived INIT reads, transforms and writes.

Both traversals visit Actions in the same order and route feeds the same
way: each Action's output SubFeeds are stored in a routing table keyed by
DataObject id, and an Action receives the current feed for each of its
input ids. Inputs no Action produces are seeded with a DAG start feed.

Concurrency:
    Actions whose predecessors have all finished run in a thread pool of
    max_workers threads. Ready Actions are started in topological order,
    so with max_workers=1 the visiting order is exactly
    ActionDAG.topological_order(). The routing table and the result maps
    are only touched by the coordinating thread.

Failure handling:
    An exception in an Action fails that node and cancels its descendants.
    Independent branches keep running. Actions that failed or were
    cancelled during INIT are not executed.
"""

from __future__ import annotations

import contextvars
import time
import uuid
from collections.abc import Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

import structlog

from sluice.contracts import (
    ActionId,
    ConfigurationError,
    DataObjectId,
    ExecutionPhase,
    InitSubFeed,
    NodeResult,
    NodeStatus,
    PartitionValues,
    RunResult,
    RunStatus,
    Skip,
    SubFeed,
)
from sluice.core.canonical import compute_topology_hash
from sluice.core.dag import ActionDAG
from sluice.core.registry import InstanceRegistry
from sluice.engine.context import ActionPipelineContext

if TYPE_CHECKING:
    from sluice.engine.actions.base import Action
    from sluice.engine.metrics import MetricsSink

logger = structlog.get_logger(__name__)


class Orchestrator:
    """Runs a DAG of Actions.

    The graph is built and validated on construction: a dependency cycle
    raises DagCycleError before any Action is initialized.

    Example:
        orchestrator = Orchestrator(actions, registry, max_workers=4)
        result = orchestrator.run(partition_values=[PartitionValues(dt="20240101")])
        if result.status != RunStatus.COMPLETED:
            print(result.failed_actions)
    """

    def __init__(
        self,
        actions: Sequence[Action],
        registry: InstanceRegistry | None = None,
        *,
        max_workers: int = 1,
        metrics_sink: MetricsSink | None = None,
    ) -> None:
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {max_workers}")
        self._dag: ActionDAG[Action] = ActionDAG(actions)
        self._registry = registry if registry is not None else InstanceRegistry()
        self._max_workers = max_workers
        self._metrics_sink = metrics_sink

    @property
    def dag(self) -> ActionDAG[Action]:
        return self._dag

    def run(self, run_id: str | None = None, partition_values: Sequence[PartitionValues] = ()) -> RunResult:
        """Execute INIT then EXEC over the whole graph.

        Args:
            run_id: Identifier of the run (random if None)
            partition_values: Seed partition values of the DAG start feeds

        Returns:
            RunResult with per-phase node results and overall status
        """
        run_id = run_id or uuid.uuid4().hex
        with structlog.contextvars.bound_contextvars(run_id=run_id):
            logger.info(
                "run_started",
                actions=self._dag.node_count,
                topology_hash=compute_topology_hash(self._dag),
                max_workers=self._max_workers,
            )
            started = time.perf_counter()
            for action in self._dag.actions_in_order():
                action.reset()

            start_feeds: dict[DataObjectId, SubFeed] = {
                input_id: InitSubFeed(data_object_id=input_id, partition_values=tuple(partition_values), is_dag_start=True)
                for input_id in self._dag.start_inputs()
            }

            init_results = self._run_phase(run_id, ExecutionPhase.INIT, start_feeds, excluded=set())
            excluded = {action_id for action_id, result in init_results.items() if not result.succeeded}
            exec_results = self._run_phase(run_id, ExecutionPhase.EXEC, start_feeds, excluded=excluded)

            result = RunResult(run_id=run_id, status=RunStatus.COMPLETED, init_results=init_results, exec_results=exec_results)
            result.status = _run_status(result)
            logger.info(
                "run_finished",
                status=result.status,
                duration_seconds=round(time.perf_counter() - started, 3),
                failed_actions=result.failed_actions,
            )
            return result

    def _run_phase(
        self,
        run_id: str,
        phase: ExecutionPhase,
        start_feeds: dict[DataObjectId, SubFeed],
        excluded: set[ActionId],
    ) -> dict[ActionId, NodeResult]:
        context = ActionPipelineContext(run_id=run_id, phase=phase, registry=self._registry, metrics_sink=self._metrics_sink)
        order = [action_id for action_id in self._dag.topological_order() if action_id not in excluded]
        routing: dict[DataObjectId, SubFeed] = dict(start_feeds)
        results: dict[ActionId, NodeResult] = {}
        running: dict[Future[NodeResult], ActionId] = {}
        log = logger.bind(phase=phase)
        log.info("phase_started", actions=len(order))

        def ready(action_id: ActionId) -> bool:
            return action_id not in results and all(p in results for p in self._dag.predecessors(action_id))

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix=f"sluice-{phase}") as pool:
            while True:
                for action_id in order:
                    if len(running) >= self._max_workers:
                        break
                    if action_id in running.values() or not ready(action_id):
                        continue
                    action = self._dag.get_action(action_id)
                    sub_feeds = [routing[input_id] for input_id in action.input_ids]
                    # Workers don't inherit context variables such as the bound run_id.
                    worker_context = contextvars.copy_context()
                    running[pool.submit(worker_context.run, _run_action, action, sub_feeds, context)] = action_id

                if not running:
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda f: order.index(running[f])):
                    action_id = running.pop(future)
                    result = future.result()
                    results[action_id] = result
                    if result.succeeded:
                        for feed in result.outputs:
                            routing[feed.data_object_id] = feed
                    else:
                        self._cancel_descendants(action_id, phase, results)

        log.info(
            "phase_finished",
            succeeded=sum(1 for r in results.values() if r.status == NodeStatus.SUCCEEDED),
            no_data=sum(1 for r in results.values() if r.status == NodeStatus.NO_DATA),
            failed=sum(1 for r in results.values() if r.status == NodeStatus.FAILED),
            cancelled=sum(1 for r in results.values() if r.status == NodeStatus.CANCELLED),
        )
        return results

    def _cancel_descendants(self, action_id: ActionId, phase: ExecutionPhase, results: dict[ActionId, NodeResult]) -> None:
        for descendant in sorted(self._dag.descendants(action_id)):
            if descendant in results:
                continue
            results[descendant] = NodeResult(action_id=descendant, phase=phase, status=NodeStatus.CANCELLED)
            logger.warning("action_cancelled", action_id=descendant, phase=phase, failed_upstream=action_id)


def _run_action(action: Action, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> NodeResult:
    """Run one phase of one Action. Never raises; failures become FAILED results."""
    phase = context.phase
    started = time.perf_counter()
    try:
        if phase == ExecutionPhase.INIT:
            outcome = action.init(sub_feeds, context)
        else:
            outcome = action.exec(sub_feeds, context)
        outputs = list(outcome.fallback if isinstance(outcome, Skip) else outcome.value)
        _check_outputs(action, outputs)
        if phase == ExecutionPhase.EXEC and not isinstance(outcome, Skip):
            action.post_exec(sub_feeds, outputs, context)
    except Exception as e:
        logger.error(
            "action_failed",
            action_id=action.id,
            phase=phase,
            input_ids=[f.data_object_id for f in sub_feeds],
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return NodeResult(
            action_id=action.id,
            phase=phase,
            status=NodeStatus.FAILED,
            error=e,
            duration_seconds=time.perf_counter() - started,
        )

    status = NodeStatus.NO_DATA if isinstance(outcome, Skip) else NodeStatus.SUCCEEDED
    duration = time.perf_counter() - started
    logger.info("action_finished", action_id=action.id, phase=phase, status=status, duration_seconds=round(duration, 3))
    return NodeResult(
        action_id=action.id,
        phase=phase,
        status=status,
        outputs=tuple(outputs),
        duration_seconds=duration,
    )


def _check_outputs(action: Action, outputs: Sequence[SubFeed]) -> None:
    returned = sorted(f.data_object_id for f in outputs)
    if returned != sorted(action.output_ids):
        raise ConfigurationError(
            f"({action.id}) returned subfeeds for {', '.join(returned) or '<none>'}, "
            f"expected exactly one per output: {', '.join(action.output_ids)}"
        )


def _run_status(result: RunResult) -> RunStatus:
    statuses = list(result.node_statuses().values())
    failed = any(s in (NodeStatus.FAILED, NodeStatus.CANCELLED) for s in statuses)
    if not failed:
        return RunStatus.COMPLETED
    if any(s in (NodeStatus.SUCCEEDED, NodeStatus.NO_DATA) for s in statuses):
        return RunStatus.PARTIAL_FAILURE
    return RunStatus.FAILED

# src/sluice/engine/actions/base.py
"""Action: one node of the DAG.

An Action reads one or more input DataObjects and writes one or more output
DataObjects. It is driven by the orchestrator through a two-phase contract:

    init(sub_feeds, ctx)      plan: resolve the execution mode, prepare and
                              transform schema-only data, validate outputs.
                              Never writes.
    exec(sub_feeds, ctx)      run: same preparation on real data, then write
    post_exec(ins, outs, ctx) optional bookkeeping after a successful exec

Lifecycle (sluice.contracts.ActionState):
    CREATED -> INITIALIZED -> EXECUTED -> POST_EXECUTED
    reset() returns to CREATED before the next run.

Both init and exec return an ActionOutcome. Skip carries well-formed, empty
output feeds which the orchestrator routes downstream like any result.

The execution mode decision is computed in init, memoized, and reused by
exec without re-evaluation. A decision computed against storage in INIT
stays valid for EXEC of the same run because the orchestrator visits the
graph in the same order in both phases.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

import pandas as pd
import structlog

from sluice.contracts import (
    ActionId,
    ActionOutcome,
    ActionState,
    ActionStateError,
    AmbiguousMainInputError,
    ConfigurationError,
    DataFrameSubFeed,
    DataObjectId,
    ExecutionPhase,
    ExpectationValidationError,
    FeedCountMismatchError,
    FileSubFeed,
    ModeDecision,
    PartitionSelection,
    Proceed,
    Skip,
    SubFeed,
    UnknownOutputError,
    WriteResult,
    format_partition_values,
)
from sluice.engine.metrics import report_write
from sluice.plugins.config_base import PluginConfig
from sluice.plugins.expectations import ExpectationResult, ExpectationSeverity

if TYPE_CHECKING:
    from sluice.engine.context import ActionPipelineContext
    from sluice.engine.modes import ExecutionMode
    from sluice.plugins.protocols import CanReadProtocol, CanWriteProtocol, DataObjectProtocol

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ActionMetadata:
    """Descriptive information, not used for execution."""

    name: str | None = None
    description: str | None = None
    feed: str | None = None


class Action(ABC):
    """Base class of all Actions.

    Subclasses set ``name`` (the plugin type used in configuration) and
    ``sub_feed_type`` (the SubFeed kind they work with), optionally
    ``options_model`` (typed options, unknown keys are rejected) and
    ``requires_transformer``, and implement
    _init() and _exec(). init()/exec()/post_exec() own the feed-count and
    lifecycle checks.
    """

    name: ClassVar[str] = ""
    sub_feed_type: ClassVar[type[DataFrameSubFeed] | type[FileSubFeed]] = DataFrameSubFeed
    options_model: ClassVar[type[PluginConfig]] = PluginConfig
    requires_transformer: ClassVar[bool] = False

    def __init__(
        self,
        action_id: str,
        *,
        inputs: Sequence[CanReadProtocol],
        outputs: Sequence[CanWriteProtocol],
        execution_mode: ExecutionMode | None = None,
        break_lineage: bool = False,
        persist: bool = False,
        metadata: ActionMetadata | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        if not inputs:
            raise ConfigurationError(f"({action_id}) needs at least one input")
        if not outputs:
            raise ConfigurationError(f"({action_id}) needs at least one output")
        self._id = ActionId(action_id)
        self._inputs = tuple(inputs)
        self._outputs = tuple(outputs)
        self.execution_mode = execution_mode
        self.break_lineage = break_lineage
        self.persist = persist
        self.metadata = metadata or ActionMetadata()
        self.options = self.options_model.from_dict(options)

        explicit_input = execution_mode.main_input_id if execution_mode else None
        explicit_output = execution_mode.main_output_id if execution_mode else None
        self._main_input = self._select_main("input", self._inputs, explicit_input)
        self._main_output = self._select_main("output", self._outputs, explicit_output)

        self._state = ActionState.CREATED
        self._mode_decision: ModeDecision | None = None
        self._state_lock = threading.Lock()
        self._log = logger.bind(action_id=self._id)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self._id!r}, inputs={list(self.input_ids)!r}, outputs={list(self.output_ids)!r})"

    # === Declaration ===

    @property
    def id(self) -> ActionId:
        return self._id

    @property
    def inputs(self) -> tuple[CanReadProtocol, ...]:
        return self._inputs

    @property
    def outputs(self) -> tuple[CanWriteProtocol, ...]:
        return self._outputs

    @property
    def input_ids(self) -> tuple[DataObjectId, ...]:
        return tuple(i.id for i in self._inputs)

    @property
    def output_ids(self) -> tuple[DataObjectId, ...]:
        return tuple(o.id for o in self._outputs)

    @property
    def state(self) -> ActionState:
        return self._state

    @property
    def mode_decision(self) -> ModeDecision | None:
        """Execution mode decision memoized by the last init(), None before."""
        return self._mode_decision

    def _select_main[D: DataObjectProtocol](self, kind: str, candidates: Sequence[D], explicit_id: str | None) -> D | None:
        """Explicit id > unique partitioned candidate > sole candidate > undefined."""
        if explicit_id is not None:
            for candidate in candidates:
                if candidate.id == explicit_id:
                    return candidate
            known = ", ".join(c.id for c in candidates)
            raise ConfigurationError(
                f"({self._id}) execution mode sets main_{kind}_id '{explicit_id}', which is not one of its {kind}s: {known}"
            )
        partitioned = [c for c in candidates if c.partitions]
        if len(partitioned) == 1:
            return partitioned[0]
        if len(candidates) == 1:
            return candidates[0]
        return None

    @property
    def main_input(self) -> CanReadProtocol | None:
        return self._main_input

    @property
    def main_output(self) -> CanWriteProtocol | None:
        return self._main_output

    def require_main_input(self) -> CanReadProtocol:
        if self._main_input is None:
            raise AmbiguousMainInputError(self._id, "input", self._ambiguous_candidates(self._inputs))
        return self._main_input

    def require_main_output(self) -> CanWriteProtocol:
        if self._main_output is None:
            raise AmbiguousMainInputError(self._id, "output", self._ambiguous_candidates(self._outputs))
        return self._main_output

    @staticmethod
    def _ambiguous_candidates(candidates: Sequence[DataObjectProtocol]) -> list[str]:
        partitioned = [c.id for c in candidates if c.partitions]
        return partitioned if len(partitioned) > 1 else [c.id for c in candidates]

    # === Lifecycle ===

    def reset(self) -> None:
        """Forget state and the memoized decision of the previous run."""
        with self._state_lock:
            self._state = ActionState.CREATED
            self._mode_decision = None

    def _transition(self, allowed: Sequence[ActionState], target: ActionState, operation: str) -> None:
        with self._state_lock:
            if self._state not in allowed:
                expected = " or ".join(s.value for s in allowed)
                raise ActionStateError(f"({self._id}) cannot {operation} in state {self._state.value}, expected {expected}")
            self._state = target

    def _check_feed_count(self, sub_feeds: Sequence[SubFeed]) -> None:
        if len(sub_feeds) != len(self._inputs):
            raise FeedCountMismatchError(self._id, len(self._inputs), [f.data_object_id for f in sub_feeds])

    def init(self, sub_feeds: Sequence[SubFeed], context: ActionPipelineContext) -> ActionOutcome:
        """Plan this Action for the run. Never writes."""
        self._check_feed_count(sub_feeds)
        with self._state_lock:
            if self._state not in (ActionState.CREATED, ActionState.INITIALIZED):
                raise ActionStateError(f"({self._id}) cannot init in state {self._state.value}, call reset() first")
        outcome = self._init(list(sub_feeds), context)
        self._transition((ActionState.CREATED, ActionState.INITIALIZED), ActionState.INITIALIZED, "init")
        return outcome

    def exec(self, sub_feeds: Sequence[SubFeed], context: ActionPipelineContext) -> ActionOutcome:
        """Run this Action and write its outputs. Requires a preceding init()."""
        self._check_feed_count(sub_feeds)
        with self._state_lock:
            if self._state != ActionState.INITIALIZED or self._mode_decision is None:
                raise ActionStateError(f"({self._id}) cannot exec in state {self._state.value}, init must run first")
        outcome = self._exec(list(sub_feeds), context)
        self._transition((ActionState.INITIALIZED,), ActionState.EXECUTED, "exec")
        return outcome

    def post_exec(self, input_feeds: Sequence[SubFeed], output_feeds: Sequence[SubFeed], context: ActionPipelineContext) -> None:
        """Bookkeeping after a successful exec. No-op unless overridden."""
        self._transition((ActionState.EXECUTED,), ActionState.POST_EXECUTED, "post_exec")
        self._post_exec(list(input_feeds), list(output_feeds), context)

    @abstractmethod
    def _init(self, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> ActionOutcome: ...

    @abstractmethod
    def _exec(self, sub_feeds: list[SubFeed], context: ActionPipelineContext) -> ActionOutcome: ...

    def _post_exec(self, input_feeds: list[SubFeed], output_feeds: list[SubFeed], context: ActionPipelineContext) -> None:
        return None

    # === Execution mode ===

    def _main_feed[F: SubFeed](self, sub_feeds: Sequence[F]) -> F | None:
        """The feed of the main input, None if there is no main input."""
        if self._main_input is None:
            return None
        return next((f for f in sub_feeds if f.data_object_id == self._main_input.id), None)

    def _decide(self, sub_feeds: Sequence[SubFeed], main_feed: SubFeed | None) -> ModeDecision:
        """Compute the execution mode decision once per run and memoize it.

        The Action is skipped only when every input feed is skipped.
        """
        if self._mode_decision is not None:
            return self._mode_decision
        skipped = [f.data_object_id for f in sub_feeds if f.is_skipped]
        decision: ModeDecision
        if skipped and len(skipped) == len(sub_feeds):
            decision = Skip(None, reason=f"no data in input(s) {', '.join(skipped)}")
        elif self.execution_mode is None:
            decision = Proceed(None)
        else:
            main_input = self.require_main_input()
            main_output = self.require_main_output()
            if main_feed is None:
                raise ConfigurationError(f"({self._id}) no subfeed for main input {main_input.id}")
            decision = self.execution_mode.evaluate(self._id, main_input, main_output, main_feed)
        if isinstance(decision, Skip):
            self._log.info("no_data_to_process", reason=decision.reason)
        self._mode_decision = decision
        return decision

    def _reset_skipped[F: SubFeed](self, sub_feeds: Sequence[F]) -> list[F]:
        """Skipped feeds of an Action that runs anyway are read from storage."""
        reset = [f.data_object_id for f in sub_feeds if f.is_skipped]
        if reset:
            self._log.info("skipped_inputs_reset", data_object_ids=reset)
        return [f.clear_skipped() for f in sub_feeds]

    def _apply_decision[F: SubFeed](self, sub_feed: F, decision: Proceed[object]) -> F:
        """Override partition values and filter of the main input feed."""
        selection = decision.value
        if selection is None:
            return sub_feed
        if not isinstance(selection, PartitionSelection):
            raise TypeError(
                f"({self._id}) execution mode {self.execution_mode!r} selected {type(selection).__name__}, expected PartitionSelection"
            )
        # The selection may differ from what an upstream frame holds.
        updated = sub_feed.break_lineage().with_partition_values(selection.partition_values)
        if isinstance(updated, DataFrameSubFeed):
            updated = updated.with_filter(selection.filter)
        return updated

    def _skipped_outputs(self) -> list[SubFeed]:
        """Empty, flagged output feeds handed downstream instead of results."""
        return [self.sub_feed_type(data_object_id=output.id).as_skipped() for output in self._outputs]

    # === Input preparation ===

    def _to_native(self, sub_feed: SubFeed) -> SubFeed:
        """Convert a feed of any kind to the kind this Action works with."""
        return self.sub_feed_type.from_generic(sub_feed)

    def _prepare_input[F: SubFeed](self, data_object: CanReadProtocol, sub_feed: F, phase: ExecutionPhase) -> F:
        prepared = data_object.prepare_for_read(sub_feed, phase)
        if not isinstance(prepared, type(sub_feed)):
            raise TypeError(
                f"({self._id}) {data_object.id}.prepare_for_read returned {type(prepared).__name__} for a {type(sub_feed).__name__}"
            )
        return prepared

    def _enrich_input[F: SubFeed](self, data_object: CanReadProtocol, sub_feed: F, phase: ExecutionPhase) -> F:
        """Attach data to the feed if it doesn't carry any yet."""
        if not isinstance(sub_feed, DataFrameSubFeed):
            return sub_feed
        if sub_feed.data_frame is None:
            return sub_feed.with_data_frame(data_object.materialize(sub_feed, phase))
        if sub_feed.filter:
            return sub_feed.with_data_frame(sub_feed.data_frame.query(sub_feed.filter))
        return sub_feed

    def _apply_flags[F: SubFeed](self, sub_feed: F) -> F:
        """Break lineage before enrichment so the input is re-read from storage."""
        if self.break_lineage:
            return sub_feed.break_lineage()
        return sub_feed

    # === Output handling ===

    def _find_output(self, data_object_id: str) -> CanWriteProtocol:
        for output in self._outputs:
            if output.id == data_object_id:
                return output
        raise UnknownOutputError(self._id, data_object_id, self.output_ids)

    @staticmethod
    def _project_to_output[F: SubFeed](output: CanWriteProtocol, sub_feed: F) -> F:
        """Relabel partition values to the columns the output supports.

        A row filter belongs to the input it was selected for and was applied
        when that input was read, so it never travels past this Action.
        """
        if isinstance(sub_feed, DataFrameSubFeed) and sub_feed.filter is not None:
            sub_feed = sub_feed.with_filter(None)
        if not output.partitions:
            return sub_feed.clear_partition_values()
        return sub_feed.update_partition_values(output.partitions)

    def _data_frame_feed(self, sub_feed: SubFeed, operation: str) -> DataFrameSubFeed:
        if not isinstance(sub_feed, DataFrameSubFeed):
            raise TypeError(f"({self._id}) cannot {operation} a {type(sub_feed).__name__}, expected DataFrameSubFeed")
        return sub_feed

    def _validate_output(self, output: CanWriteProtocol, sub_feed: SubFeed) -> None:
        feed = self._data_frame_feed(sub_feed, f"validate {output.id} from")
        data_frame = feed.data_frame if feed.data_frame is not None else pd.DataFrame()
        output.validate(data_frame, feed.partition_values)

    def _write_output(self, output: CanWriteProtocol, sub_feed: SubFeed) -> WriteResult:
        feed = self._data_frame_feed(sub_feed, f"write {output.id} from")
        if feed.data_frame is None:
            raise ConfigurationError(f"({self._id}) subfeed for output {output.id} carries no DataFrame to write")
        return output.write(feed.data_frame, feed.partition_values)

    def _check_expectations(self, output: CanWriteProtocol, sub_feed: SubFeed) -> list[ExpectationResult]:
        if not isinstance(sub_feed, DataFrameSubFeed) or sub_feed.data_frame is None:
            return []
        return output.evaluate_expectations(sub_feed.data_frame)

    def _write(self, output: CanWriteProtocol, sub_feed: SubFeed, context: ActionPipelineContext) -> SubFeed:
        """Write one output, log and report duration, metrics and expectation results.

        Returns the feed with the committed partition values.

        Raises:
            ExpectationValidationError: If an expectation of severity error
                failed; the data is written and its metrics reported first
        """
        log = self._log.bind(data_object_id=output.id)
        if sub_feed.partition_values:
            log.info("start_writing", partition_values=format_partition_values(sub_feed.partition_values))
        else:
            log.info("start_writing")
        started = time.perf_counter()
        result = self._write_output(output, sub_feed)
        duration = time.perf_counter() - started
        checks = self._check_expectations(output, sub_feed)
        metrics = {**result.metrics, **{check.name: check.value for check in checks}}
        if result.no_data:
            log.info("finished_writing", duration_seconds=round(duration, 3), status="no data found")
        else:
            log.info("finished_writing", duration_seconds=round(duration, 3), **metrics)
        report_write(context.metrics_sink, self._id, output.id, duration, metrics)

        failed = [check for check in checks if check.failed]
        for check in failed:
            log.warning("expectation_failed", expectation=check.name, value=check.value, expected=check.expectation, severity=check.severity)
        errors = [check for check in failed if check.severity == ExpectationSeverity.ERROR]
        if errors:
            raise ExpectationValidationError(output.id, [check.describe() for check in errors])
        return self._project_to_output(output, sub_feed.with_partition_values(result.partition_values))

    def _finish_outputs(self, sub_feeds: Sequence[SubFeed]) -> list[SubFeed]:
        """Output feeds as returned to the orchestrator."""
        if self.break_lineage:
            return [f.break_lineage() for f in sub_feeds]
        return list(sub_feeds)

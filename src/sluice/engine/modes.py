# src/sluice/engine/modes.py
"""Execution modes: decide which data an Action processes in a run.

An execution mode is evaluated once per Action and run, during INIT, for
the Action's main input feed. The decision is memoized on the Action and
reused unchanged during EXEC.

Outcomes (see sluice.contracts.results):
    Proceed(None)                   leave partition values and filter as they are
    Proceed(PartitionSelection(..)) replace them with the selection
    Skip(None, reason)              nothing to process, not a failure

A mode refusing to run at all raises ExecutionModeError.

Modes that compare stored input and output data (partition_diff,
incremental) only decide for feeds at the start of the DAG. A feed produced
upstream in the same run refers to data that isn't written yet when INIT
runs, so such feeds pass through unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np
import structlog
from pydantic import Field

from sluice.contracts import (
    ConfigurationError,
    ExecutionModeError,
    ModeDecision,
    PartitionSelection,
    PartitionValues,
    Proceed,
    Skip,
    SubFeed,
    dedupe,
)
from sluice.plugins.config_base import PluginConfig

if TYPE_CHECKING:
    from sluice.plugins.protocols import CanReadProtocol, CanWriteProtocol

logger = structlog.get_logger(__name__)


class ExecutionMode(ABC):
    """Base class of execution modes.

    Args:
        main_input_id: Explicit main input of the Action (overrides the
            automatic selection)
        main_output_id: Explicit main output of the Action
        options: Mode specific options
    """

    name: ClassVar[str] = ""

    def __init__(
        self,
        *,
        main_input_id: str | None = None,
        main_output_id: str | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        self.main_input_id = main_input_id
        self.main_output_id = main_output_id
        self._options = dict(options or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}(main_input_id={self.main_input_id!r}, main_output_id={self.main_output_id!r})"

    @abstractmethod
    def evaluate(
        self,
        action_id: str,
        main_input: CanReadProtocol,
        main_output: CanWriteProtocol,
        sub_feed: SubFeed,
    ) -> ModeDecision:
        """Decide what the Action processes, given its main input feed."""


class PartitionDiffOptions(PluginConfig):
    nb_of_partition_values_per_run: int | None = Field(default=None, gt=0)


class PartitionDiffMode(ExecutionMode):
    """Process partitions present in the main input but missing in the main output.

    Partitions are compared on the partition columns both DataObjects
    share. Options:
        nb_of_partition_values_per_run: Process at most this many of the
            missing partitions per run (oldest first by sort order)
    """

    name = "partition_diff"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._limit = PartitionDiffOptions.from_dict(self._options).nb_of_partition_values_per_run

    def evaluate(
        self,
        action_id: str,
        main_input: CanReadProtocol,
        main_output: CanWriteProtocol,
        sub_feed: SubFeed,
    ) -> ModeDecision:
        if not sub_feed.is_dag_start or sub_feed.partition_values:
            return Proceed(None)
        if not main_input.partitions or not main_output.partitions:
            raise ConfigurationError(
                f"({action_id}) {self.name} needs partitioned main input and output, "
                f"got {main_input.id}{list(main_input.partitions)} and {main_output.id}{list(main_output.partitions)}"
            )
        common = [c for c in main_input.partitions if c in main_output.partitions]
        if not common:
            raise ConfigurationError(f"({action_id}) main input {main_input.id} and main output {main_output.id} share no partition columns")

        existing = {pv.filter_keys(common) for pv in main_output.list_partition_values()}
        candidates = dedupe(pv.filter_keys(common) for pv in main_input.list_partition_values())
        missing = sorted((pv for pv in candidates if pv not in existing), key=PartitionValues.sort_key)
        if self._limit is not None:
            missing = missing[: self._limit]
        if not missing:
            return Skip(None, reason=f"no new partitions in {main_input.id} compared to {main_output.id}")

        logger.info("partition_diff_selected", action_id=action_id, partition_values=[str(pv) for pv in missing])
        return Proceed(PartitionSelection(partition_values=tuple(missing)))


class IncrementalOptions(PluginConfig):
    compare_col: str


def _query_literal(value: Any) -> str:
    """Render a scalar as a literal usable in a pandas query expression."""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, datetime | date):
        return repr(value.isoformat())
    return repr(value)


class IncrementalMode(ExecutionMode):
    """Process rows whose compare column exceeds the main output's maximum.

    Options:
        compare_col: Column whose maximum is compared between main input
            and main output
    """

    name = "incremental"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.compare_col = IncrementalOptions.from_dict(self._options).compare_col

    def evaluate(
        self,
        action_id: str,
        main_input: CanReadProtocol,
        main_output: CanWriteProtocol,
        sub_feed: SubFeed,
    ) -> ModeDecision:
        if not sub_feed.is_dag_start:
            return Proceed(None)
        input_max = main_input.max_value(self.compare_col)
        if input_max is None:
            return Skip(None, reason=f"{main_input.id} has no data")
        output_max = main_output.max_value(self.compare_col)
        if output_max is None:
            return Proceed(PartitionSelection(partition_values=sub_feed.partition_values))
        if input_max <= output_max:
            return Skip(None, reason=f"no new data in {main_input.id} ({self.compare_col} <= {output_max})")

        filter_expression = f"`{self.compare_col}` > {_query_literal(output_max)}"
        logger.info("incremental_selected", action_id=action_id, filter=filter_expression)
        return Proceed(PartitionSelection(partition_values=sub_feed.partition_values, filter=filter_expression))


class FailIfNoPartitionValuesMode(ExecutionMode):
    """Refuse to run without partition values, e.g. to avoid accidental full loads."""

    name = "fail_if_no_partition_values"

    def evaluate(
        self,
        action_id: str,
        main_input: CanReadProtocol,
        main_output: CanWriteProtocol,
        sub_feed: SubFeed,
    ) -> ModeDecision:
        if not sub_feed.partition_values:
            raise ExecutionModeError(f"({action_id}) partition values are empty for main input {main_input.id}")
        return Proceed(None)


class ProcessAllMode(ExecutionMode):
    """Process all data, ignoring incoming partition values and filters."""

    name = "process_all"

    def evaluate(
        self,
        action_id: str,
        main_input: CanReadProtocol,
        main_output: CanWriteProtocol,
        sub_feed: SubFeed,
    ) -> ModeDecision:
        return Proceed(PartitionSelection())


BUILTIN_EXECUTION_MODES: tuple[type[ExecutionMode], ...] = (
    PartitionDiffMode,
    IncrementalMode,
    FailIfNoPartitionValuesMode,
    ProcessAllMode,
)

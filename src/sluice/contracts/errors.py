# src/sluice/contracts/errors.py
"""Exception taxonomy.

Configuration errors are fatal and never retried: they describe a pipeline
that cannot run as declared. The "no data to process" outcome is NOT an
exception; see sluice.contracts.results.Skip.

Adapter I/O errors are not wrapped here. They propagate unchanged from the
DataObject to the engine, which records them on the failing node.
"""

from __future__ import annotations

from collections.abc import Sequence


class SluiceError(Exception):
    """Base class for all errors raised by sluice itself."""


class ConfigurationError(SluiceError):
    """The pipeline is declared in a way that cannot be executed.

    Fatal. Never retried. Aborts the affected subgraph only.
    """


class FeedCountMismatchError(ConfigurationError):
    """An Action received a different number of SubFeeds than it declares inputs."""

    def __init__(self, action_id: str, expected: int, received: Sequence[str]) -> None:
        self.action_id = action_id
        self.expected = expected
        self.received = tuple(received)
        super().__init__(
            f"({action_id}) expected {expected} subfeed(s) matching its inputs, "
            f"got {len(self.received)}: {', '.join(self.received) or '<none>'}"
        )


class AmbiguousMainInputError(ConfigurationError):
    """An operation needs a main input/output but none can be determined."""

    def __init__(self, action_id: str, kind: str, candidates: Sequence[str]) -> None:
        self.action_id = action_id
        self.kind = kind
        self.candidates = tuple(candidates)
        super().__init__(
            f"({action_id}) main {kind} is ambiguous, candidates are {', '.join(self.candidates)}. "
            f"Set execution_mode.main_{kind}_id to select one."
        )


class UnknownOutputError(ConfigurationError):
    """A transform returned a SubFeed for a DataObject the Action doesn't declare."""

    def __init__(self, action_id: str, data_object_id: str, outputs: Sequence[str]) -> None:
        self.action_id = action_id
        self.data_object_id = data_object_id
        self.outputs = tuple(outputs)
        super().__init__(
            f"({action_id}) no output found for result {data_object_id}. Configured outputs are {', '.join(self.outputs)}."
        )


class DagValidationError(ConfigurationError):
    """The Action graph is malformed (duplicate ids, several producers of one DataObject)."""


class DagCycleError(DagValidationError):
    """The Action graph contains a dependency cycle."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(f"Action graph contains a cycle: {' -> '.join(self.cycle)}")


class ActionStateError(SluiceError):
    """An Action lifecycle method was called out of order (e.g. exec before init)."""


class ExecutionModeError(SluiceError):
    """An execution mode refused to select data for a run."""


class OutputValidationError(SluiceError):
    """The data an Action would write doesn't fit its output DataObject.

    Fatal for the node. Carries the diff of the offending columns.
    """

    kind = "columns"

    def __init__(self, data_object_id: str, *, missing: Sequence[str] = (), unexpected: Sequence[str] = ()) -> None:
        self.data_object_id = data_object_id
        self.missing = tuple(missing)
        self.unexpected = tuple(unexpected)
        parts = []
        if self.missing:
            parts.append(f"missing {self.kind} [{', '.join(self.missing)}]")
        if self.unexpected:
            parts.append(f"unexpected {self.kind} [{', '.join(self.unexpected)}]")
        super().__init__(f"({data_object_id}) {'; '.join(parts)}")


class PartitionColumnsMismatchError(OutputValidationError):
    """Partition columns of the data or partition values don't match the output."""

    kind = "partition columns"


class SchemaMismatchError(OutputValidationError):
    """Columns of the data don't match the schema declared on the output."""

    kind = "schema columns"


class MaxRetriesExceeded(SluiceError):
    """A DataObject I/O operation failed on every attempt."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempt(s): {last_error}")


class ExpectationValidationError(SluiceError):
    """Data written to a DataObject failed an expectation of severity error.

    Raised after the write, so the data and its metrics are kept for
    inspection.
    """

    def __init__(self, data_object_id: str, failures: Sequence[str]) -> None:
        self.data_object_id = data_object_id
        self.failures = tuple(failures)
        super().__init__(f"({data_object_id}) expectation(s) failed: {'; '.join(self.failures)}")

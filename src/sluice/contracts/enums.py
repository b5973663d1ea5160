"""All status codes, phases and states used across subsystem boundaries."""

from enum import StrEnum


class ExecutionPhase(StrEnum):
    """Phase of a pipeline run.

    INIT plans the whole DAG without writing anything. EXEC runs the same
    nodes in the same order and writes outputs.
    """

    INIT = "init"
    EXEC = "exec"


class ActionState(StrEnum):
    """Lifecycle state of a single Action within one run.

    Legal transitions:
        CREATED -> INITIALIZED -> EXECUTED -> POST_EXECUTED
    reset() returns any state to CREATED for the next run.
    """

    CREATED = "created"
    INITIALIZED = "initialized"
    EXECUTED = "executed"
    POST_EXECUTED = "post_executed"


class NodeStatus(StrEnum):
    """Outcome of one Action in one phase.

    Values:
        SUCCEEDED: The action produced its outputs
        NO_DATA: The execution mode found nothing to process (not a failure)
        FAILED: The action raised
        CANCELLED: An upstream action failed, so this one never ran
    """

    SUCCEEDED = "succeeded"
    NO_DATA = "no_data"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunStatus(StrEnum):
    """Overall status of a pipeline run."""

    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"

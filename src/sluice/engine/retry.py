# src/sluice/engine/retry.py
"""Retry of DataObject storage I/O.

The DAG itself never retries: an exception in a transform or write fails
the node. DataObjects wrap single storage calls (list a directory, read or
write one file) in RetryManager.execute_with_retry(), so one flaky call
doesn't fail the whole Action.

Attempts are spaced by exponential backoff with jitter. Every retry is
logged with the number of attempts left. When the last attempt fails,
MaxRetriesExceeded (a SluiceError) is raised with the last error attached.
Errors the predicate doesn't consider transient propagate unchanged on the
first attempt.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from sluice.contracts.errors import MaxRetriesExceeded

if TYPE_CHECKING:
    from sluice.core.config import RetrySettings

T = TypeVar("T")

logger = structlog.get_logger(__name__)

__all__ = ["MaxRetriesExceeded", "RetryConfig", "RetryManager", "is_transient_io_error"]


@dataclass(frozen=True)
class RetryConfig:
    """Backoff policy of one DataObject.

    max_attempts counts every try, the first one included.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 1.0
    exponential_base: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        return cls(max_attempts=1)

    @classmethod
    def from_settings(cls, settings: "RetrySettings") -> "RetryConfig":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            jitter=settings.jitter_seconds,
            exponential_base=settings.exponential_base,
        )


def is_transient_io_error(error: BaseException) -> bool:
    """OSErrors are transient unless the path is missing, of the wrong kind or forbidden."""
    permanent = (FileNotFoundError, NotADirectoryError, IsADirectoryError, PermissionError)
    return isinstance(error, OSError) and not isinstance(error, permanent)


class RetryManager:
    """Runs storage calls under a RetryConfig.

    Example:
        retry = RetryManager(RetryConfig(max_attempts=3))
        frame = retry.execute_with_retry(lambda: pd.read_csv(path), description=f"read {path}")
    """

    def __init__(self, config: RetryConfig) -> None:
        self._config = config

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _before_sleep(
        self,
        description: str,
        on_retry: Callable[[int, BaseException], None] | None,
    ) -> Callable[[RetryCallState], None]:
        def log_retry(state: RetryCallState) -> None:
            assert state.outcome is not None
            error = state.outcome.exception()
            assert error is not None
            logger.warning(
                "io_retry",
                operation=description,
                attempt=state.attempt_number,
                remaining_attempts=self._config.max_attempts - state.attempt_number,
                wait_seconds=round(state.next_action.sleep, 3) if state.next_action else None,
                error=str(error),
            )
            if on_retry is not None:
                on_retry(state.attempt_number, error)

        return log_retry

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        is_retryable: Callable[[BaseException], bool] = is_transient_io_error,
        on_retry: Callable[[int, BaseException], None] | None = None,
        description: str = "operation",
    ) -> T:
        """Call operation until it succeeds or the attempts are used up.

        Args:
            operation: Zero-argument storage call
            is_retryable: Whether an error is worth another attempt
            on_retry: Called with (attempt, error) before each retry
            description: Names the operation in log events and errors

        Raises:
            MaxRetriesExceeded: If every attempt failed with a retryable error
            Exception: The first non-retryable error, unchanged
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._config.max_attempts),
            wait=wait_exponential_jitter(
                initial=self._config.base_delay,
                max=self._config.max_delay,
                exp_base=self._config.exponential_base,
                jitter=self._config.jitter,
            ),
            retry=retry_if_exception(is_retryable),
            before_sleep=self._before_sleep(description, on_retry),
        )
        try:
            return retrying(operation)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            assert last_error is not None
            attempts = e.last_attempt.attempt_number
            logger.error("io_retries_exhausted", operation=description, attempts=attempts, error=str(last_error))
            raise MaxRetriesExceeded(description, attempts, last_error) from last_error

# tests/conftest.py
"""Shared test fixtures and helpers.

Test Actions:
- FailingAction: SubFeedAction whose transform raises
- RecordingAction: SubFeedAction recording the feeds it transformed

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/

Tests build DataObjects and Actions directly instead of going through
configuration and the PluginManager. Configuration loading and the
builder have their own tests.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterator
from typing import Any

import pandas as pd
import pytest
from hypothesis import Phase, Verbosity, settings

from sluice.contracts import ExecutionPhase, SubFeed
from sluice.core.registry import InstanceRegistry
from sluice.engine.actions.single import SubFeedAction
from sluice.engine.context import ActionPipelineContext
from sluice.engine.metrics import MetricsSink
from sluice.plugins.dataobjects.memory import MemoryDataObject

# =============================================================================
# Hypothesis profiles
# =============================================================================

settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("nightly", max_examples=1000, deadline=None)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],
    deadline=None,
)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Logging isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    """configure_logging() replaces root handlers; CLI tests point them at captured streams."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


# =============================================================================
# Test Actions
# =============================================================================


class FailingAction(SubFeedAction):
    """Transform raises in the configured phase (both phases if None)."""

    name = "failing"

    def __init__(self, action_id: str, *, fail_in: ExecutionPhase | None = None, **kwargs: Any) -> None:
        super().__init__(action_id, **kwargs)
        self.fail_in = fail_in

    def transform(self, sub_feed: SubFeed, context: ActionPipelineContext) -> SubFeed:
        if self.fail_in is None or context.phase == self.fail_in:
            raise RuntimeError(f"{self.id} failed in {context.phase}")
        return sub_feed


class RecordingAction(SubFeedAction):
    """Passes the feed through and records (phase, feed) of every transform call."""

    name = "recording"

    def __init__(self, action_id: str, **kwargs: Any) -> None:
        super().__init__(action_id, **kwargs)
        self.calls: list[tuple[ExecutionPhase, SubFeed]] = []
        self._calls_lock = threading.Lock()

    def transform(self, sub_feed: SubFeed, context: ActionPipelineContext) -> SubFeed:
        with self._calls_lock:
            self.calls.append((context.phase, sub_feed))
        return sub_feed


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_context() -> Callable[..., ActionPipelineContext]:
    """Factory for ActionPipelineContext with a fresh registry."""

    def _make(
        phase: ExecutionPhase = ExecutionPhase.INIT,
        *,
        registry: InstanceRegistry | None = None,
        metrics_sink: MetricsSink | None = None,
        run_id: str = "test-run",
    ) -> ActionPipelineContext:
        return ActionPipelineContext(
            run_id=run_id,
            phase=phase,
            registry=registry if registry is not None else InstanceRegistry(),
            metrics_sink=metrics_sink,
        )

    return _make


def memory(data_object_id: str, data: pd.DataFrame | None = None, partitions: tuple[str, ...] = (), **kwargs: Any) -> MemoryDataObject:
    """Shorthand for MemoryDataObject construction."""
    return MemoryDataObject(data_object_id, partitions=partitions, data=data, **kwargs)


def frame(**columns: list[Any]) -> pd.DataFrame:
    """Shorthand for pd.DataFrame(dict(...))."""
    return pd.DataFrame(columns)
